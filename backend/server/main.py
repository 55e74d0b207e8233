"""
Development entry point.

    cd backend && python -m server.main

Production runs the ASGI app directly: uvicorn server.asgi:app
"""

from __future__ import annotations

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "server.asgi:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
        log_level=os.environ.get("LOG_LEVEL", "info").lower(),
        reload=os.environ.get("ENV", "dev") == "dev",
    )


if __name__ == "__main__":
    main()
