# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from observability import logger


@pytest.fixture(autouse=True)
def log_events(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Capture JSONL log output instead of writing to stdout."""
    captured: list[dict[str, Any]] = []
    monkeypatch.setattr(logger, "_print", lambda line: captured.append(json.loads(line)))
    monkeypatch.setattr(logger, "_enabled", True)
    return captured
