"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object
- Answer "is this collaborator configured?" for status surfaces

Non-responsibilities:
- No client construction (see server/app.py)
- No behavioral constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import TTS_DEFAULT_SPEED, TTS_DEFAULT_VOICE


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


DEFAULT_CORS_ORIGINS: tuple[str, ...] = (
    "https://aimcs-frontend-eastus2.azurewebsites.net",
    "https://aimcs.net",
    "http://localhost:5173",
    "http://localhost:3000",
)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and passed downward to the app
    factory, which builds the adapters and the gateway from it.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"
    log_level: str = "INFO"
    enable_json_logs: bool = True
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS

    # ------------------------------------------------------------------
    # Text generation
    # ------------------------------------------------------------------

    llm_provider: str = "azure"
    llm_model: str = "gpt-4o-mini"
    openai_api_key: str | None = None
    groq_api_key: str | None = None
    azure_openai_endpoint: str | None = None
    azure_openai_api_key: str | None = None
    azure_openai_deployment: str = "model-router"
    azure_openai_api_version: str = "2024-10-01-preview"

    # ------------------------------------------------------------------
    # Speech synthesis
    # ------------------------------------------------------------------

    tts_provider: str = "none"
    tts_model: str = "gpt-4o-mini-tts"
    tts_voice: str = TTS_DEFAULT_VOICE
    tts_speed: float = TTS_DEFAULT_SPEED
    azure_openai_tts_deployment: str = "gpt-4o-mini-tts"
    azure_openai_tts_api_version: str = "2025-03-01-preview"
    speechmatics_api_key: str | None = None
    speechmatics_voice: str = "sarah"
    elevenlabs_api_key: str | None = None
    elevenlabs_voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    elevenlabs_model_id: str = "eleven_turbo_v2"

    # ------------------------------------------------------------------
    # Speech recognition
    # ------------------------------------------------------------------

    deepgram_api_key: str | None = None
    deepgram_model: str = "nova-2"
    deepgram_language: str | None = None

    # ------------------------------------------------------------------
    # Derived flags
    # ------------------------------------------------------------------

    @property
    def ai_configured(self) -> bool:
        """True when the selected text-generation provider has credentials."""
        provider = self.llm_provider.lower()
        if provider == "azure":
            return bool(self.azure_openai_api_key and self.azure_openai_endpoint)
        if provider == "groq":
            return bool(self.groq_api_key)
        return bool(self.openai_api_key)

    @property
    def speech_configured(self) -> bool:
        """True when streaming speech recognition is available."""
        return bool(self.deepgram_api_key)

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Missing credentials are not an error: the matching collaborator is
        reported as unconfigured and the session degrades to echo behavior.

        Raises:
            ValueError if a numeric variable cannot be parsed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",
            cors_origins=_env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS),

            llm_provider=os.environ.get("LLM_PROVIDER", "azure"),
            llm_model=os.environ.get("LLM_MODEL", "gpt-4o-mini"),
            openai_api_key=os.environ.get("OPENAI_API_KEY"),
            groq_api_key=os.environ.get("GROQ_API_KEY"),
            azure_openai_endpoint=os.environ.get("AZURE_OPENAI_ENDPOINT"),
            azure_openai_api_key=os.environ.get("AZURE_OPENAI_API_KEY"),
            azure_openai_deployment=os.environ.get("AZURE_OPENAI_DEPLOYMENT", "model-router"),
            azure_openai_api_version=os.environ.get(
                "AZURE_OPENAI_API_VERSION", "2024-10-01-preview"
            ),

            tts_provider=os.environ.get("TTS_PROVIDER", "none"),
            tts_model=os.environ.get("TTS_MODEL", "gpt-4o-mini-tts"),
            tts_voice=os.environ.get("TTS_VOICE", TTS_DEFAULT_VOICE),
            tts_speed=_env_float("TTS_SPEED", TTS_DEFAULT_SPEED),
            azure_openai_tts_deployment=os.environ.get(
                "AZURE_OPENAI_TTS_DEPLOYMENT", "gpt-4o-mini-tts"
            ),
            azure_openai_tts_api_version=os.environ.get(
                "AZURE_OPENAI_TTS_API_VERSION", "2025-03-01-preview"
            ),
            speechmatics_api_key=os.environ.get("SPEECHMATICS_API_KEY"),
            speechmatics_voice=os.environ.get("SPEECHMATICS_VOICE", "sarah"),
            elevenlabs_api_key=os.environ.get("ELEVENLABS_API_KEY"),
            elevenlabs_voice_id=os.environ.get("ELEVENLABS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM"),
            elevenlabs_model_id=os.environ.get("ELEVENLABS_MODEL_ID", "eleven_turbo_v2"),

            deepgram_api_key=os.environ.get("DEEPGRAM_API_KEY"),
            deepgram_model=os.environ.get("DEEPGRAM_MODEL", "nova-2"),
            deepgram_language=os.environ.get("DEEPGRAM_LANGUAGE"),
        )
