"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Build vendor clients and adapters ONCE per process
- Own the session registry and gateway
- Register routes
- Shut every session down when the server stops
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncAzureOpenAI, AsyncOpenAI

from adapters.asr.base import RecognizerFactory
from adapters.asr.deepgram_streaming import DeepgramRecognizerFactory
from adapters.llm.openai_chat import OpenAITextGenAdapter
from adapters.llm.prompts import SYSTEM_PROMPT
from adapters.tts.base import DisabledTTSAdapter, TTSAdapter
from adapters.tts.elevenlabs_adapter import ElevenLabsTTSAdapter
from adapters.tts.openai_speech import OpenAISpeechAdapter
from adapters.tts.speechmatics import SpeechmaticsTTSAdapter
from config import AppConfig
from constants import SERVICE_NAME, SERVICE_VERSION, SHUTDOWN_TIMEOUT_S
from observability import logger
from observability.logger import log_event
from session.gateway import SessionGateway
from session.registry import SessionRegistry
from session.settings import SessionSettings

from server.routes import register_routes


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations
    - Environment-specific setup
    - ASGI server compatibility
    """
    if config is None:
        config = AppConfig.load_from_env()

    logger.configure(enabled=config.enable_json_logs)

    registry = SessionRegistry()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        log_event({
            "event_type": "server_started",
            "env": config.env,
            "ai_configured": config.ai_configured,
            "speech_configured": config.speech_configured,
            "tts_provider": config.tts_provider,
        })
        yield
        await registry.shutdown(timeout_s=SHUTDOWN_TIMEOUT_S)
        log_event({"event_type": "server_stopped"})

    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)

    app.state.config = config
    app.state.started_at = time.time()
    app.state.registry = registry

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Vendor clients are shared by every session and the REST chat route
    app.state.text_gen = OpenAITextGenAdapter(
        client=build_llm_client(config),
        model=_llm_model(config),
        provider=config.llm_provider.lower(),
    )
    app.state.session_settings = build_session_settings(config)
    app.state.gateway = SessionGateway(
        registry=registry,
        text_gen=app.state.text_gen,
        tts=build_tts_adapter(config),
        recognizer_factory=build_recognizer_factory(config),
        settings=app.state.session_settings,
    )

    # Routes
    register_routes(app)

    return app


# ------------------------------------------------------------------
# Builders
# ------------------------------------------------------------------

def build_llm_client(config: AppConfig) -> AsyncOpenAI | None:
    """Build an LLM client for the configured provider, or None without credentials."""
    if not config.ai_configured:
        return None

    provider = config.llm_provider.lower()
    if provider == "azure":
        return AsyncAzureOpenAI(
            api_key=config.azure_openai_api_key,
            azure_endpoint=config.azure_openai_endpoint or "",
            api_version=config.azure_openai_api_version,
        )

    if provider == "groq":
        return AsyncOpenAI(
            api_key=config.groq_api_key,
            base_url="https://api.groq.com/openai/v1",
        )

    return AsyncOpenAI(api_key=config.openai_api_key)


def _llm_model(config: AppConfig) -> str:
    if config.llm_provider.lower() == "azure":
        return config.azure_openai_deployment
    return config.llm_model


def build_tts_adapter(config: AppConfig) -> TTSAdapter:
    provider = config.tts_provider.lower()

    if provider == "openai":
        if not config.openai_api_key:
            return DisabledTTSAdapter("OPENAI_API_KEY not set")
        return OpenAISpeechAdapter(
            client=AsyncOpenAI(api_key=config.openai_api_key),
            model=config.tts_model,
        )

    if provider == "azure":
        if not (config.azure_openai_api_key and config.azure_openai_endpoint):
            return DisabledTTSAdapter("Azure OpenAI credentials not set")
        return OpenAISpeechAdapter(
            client=AsyncAzureOpenAI(
                api_key=config.azure_openai_api_key,
                azure_endpoint=config.azure_openai_endpoint,
                api_version=config.azure_openai_tts_api_version,
            ),
            model=config.azure_openai_tts_deployment,
        )

    if provider == "speechmatics":
        if not config.speechmatics_api_key:
            return DisabledTTSAdapter("SPEECHMATICS_API_KEY not set")
        return SpeechmaticsTTSAdapter(
            api_key=config.speechmatics_api_key,
            default_voice=config.speechmatics_voice,
        )

    if provider == "elevenlabs":
        if not config.elevenlabs_api_key:
            return DisabledTTSAdapter("ELEVENLABS_API_KEY not set")
        return ElevenLabsTTSAdapter(
            api_key=config.elevenlabs_api_key,
            voice_id=config.elevenlabs_voice_id,
            model_id=config.elevenlabs_model_id,
        )

    if provider != "none":
        log_event({
            "event_type": "unknown_tts_provider",
            "tts_provider": config.tts_provider,
        })
    return DisabledTTSAdapter(f"TTS_PROVIDER={config.tts_provider}")


def build_recognizer_factory(config: AppConfig) -> RecognizerFactory | None:
    if not config.deepgram_api_key:
        return None
    return DeepgramRecognizerFactory(
        api_key=config.deepgram_api_key,
        model=config.deepgram_model,
        language=config.deepgram_language,
    )


def build_session_settings(config: AppConfig) -> SessionSettings:
    """Resolve the provider-specific voice once, for every session."""
    provider = config.tts_provider.lower()
    if provider == "speechmatics":
        voice = config.speechmatics_voice
    elif provider == "elevenlabs":
        voice = config.elevenlabs_voice_id
    else:
        voice = config.tts_voice

    return SessionSettings(
        system_prompt=SYSTEM_PROMPT,
        tts_voice=voice,
        tts_speed=config.tts_speed,
    )
