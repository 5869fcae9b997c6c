"""
Centralized configuration with environment variable overrides.

Business wording, collaborator endpoints, timeouts and retry bounds are
all configurable here. Nothing is hardcoded in dialogue or client logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from spark_voice.logging_context import CallIdFilter

load_dotenv()

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(name)s] [%(call_id)s] %(levelname)s: %(message)s"


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class BusinessConfig:
    """Business-specific settings loaded from environment or defaults."""

    name: str = os.getenv("BUSINESS_NAME", "TotalSpark Solutions")
    assistant_name: str = os.getenv("ASSISTANT_NAME", "Spark")
    callback_window: str = os.getenv("CALLBACK_WINDOW", "within one working day")


@dataclass(frozen=True)
class ModelConfig:
    """Settings for the optional AI extraction service."""

    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    llm_model: str = os.getenv("LLM_MODEL", "gpt-4.1-mini")
    llm_temperature: float = _safe_float("LLM_TEMPERATURE", "0.0")
    ai_timeout_sec: float = _safe_float("AI_TIMEOUT_SEC", "4.0")

    @property
    def ai_enabled(self) -> bool:
        return bool(self.openai_api_key)


@dataclass(frozen=True)
class WebhookConfig:
    """Pricing and booking webhook endpoints."""

    quote_url: str = os.getenv("GETQUOTE_WEBHOOK_URL", "")
    booking_url: str = os.getenv("CONFIRMBOOKING_WEBHOOK_URL", "")
    timeout_sec: float = _safe_float("WEBHOOK_TIMEOUT_SEC", "10.0")


@dataclass(frozen=True)
class GuardrailConfig:
    """Retry bounds and fallback triggers."""

    max_postcode_attempts: int = _safe_int("MAX_POSTCODE_ATTEMPTS", "2")
    max_slot_retries: int = _safe_int("MAX_SLOT_RETRIES", "3")
    max_silence_turns: int = _safe_int("MAX_SILENCE_TURNS", "3")
    max_pricing_attempts: int = _safe_int("MAX_PRICING_ATTEMPTS", "2")
    max_booking_attempts: int = _safe_int("MAX_BOOKING_ATTEMPTS", "2")


@dataclass(frozen=True)
class VoiceConfig:
    """Twilio <Say>/<Gather> settings."""

    voice: str = os.getenv("SAY_VOICE", "Polly.Amy")
    language: str = os.getenv("SAY_LANGUAGE", "en-GB")
    gather_timeout_sec: int = _safe_int("GATHER_TIMEOUT_SEC", "7")
    speech_model: str = os.getenv("SPEECH_MODEL", "phone_call")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    webhooks: WebhookConfig = field(default_factory=WebhookConfig)
    guardrails: GuardrailConfig = field(default_factory=GuardrailConfig)
    voice: VoiceConfig = field(default_factory=VoiceConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    port: int = _safe_int("PORT", "8080")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not 0.0 <= config.model.llm_temperature <= 2.0:
        raise ValueError(
            f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {config.model.llm_temperature}"
        )
    if config.model.ai_timeout_sec <= 0:
        raise ValueError(f"AI_TIMEOUT_SEC must be > 0, got {config.model.ai_timeout_sec}")
    if config.webhooks.timeout_sec <= 0:
        raise ValueError(
            f"WEBHOOK_TIMEOUT_SEC must be > 0, got {config.webhooks.timeout_sec}"
        )

    for bound_name, bound_value in [
        ("MAX_POSTCODE_ATTEMPTS", config.guardrails.max_postcode_attempts),
        ("MAX_SLOT_RETRIES", config.guardrails.max_slot_retries),
        ("MAX_SILENCE_TURNS", config.guardrails.max_silence_turns),
        ("MAX_PRICING_ATTEMPTS", config.guardrails.max_pricing_attempts),
        ("MAX_BOOKING_ATTEMPTS", config.guardrails.max_booking_attempts),
    ]:
        if bound_value < 1:
            raise ValueError(f"{bound_name} must be >= 1, got {bound_value}")

    if config.voice.gather_timeout_sec < 1:
        raise ValueError(
            f"GATHER_TIMEOUT_SEC must be >= 1, got {config.voice.gather_timeout_sec}"
        )
    if not 0 < config.port < 65536:
        raise ValueError(f"PORT must be a valid TCP port, got {config.port}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, CallIdFilter) for f in handler.filters):
            handler.addFilter(CallIdFilter())
    if not config.model.ai_enabled:
        logger.warning("OPENAI_API_KEY is missing; AI extraction is disabled")
    logger.info("Configuration loaded for '%s'", config.business.name)
    return config


# Singleton instance
settings = load_config()
