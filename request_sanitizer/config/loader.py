"""Env var config loading with pydantic-settings."""

from __future__ import annotations

import signal
import threading
from collections.abc import Callable

import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class SanitizerSettings(BaseSettings):
    """Service configuration, overridden by SANITIZER_* env vars.

    Sanitization policy constants (allow-lists, patterns, size limit) are not
    configurable here; see request_sanitizer.config.policy.
    """

    model_config = SettingsConfigDict(
        env_prefix="SANITIZER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "info"
    log_json: bool = True
    listen_port: int = 8080

    # Step sequence: "comprehensive" (default) or "granular"
    pipeline_preset: str = "comprehensive"

    # Top-level body fields that may keep allow-listed HTML
    rich_text_fields: list[str] = []

    # Run email/phone/url shape checks after sanitization
    validate_input: bool = True


_settings: SanitizerSettings | None = None


def get_settings() -> SanitizerSettings:
    """Get or create the singleton settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def load_settings() -> SanitizerSettings:
    """Load settings from env vars (env vars override model defaults)."""
    global _settings
    _settings = SanitizerSettings()
    logger.info(
        "config_loaded",
        pipeline_preset=_settings.pipeline_preset,
        rich_text_fields=_settings.rich_text_fields,
    )
    return _settings


def register_reload_handler(on_reload: Callable[[SanitizerSettings], None] | None = None) -> None:
    """Register SIGHUP handler for hot-reload of configuration.

    *on_reload* receives the freshly loaded settings.
    """
    if threading.current_thread() is not threading.main_thread():
        logger.debug("skipping_sighup_handler", reason="not main thread")
        return

    def _reload(signum, frame):
        logger.info("config_reload_triggered")
        settings = load_settings()
        if on_reload is not None:
            on_reload(settings)

    try:
        signal.signal(signal.SIGHUP, _reload)
    except (ValueError, AttributeError):
        logger.debug("skipping_sighup_handler", reason="signal not supported")
