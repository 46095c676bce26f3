"""FastAPI application factory with the sanitizer pipeline installed."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from request_sanitizer.asgi import SanitizerMiddleware
from request_sanitizer.config.loader import SanitizerSettings, get_settings, register_reload_handler
from request_sanitizer.config.pipeline_presets import preset_steps
from request_sanitizer.health import router as health_router
from request_sanitizer.logging_config import setup_logging
from request_sanitizer.middleware.pipeline import Middleware, MiddlewarePipeline
from request_sanitizer.middleware.request_guards import InputShapeValidator, PayloadSizeGuard
from request_sanitizer.middleware.request_sanitizer import (
    BodySanitizer,
    ComprehensiveSanitizer,
    FileNameSanitizer,
    HeaderSanitizer,
    ParamsSanitizer,
    QuerySanitizer,
)

logger = structlog.get_logger()


def _step_factories(settings: SanitizerSettings) -> dict[str, Callable[[], Middleware]]:
    return {
        "payload_size_guard": PayloadSizeGuard,
        "comprehensive": lambda: ComprehensiveSanitizer(rich_text_fields=settings.rich_text_fields),
        "body": BodySanitizer,
        "query": QuerySanitizer,
        "params": ParamsSanitizer,
        "headers": HeaderSanitizer,
        "file_names": FileNameSanitizer,
        "input_validation": InputShapeValidator,
    }


def build_pipeline(settings: SanitizerSettings | None = None) -> MiddlewarePipeline:
    """Build the ordered pipeline for the configured preset.

    Raises ValueError for an unknown preset so misconfiguration fails at startup.
    """
    settings = settings or get_settings()
    factories = _step_factories(settings)
    pipeline = MiddlewarePipeline()
    for step in preset_steps(settings.pipeline_preset):
        enabled = settings.validate_input if step == "input_validation" else True
        pipeline.add(factories[step](), enabled=enabled)
    return pipeline


def apply_settings(app: FastAPI, settings: SanitizerSettings) -> None:
    """Swap in a pipeline built from *settings*; bad settings keep the old one."""
    try:
        pipeline = build_pipeline(settings)
    except ValueError as exc:
        logger.error("config_reload_rejected", error=str(exc))
        return
    app.state.settings = settings
    app.state.pipeline = pipeline
    logger.info("pipeline_rebuilt", preset=settings.pipeline_preset, steps=pipeline.names)


def create_app(settings: SanitizerSettings | None = None) -> FastAPI:
    """Create the app; host applications add their own routers to it.

    Run with ``uvicorn request_sanitizer.main:create_app --factory``. A SIGHUP
    reloads settings from the environment and rebuilds the pipeline.
    """
    settings = settings or get_settings()
    pipeline = build_pipeline(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(log_level=settings.log_level, json_format=settings.log_json)
        register_reload_handler(on_reload=lambda new_settings: apply_settings(app, new_settings))
        logger.info(
            "sanitizer_started",
            preset=app.state.settings.pipeline_preset,
            steps=app.state.pipeline.names,
            port=settings.listen_port,
        )
        yield
        logger.info("sanitizer_stopped")

    app = FastAPI(title="Request Sanitizer", lifespan=lifespan)
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.include_router(health_router)
    app.add_middleware(SanitizerMiddleware, pipeline=lambda: app.state.pipeline)
    return app
