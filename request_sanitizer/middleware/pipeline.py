"""Ordered middleware chain framework."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import structlog
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger()


@dataclass
class RequestData:
    """Mutable, framework-neutral view of an incoming request.

    ``files`` is either a list of upload descriptors or a mapping of field
    name to such lists. A descriptor exposes its client-supplied name as a
    ``filename`` attribute (e.g. starlette's UploadFile) or mapping key.
    """

    body: Any = None
    query: dict[str, Any] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, Any] = field(default_factory=dict)
    files: list[Any] | dict[str, list[Any]] | None = None


@dataclass
class RequestContext:
    """Mutable context passed through the middleware pipeline."""

    request_id: str = ""

    def __post_init__(self):
        if not self.request_id:
            self.request_id = uuid4().hex[:8]


def error_response(status_code: int, message: str) -> JSONResponse:
    """Client-facing error body shared by every short-circuiting step."""
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "message": message},
    )


class Middleware(abc.ABC):
    """Base class for steps in the pipeline."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abc.abstractmethod
    async def process_request(self, request: RequestData, context: RequestContext) -> Response | None:
        """Process an incoming request.

        Return None to continue the pipeline, or a Response to short-circuit.
        """
        ...


class MiddlewarePipeline:
    """Ordered list of middleware, executed front to back."""

    def __init__(self) -> None:
        self._middleware: list[Middleware] = []
        self._enabled: dict[str, bool] = {}

    @property
    def names(self) -> list[str]:
        return [mw.name for mw in self._middleware]

    def add(self, middleware: Middleware, enabled: bool = True) -> None:
        """Add a middleware to the end of the pipeline."""
        self._middleware.append(middleware)
        self._enabled[middleware.name] = enabled
        logger.info("middleware_registered", name=middleware.name, enabled=enabled)

    def set_enabled(self, name: str, enabled: bool) -> None:
        """Enable or disable a middleware by name."""
        if name in self._enabled:
            self._enabled[name] = enabled

    async def process_request(self, request: RequestData, context: RequestContext) -> Response | None:
        """Run request through all enabled middleware in order.

        Returns a Response if any middleware short-circuits, otherwise None.
        Sanitizer steps guard their own transforms; anything escaping a step
        is logged and answered with a generic 500.
        """
        for mw in self._middleware:
            if not self._enabled.get(mw.name, True):
                continue
            try:
                result = await mw.process_request(request, context)
            except Exception:
                logger.exception("middleware_request_error", middleware=mw.name, request_id=context.request_id)
                return error_response(500, "Internal server error")
            if isinstance(result, Response):
                logger.info(
                    "middleware_short_circuit",
                    middleware=mw.name,
                    status_code=result.status_code,
                    request_id=context.request_id,
                )
                return result
        return None
