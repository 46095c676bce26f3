"""ASGI integration: runs the sanitizer pipeline in front of a Starlette/FastAPI app."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from typing import Any
from urllib.parse import parse_qsl, urlencode

import structlog
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from request_sanitizer.middleware.pipeline import MiddlewarePipeline, RequestContext, RequestData
from request_sanitizer.middleware.request_sanitizer import ParamsSanitizer

logger = structlog.get_logger()

FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"

PipelineSource = MiddlewarePipeline | Callable[[], MiddlewarePipeline]


def _media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def _collect_multi(items: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """Fold (key, value) pairs into a dict; repeated keys become lists."""
    collected: dict[str, Any] = {}
    for key, value in items:
        if key not in collected:
            collected[key] = value
        elif isinstance(collected[key], list):
            collected[key].append(value)
        else:
            collected[key] = [collected[key], value]
    return collected


def _decode_body(raw: bytes, content_type: str) -> tuple[Any, str | None]:
    """Parse a JSON or form-encoded body.

    Returns ``(value, kind)`` where kind is "json" or "form". Anything else,
    or a body that fails to parse, comes back as ``(None, None)`` and is
    forwarded raw.
    """
    if not raw:
        return None, None
    media_type = _media_type(content_type)
    try:
        if media_type == "application/json" or media_type.endswith("+json"):
            return json.loads(raw), "json"
        if media_type == FORM_MEDIA_TYPE:
            pairs = parse_qsl(raw.decode("utf-8"), keep_blank_values=True)
            return _collect_multi(pairs), "form"
    except (ValueError, RecursionError) as exc:
        logger.warning("request_body_not_parsed", media_type=media_type, error=str(exc))
    return None, None


def _encode_body(value: Any, kind: str) -> bytes:
    if kind == "form":
        return urlencode(value, doseq=True).encode("utf-8")
    return json.dumps(value).encode("utf-8")


def _raw_headers(headers: dict[str, Any], body_length: int, had_length: bool) -> list[tuple[bytes, bytes]]:
    raw = []
    for key, value in headers.items():
        name = key.lower()
        if name == "content-length":
            continue
        for item in value if isinstance(value, list) else [value]:
            raw.append((name.encode("latin-1"), str(item).encode("latin-1", errors="replace")))
    if body_length or had_length:
        raw.append((b"content-length", str(body_length).encode("latin-1")))
    return raw


class SanitizerMiddleware:
    """Pure ASGI middleware wrapping a MiddlewarePipeline.

    JSON and form-encoded bodies, query parameters and headers are exposed to
    the pipeline as a RequestData; repeated query keys and headers arrive as
    lists. A short-circuit response is sent straight back. Otherwise the
    downstream app receives the sanitized body, query string and headers.
    Other body types, multipart included, are forwarded untouched.

    *pipeline* may be a zero-argument callable, resolved on every request, so
    the app can swap pipelines on a settings reload.
    """

    def __init__(self, app: ASGIApp, pipeline: PipelineSource) -> None:
        self.app = app
        self.pipeline = pipeline

    def _current_pipeline(self) -> MiddlewarePipeline:
        if isinstance(self.pipeline, MiddlewarePipeline):
            return self.pipeline
        return self.pipeline()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        raw_body = await request.body()
        body, kind = _decode_body(raw_body, request.headers.get("content-type", ""))

        data = RequestData(
            body=body,
            query=_collect_multi(request.query_params.multi_items()),
            headers=_collect_multi(request.headers.items()),
        )
        context = RequestContext()
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=context.request_id)

        short_circuit = await self._current_pipeline().process_request(data, context)
        if short_circuit is not None:
            await short_circuit(scope, receive, send)
            return

        body_bytes = raw_body
        if kind is not None:
            try:
                body_bytes = _encode_body(data.body, kind)
            except (ValueError, TypeError, RecursionError) as exc:
                logger.error("request_body_encode_error", kind=kind, error=str(exc))

        scope = dict(scope)
        scope["headers"] = _raw_headers(data.headers, len(body_bytes), "content-length" in request.headers)
        scope["query_string"] = urlencode(data.query, doseq=True).encode("latin-1")

        body_sent = False

        async def receive_sanitized() -> Message:
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": body_bytes, "more_body": False}
            return await receive()

        await self.app(scope, receive_sanitized, send)


async def sanitized_path_params(request: Request) -> dict[str, Any]:
    """FastAPI dependency: the route's path params with XSS stripped.

    Path params are only resolved after routing, so they are sanitized here
    rather than in SanitizerMiddleware.
    """
    data = RequestData(params=dict(request.path_params))
    await ParamsSanitizer().process_request(data, RequestContext())
    return data.params
