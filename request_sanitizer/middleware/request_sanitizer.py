"""Request sanitizer middleware: XSS and injection scrubbing of request data.

Every step here fails open: if its transform raises, the error is logged and
the request continues exactly as it arrived. New values are computed in full
before anything is assigned back onto the request.
"""

from __future__ import annotations

import abc
from collections.abc import Iterable, Mapping, MutableMapping
from typing import Any

import structlog
from starlette.responses import Response

from request_sanitizer.config.policy import DEFAULT_POLICY, SanitizePolicy
from request_sanitizer.engine.text import sanitize_rich_text, strip_scriptish
from request_sanitizer.engine.tree import LeafFn, sanitize_against_nosql_injection, sanitize_tree
from request_sanitizer.middleware.pipeline import Middleware, RequestContext, RequestData

logger = structlog.get_logger()


def sanitize_headers(headers: Mapping[str, Any], exempt_headers: Iterable[str]) -> dict[str, Any]:
    """Return a copy of *headers* with non-exempt string values XSS-stripped.

    Header names are compared lower-cased, so ``Authorization`` and
    ``AUTHORIZATION`` are both exempt. A repeated header given as a list has
    each of its string values stripped.
    """
    exempt = frozenset(exempt_headers)
    sanitized = {}
    for key, value in headers.items():
        if key.lower() in exempt:
            sanitized[key] = value
        elif isinstance(value, list):
            sanitized[key] = [strip_scriptish(item) for item in value]
        else:
            sanitized[key] = strip_scriptish(value)
    return sanitized


def _iter_uploads(files) -> Iterable[Any]:
    """Yield upload descriptors from a flat list or a mapping of lists."""
    if isinstance(files, (list, tuple)):
        yield from files
    elif isinstance(files, Mapping):
        for group in files.values():
            if isinstance(group, (list, tuple)):
                yield from group


def _get_filename(upload) -> Any:
    if isinstance(upload, Mapping):
        return upload.get("filename")
    return getattr(upload, "filename", None)


def _set_filename(upload, filename: str) -> None:
    if isinstance(upload, MutableMapping):
        upload["filename"] = filename
    else:
        upload.filename = filename


class _GuardedSanitizer(Middleware):
    """Runs ``sanitize`` and swallows (logs) any fault, never short-circuiting."""

    error_event = "sanitizer_error"

    def __init__(self, *, policy: SanitizePolicy = DEFAULT_POLICY) -> None:
        self._policy = policy

    async def process_request(self, request: RequestData, context: RequestContext) -> Response | None:
        try:
            self.sanitize(request)
        except Exception as exc:
            logger.exception(
                self.error_event,
                step=self.name,
                request_id=context.request_id,
                error=str(exc),
            )
        return None

    @abc.abstractmethod
    def sanitize(self, request: RequestData) -> None:
        """Rewrite the targeted part of *request* in place."""
        ...


class BodySanitizer(_GuardedSanitizer):
    """XSS-strip every string in the body (exempt fields untouched)."""

    error_event = "body_sanitizer_error"

    def sanitize(self, request: RequestData) -> None:
        if request.body:
            request.body = sanitize_tree(request.body, strip_scriptish, policy=self._policy)


class QuerySanitizer(_GuardedSanitizer):
    error_event = "query_sanitizer_error"

    def sanitize(self, request: RequestData) -> None:
        if request.query:
            request.query = sanitize_tree(request.query, strip_scriptish, policy=self._policy)


class ParamsSanitizer(_GuardedSanitizer):
    error_event = "params_sanitizer_error"

    def sanitize(self, request: RequestData) -> None:
        if request.params:
            request.params = sanitize_tree(request.params, strip_scriptish, policy=self._policy)


class HeaderSanitizer(_GuardedSanitizer):
    """XSS-strip header values, leaving credential headers verbatim."""

    error_event = "header_sanitizer_error"

    def __init__(
        self,
        exempt_headers: Iterable[str] | None = None,
        *,
        policy: SanitizePolicy = DEFAULT_POLICY,
    ) -> None:
        super().__init__(policy=policy)
        self._exempt_headers = frozenset(
            policy.exempt_headers if exempt_headers is None else exempt_headers
        )

    def sanitize(self, request: RequestData) -> None:
        if request.headers:
            request.headers = sanitize_headers(request.headers, self._exempt_headers)


class FileNameSanitizer(_GuardedSanitizer):
    """XSS-strip client-supplied names of uploaded files."""

    error_event = "file_name_sanitizer_error"

    def sanitize(self, request: RequestData) -> None:
        if not request.files:
            return
        renames = []
        for upload in _iter_uploads(request.files):
            filename = _get_filename(upload)
            if filename:
                renames.append((upload, strip_scriptish(filename)))
        for upload, filename in renames:
            _set_filename(upload, filename)


class FieldSanitizer(_GuardedSanitizer):
    """Apply *leaf_fn* to the named top-level string fields of the body only."""

    error_event = "field_sanitizer_error"

    def __init__(
        self,
        fields: Iterable[str],
        leaf_fn: LeafFn = strip_scriptish,
        *,
        name: str | None = None,
        policy: SanitizePolicy = DEFAULT_POLICY,
    ) -> None:
        super().__init__(policy=policy)
        self._fields = tuple(fields)
        self._leaf_fn = leaf_fn
        self._name = name

    @property
    def name(self) -> str:
        return self._name or super().name

    def sanitize(self, request: RequestData) -> None:
        body = request.body
        if not isinstance(body, MutableMapping):
            return
        updates = {}
        for field_name in self._fields:
            value = body.get(field_name)
            if value and isinstance(value, str):
                updates[field_name] = self._leaf_fn(value)
        body.update(updates)


def sanitize_fields(
    fields: Iterable[str],
    leaf_fn: LeafFn = strip_scriptish,
    *,
    policy: SanitizePolicy = DEFAULT_POLICY,
) -> FieldSanitizer:
    """Build a step that sanitizes only *fields* of the body with *leaf_fn*."""
    return FieldSanitizer(fields, leaf_fn, policy=policy)


def sanitize_html_fields(
    fields: Iterable[str],
    *,
    policy: SanitizePolicy = DEFAULT_POLICY,
) -> FieldSanitizer:
    """Build a step for content fields that may keep allow-listed HTML."""

    def _rich_text(value: str) -> str:
        return sanitize_rich_text(value, policy=policy)

    return FieldSanitizer(fields, _rich_text, name="HTMLFieldSanitizer", policy=policy)


class ComprehensiveSanitizer(_GuardedSanitizer):
    """Sanitize body, query, params and headers in one step.

    Order matters: XSS stripping runs before NoSQL operator filtering so the
    operator filter sees keys as they look after HTML handling.

      - body, query: sanitize_tree(strip_scriptish) then NoSQL/SQL scrubbing
      - params: sanitize_tree(strip_scriptish) only
      - headers: XSS stripping, also leaving content-type/content-length alone

    Top-level body fields listed in *rich_text_fields* keep allow-listed HTML
    instead of being fully stripped. Exempt fields stay untouched regardless.
    """

    error_event = "comprehensive_sanitizer_error"

    def __init__(
        self,
        rich_text_fields: Iterable[str] = (),
        *,
        policy: SanitizePolicy = DEFAULT_POLICY,
    ) -> None:
        super().__init__(policy=policy)
        self._rich_text_fields = frozenset(rich_text_fields) - policy.exempt_fields

    def sanitize(self, request: RequestData) -> None:
        policy = self._policy
        body, query, params, headers = request.body, request.query, request.params, request.headers

        if body:
            body = sanitize_against_nosql_injection(self._sanitize_body(body), policy=policy)
        if query:
            query = sanitize_tree(query, strip_scriptish, policy=policy)
            query = sanitize_against_nosql_injection(query, policy=policy)
        if params:
            params = sanitize_tree(params, strip_scriptish, policy=policy)
        if headers:
            headers = sanitize_headers(headers, policy.extended_exempt_headers)

        request.body, request.query, request.params, request.headers = body, query, params, headers

    def _sanitize_body(self, body: Any) -> Any:
        sanitized = sanitize_tree(body, strip_scriptish, policy=self._policy)
        if not self._rich_text_fields or not isinstance(body, Mapping):
            return sanitized
        for key in self._rich_text_fields:
            value = body.get(key)
            if isinstance(value, str):
                sanitized[key] = sanitize_rich_text(value, policy=self._policy)
        return sanitized
