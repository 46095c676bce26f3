"""Fail-closed guard steps: payload size limit and input shape validation."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

import structlog
from starlette.responses import Response

from request_sanitizer.config.policy import DEFAULT_POLICY, SanitizePolicy
from request_sanitizer.middleware.pipeline import Middleware, RequestContext, RequestData, error_response

logger = structlog.get_logger()

_WHITESPACE_RE = re.compile(r"\s")


def serialized_size(value: Any) -> int:
    """UTF-8 byte length of *value* as compact JSON."""
    encoded = json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return len(encoded.encode("utf-8", errors="surrogatepass"))


class PayloadSizeGuard(Middleware):
    """Reject requests whose serialized body + query exceed the payload limit (413).

    Meant to run before the tree-walking sanitizers to bound their cost.
    """

    def __init__(self, *, policy: SanitizePolicy = DEFAULT_POLICY) -> None:
        self._max_bytes = policy.max_payload_bytes

    async def process_request(self, request: RequestData, context: RequestContext) -> Response | None:
        try:
            size = serialized_size(request.body) + serialized_size(request.query)
        except (ValueError, RecursionError) as exc:
            # Cyclic or too deeply nested payloads are left to later steps
            logger.error(
                "payload_size_check_error",
                request_id=context.request_id,
                error=str(exc),
            )
            return None

        if size > self._max_bytes:
            logger.warning(
                "payload_too_large",
                request_id=context.request_id,
                size=size,
                max=self._max_bytes,
            )
            return error_response(413, "Request too large")
        return None


class InputShapeValidator(Middleware):
    """Check optional ``email``, ``phone`` and ``url`` body fields (400 on mismatch).

    Absent or empty fields are not checked, and neither is a non-string
    ``phone``. Email and URL values are matched as strings.
    """

    def __init__(self, *, policy: SanitizePolicy = DEFAULT_POLICY) -> None:
        self._policy = policy

    async def process_request(self, request: RequestData, context: RequestContext) -> Response | None:
        body = request.body
        if not isinstance(body, Mapping):
            return None

        failure = self.validate(body)
        if failure is None:
            return None

        field_name, message = failure
        logger.info(
            "input_validation_failed",
            request_id=context.request_id,
            field=field_name,
        )
        return error_response(400, message)

    def validate(self, body: Mapping[str, Any]) -> tuple[str, str] | None:
        """Return ``(field, message)`` for the first invalid field, else None."""
        policy = self._policy

        email = body.get("email")
        if email and not policy.email_re.fullmatch(str(email)):
            return "email", "Invalid email format"

        phone = body.get("phone")
        if phone and isinstance(phone, str) and not policy.phone_re.fullmatch(_WHITESPACE_RE.sub("", phone)):
            return "phone", "Invalid phone number format"

        url = body.get("url")
        if url and not policy.url_re.match(str(url)):
            return "url", "Invalid URL format"

        return None
