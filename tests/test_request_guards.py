"""Tests for the payload size guard and input shape validation."""

from __future__ import annotations

import json

import pytest
from starlette.responses import JSONResponse

from request_sanitizer.config.policy import MAX_PAYLOAD_BYTES, SanitizePolicy
from request_sanitizer.middleware.pipeline import RequestContext, RequestData
from request_sanitizer.middleware.request_guards import (
    InputShapeValidator,
    PayloadSizeGuard,
    serialized_size,
)

# len('{"data":""}') + len('{}')
_ENVELOPE = 13


def _body_of_total_size(total: int) -> dict:
    return {"data": "x" * (total - _ENVELOPE)}


# ── Payload size guard ──────────────────────────────────────────────────


class TestSerializedSize:
    def test_compact_json(self):
        assert serialized_size({"a": [1, 2]}) == len('{"a":[1,2]}')

    def test_counts_utf8_bytes(self):
        assert serialized_size("é") == len('"é"'.encode("utf-8"))

    def test_none(self):
        assert serialized_size(None) == 4


class TestPayloadSizeGuard:
    @pytest.mark.asyncio
    async def test_exactly_at_limit_allowed(self):
        request = RequestData(body=_body_of_total_size(MAX_PAYLOAD_BYTES), query={})
        assert serialized_size(request.body) + serialized_size(request.query) == MAX_PAYLOAD_BYTES
        assert await PayloadSizeGuard().process_request(request, RequestContext()) is None

    @pytest.mark.asyncio
    async def test_one_byte_over_rejected(self):
        request = RequestData(body=_body_of_total_size(MAX_PAYLOAD_BYTES + 1), query={})
        result = await PayloadSizeGuard().process_request(request, RequestContext())
        assert isinstance(result, JSONResponse)
        assert result.status_code == 413
        assert json.loads(result.body) == {"status": "error", "message": "Request too large"}

    @pytest.mark.asyncio
    async def test_large_payload_rejected(self):
        request = RequestData(body=_body_of_total_size(1_050_000), query={})
        result = await PayloadSizeGuard().process_request(request, RequestContext())
        assert result.status_code == 413

    @pytest.mark.asyncio
    async def test_query_counts_toward_limit(self):
        half = MAX_PAYLOAD_BYTES // 2
        request = RequestData(body={"a": "x" * half}, query={"q": "y" * half})
        result = await PayloadSizeGuard().process_request(request, RequestContext())
        assert result.status_code == 413

    @pytest.mark.asyncio
    async def test_small_request_allowed(self):
        request = RequestData(body={"crop": "maize"}, query={"page": "1"})
        assert await PayloadSizeGuard().process_request(request, RequestContext()) is None

    @pytest.mark.asyncio
    async def test_custom_limit(self):
        guard = PayloadSizeGuard(policy=SanitizePolicy(max_payload_bytes=10))
        request = RequestData(body={"crop": "maize"})
        assert (await guard.process_request(request, RequestContext())).status_code == 413

    @pytest.mark.asyncio
    async def test_unserializable_body_passes(self):
        body: dict = {}
        body["self"] = body
        request = RequestData(body=body)
        assert await PayloadSizeGuard().process_request(request, RequestContext()) is None

    @pytest.mark.asyncio
    async def test_lone_surrogate_still_measured(self):
        """A lone surrogate (valid as a JSON escape) must not disable the limit."""
        request = RequestData(body={"data": "x" * 2_000_000 + "\ud800"})
        result = await PayloadSizeGuard().process_request(request, RequestContext())
        assert result.status_code == 413

    def test_lone_surrogate_size(self):
        assert serialized_size("\ud800") == 5


# ── Input shape validation ──────────────────────────────────────────────


async def _validate(body) -> JSONResponse | None:
    return await InputShapeValidator().process_request(RequestData(body=body), RequestContext())


class TestInputShapeValidator:
    @pytest.mark.asyncio
    async def test_invalid_email_rejected(self):
        result = await _validate({"email": "not-an-email"})
        assert result.status_code == 400
        assert json.loads(result.body) == {"status": "error", "message": "Invalid email format"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email", ["ada@farm.ng", "a.b+c@mail.example.com"])
    async def test_valid_email(self, email):
        assert await _validate({"email": email}) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email", ["a b@c.de", "a@b", "@b.co", "a@@b.co", "a@b.co\n"])
    async def test_malformed_emails(self, email):
        result = await _validate({"email": email})
        assert result.status_code == 400

    @pytest.mark.asyncio
    async def test_absent_fields_not_checked(self):
        assert await _validate({"name": "Ada"}) is None

    @pytest.mark.asyncio
    async def test_empty_fields_not_checked(self):
        assert await _validate({"email": "", "phone": "", "url": None}) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "phone",
        ["+2348012345678", "234 801 234 5678", "8012345678", "+234\u00a0801\u2009234\t5678"],
    )
    async def test_valid_phone(self, phone):
        assert await _validate({"phone": phone}) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("phone", ["08012345678", "phone", "+1234567890123456789", "+"])
    async def test_invalid_phone(self, phone):
        result = await _validate({"phone": phone})
        assert result.status_code == 400
        assert json.loads(result.body)["message"] == "Invalid phone number format"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("phone", [2348012345678, 1.5, True, ["bad"]])
    async def test_non_string_phone_skipped(self, phone):
        assert await _validate({"phone": phone}) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["https://farm.example", "HTTP://x", "http://localhost:8000/a"])
    async def test_valid_url(self, url):
        assert await _validate({"url": url}) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["ftp://files.example", "javascript:alert(1)", "https://"])
    async def test_invalid_url(self, url):
        result = await _validate({"url": url})
        assert result.status_code == 400
        assert json.loads(result.body)["message"] == "Invalid URL format"

    @pytest.mark.asyncio
    async def test_first_failure_reported(self):
        result = await _validate({"email": "bad", "phone": "bad", "url": "bad"})
        assert json.loads(result.body)["message"] == "Invalid email format"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [None, "email=bad", ["bad"]])
    async def test_non_mapping_body_skipped(self, body):
        assert await _validate(body) is None

    def test_validate_returns_field_name(self):
        assert InputShapeValidator().validate({"url": "nope"}) == ("url", "Invalid URL format")
        assert InputShapeValidator().validate({"url": "https://ok.example"}) is None
