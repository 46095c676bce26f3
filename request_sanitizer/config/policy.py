"""Sanitization policy constants.

All allow-lists, exemption sets and validation patterns live in a single
immutable ``SanitizePolicy``. ``DEFAULT_POLICY`` is built once at import time
and handed to every transform and pipeline step.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

# ── HTML allow-list (rich text) ─────────────────────────────────────────

ALLOWED_TAGS = frozenset({
    "b", "i", "em", "strong", "a", "p", "br", "ul", "ol", "li",
    "h1", "h2", "h3", "h4", "h5", "h6", "span", "div",
})

ALLOWED_ATTRIBUTES = frozenset({
    "href", "target", "rel", "class", "id", "style",
})

# http(s), ftp(s), mailto, tel, callto, cid, xmpp, or a relative/schemeless reference
ALLOWED_URI_RE = re.compile(
    r"^(?:(?:(?:f|ht)tps?|mailto|tel|callto|cid|xmpp):|[^a-z]|[a-z+.\-]+(?:[^a-z+.\-:]|$))",
    re.IGNORECASE,
)

ALLOWED_PROTOCOLS = frozenset({
    "http", "https", "ftp", "ftps", "mailto", "tel", "callto", "cid", "xmpp",
})

# Elements whose content is dropped together with the tags
FORBID_CONTENT_TAGS = (
    "script", "style", "iframe", "noscript", "noembed", "noframes",
    "template", "title", "xmp",
)

# ── Exemptions ──────────────────────────────────────────────────────────

# Map keys whose values are never rewritten by the generic tree walk
EXEMPT_FIELDS = frozenset({
    "password",
    "token",
    "secret",
    "apiKey",
    "privateKey",
})

# Lower-cased header names never rewritten by header sanitization
EXEMPT_HEADERS = frozenset({
    "authorization",
    "cookie",
    "x-api-key",
    "x-auth-token",
    "x-csrf-token",
    "x-requested-with",
})

EXTENDED_EXEMPT_HEADERS = EXEMPT_HEADERS | {"content-type", "content-length"}

# ── Injection defenses ──────────────────────────────────────────────────

NOSQL_OPERATOR_ALLOWLIST = frozenset({"$and", "$or", "$nor", "$not"})

SQL_KEYWORDS = (
    "union", "select", "insert", "update", "delete",
    "drop", "create", "alter", "exec", "execute",
)

# ── Limits and input shapes ─────────────────────────────────────────────

MAX_PAYLOAD_BYTES = 1_000_000  # 1MB, body + query serialized

EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
PHONE_RE = re.compile(r"[+]?[1-9][0-9]{0,15}")
URL_RE = re.compile(r"^https?://.+", re.IGNORECASE)


@dataclass(frozen=True)
class SanitizePolicy:
    """Read-only configuration shared by every sanitizer."""

    allowed_tags: frozenset[str] = ALLOWED_TAGS
    allowed_attributes: frozenset[str] = ALLOWED_ATTRIBUTES
    allowed_uri_re: re.Pattern[str] = ALLOWED_URI_RE
    allowed_protocols: frozenset[str] = ALLOWED_PROTOCOLS
    forbid_content_tags: tuple[str, ...] = FORBID_CONTENT_TAGS
    exempt_fields: frozenset[str] = EXEMPT_FIELDS
    exempt_headers: frozenset[str] = EXEMPT_HEADERS
    extended_exempt_headers: frozenset[str] = EXTENDED_EXEMPT_HEADERS
    nosql_operator_allowlist: frozenset[str] = NOSQL_OPERATOR_ALLOWLIST
    sql_keywords: tuple[str, ...] = SQL_KEYWORDS
    max_payload_bytes: int = MAX_PAYLOAD_BYTES
    email_re: re.Pattern[str] = EMAIL_RE
    phone_re: re.Pattern[str] = PHONE_RE
    url_re: re.Pattern[str] = URL_RE
    uri_attributes: frozenset[str] = field(default=frozenset({"href"}))


DEFAULT_POLICY = SanitizePolicy()
