"""String-level sanitizers: XSS stripping, rich-text allow-listing, scheme and SQL scrubbing."""

from __future__ import annotations

import functools
import re

import bleach
from bleach.css_sanitizer import CSSSanitizer

from request_sanitizer.config.policy import DEFAULT_POLICY, SanitizePolicy

_CSS_SANITIZER = CSSSanitizer()

# Whitespace and control characters ignored when checking URI attributes
_ATTR_WHITESPACE_RE = re.compile(r"[\x00-\x20\xa0\u1680\u180e\u2000-\u2029\u205f\u3000]")

# Removed in order by strip_dangerous_schemes
_DANGEROUS_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"[<>]"),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+=", re.IGNORECASE | re.ASCII),
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"file:", re.IGNORECASE),
]


@functools.lru_cache(maxsize=8)
def _content_block_re(tags: tuple[str, ...]) -> re.Pattern[str]:
    """Match an element and its body; an unterminated element runs to end of input."""
    names = "|".join(re.escape(t) for t in tags)
    return re.compile(
        rf"<({names})\b[^>]*>.*?(?:</\1\s*>|\Z)",
        re.IGNORECASE | re.DOTALL,
    )


@functools.lru_cache(maxsize=8)
def _sql_patterns(keywords: tuple[str, ...]) -> list[re.Pattern[str]]:
    words = "|".join(re.escape(k) for k in keywords)
    flags = re.IGNORECASE | re.ASCII
    return [
        re.compile(rf"(\b({words})\b)", flags),
        re.compile(r"(\b(and|or)\b\s+\d+\s*[=<>])", flags),
        re.compile(r"""(\b(and|or)\b\s+['"][^'"]*['"]\s*[=<>])""", flags),
        re.compile(r"(--|/\*|\*/)"),
        re.compile(rf"(;|\b({words})\b)", flags),
    ]


def _drop_content_blocks(text: str, tags: tuple[str, ...]) -> str:
    """Remove forbidden elements with their bodies until none reappear."""
    pattern = _content_block_re(tags)
    while True:
        stripped = pattern.sub("", text)
        if stripped == text:
            return stripped
        text = stripped


def strip_scriptish(text):
    """Strip every tag from *text*, dropping <script> bodies entirely.

    Stray angle brackets come back as &lt; and &gt;. Ampersands and entities
    already in the text are left as they were. Non-string values are
    returned unchanged.
    """
    if not isinstance(text, str):
        return text
    text = _drop_content_blocks(text, ("script",))
    # Every "&" goes in as "&amp;" so each "&amp;" bleach emits maps back to one "&"
    cleaned = bleach.clean(
        text.replace("&", "&amp;"),
        tags=frozenset(),
        attributes={},
        strip=True,
        strip_comments=True,
    )
    return cleaned.replace("&amp;", "&")


def sanitize_rich_text(text, *, policy: SanitizePolicy = DEFAULT_POLICY):
    """Keep only allow-listed formatting tags and attributes.

    URI attributes must pass the policy's URI regex and protocol list, so
    ``javascript:``, ``data:`` and ``vbscript:`` links lose their href.
    Non-string values are returned unchanged.
    """
    if not isinstance(text, str):
        return text

    def _allow_attribute(tag: str, name: str, value: str) -> bool:
        if name not in policy.allowed_attributes:
            return False
        if name in policy.uri_attributes:
            return bool(policy.allowed_uri_re.match(_ATTR_WHITESPACE_RE.sub("", value)))
        return True

    text = _drop_content_blocks(text, policy.forbid_content_tags)
    return bleach.clean(
        text,
        tags=policy.allowed_tags,
        attributes=_allow_attribute,
        protocols=policy.allowed_protocols,
        strip=True,
        strip_comments=True,
        css_sanitizer=_CSS_SANITIZER,
    )


def strip_dangerous_schemes(text):
    """Cheap secondary filter: drop angle brackets, script-ish schemes and on*= handlers."""
    if not isinstance(text, str):
        return text
    for pattern in _DANGEROUS_PATTERNS:
        text = pattern.sub("", text)
    return text


def scrub_sql_patterns(text, *, policy: SanitizePolicy = DEFAULT_POLICY):
    """Remove SQL keywords, boolean-injection idioms, comment markers and semicolons.

    Patterns run once each, in order, over the previous pattern's output.
    """
    if not isinstance(text, str):
        return text
    for pattern in _sql_patterns(policy.sql_keywords):
        text = pattern.sub("", text)
    return text
