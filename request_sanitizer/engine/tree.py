"""Recursive walks over JSON-like request data."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from request_sanitizer.config.policy import DEFAULT_POLICY, SanitizePolicy
from request_sanitizer.engine.text import scrub_sql_patterns

LeafFn = Callable[[str], str]


def sanitize_tree(value: Any, leaf_fn: LeafFn, *, policy: SanitizePolicy = DEFAULT_POLICY) -> Any:
    """Apply *leaf_fn* to every string leaf, preserving the structure of *value*.

    Values under exempt keys (password, token, ...) are copied through as-is,
    including nested containers. Non-string scalars are returned unchanged.
    """
    if value is None:
        return value
    if isinstance(value, str):
        return leaf_fn(value)
    if isinstance(value, Mapping):
        sanitized = {}
        for key, item in value.items():
            if key in policy.exempt_fields:
                sanitized[key] = item
                continue
            sanitized[key] = sanitize_tree(item, leaf_fn, policy=policy)
        return sanitized
    if isinstance(value, (list, tuple)):
        return type(value)(sanitize_tree(item, leaf_fn, policy=policy) for item in value)
    return value


def sanitize_against_nosql_injection(value: Any, *, policy: SanitizePolicy = DEFAULT_POLICY) -> Any:
    """Drop ``$``-prefixed operator keys and scrub SQL patterns from string leaves.

    ``$and``, ``$or``, ``$nor`` and ``$not`` survive and are recursed into.
    Unlike sanitize_tree, no key is exempt from recursion here.
    """
    if value is None:
        return value
    if isinstance(value, str):
        return scrub_sql_patterns(value, policy=policy)
    if isinstance(value, Mapping):
        sanitized = {}
        for key, item in value.items():
            if isinstance(key, str) and key.startswith("$") and key not in policy.nosql_operator_allowlist:
                continue
            sanitized[key] = sanitize_against_nosql_injection(item, policy=policy)
        return sanitized
    if isinstance(value, (list, tuple)):
        return type(value)(sanitize_against_nosql_injection(item, policy=policy) for item in value)
    return value
