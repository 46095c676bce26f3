"""Named step sequences for the request pipeline."""

from __future__ import annotations

# The size guard always comes first so the tree walks only ever see bounded input.
PIPELINE_PRESETS: dict[str, tuple[str, ...]] = {
    "comprehensive": (
        "payload_size_guard",
        "comprehensive",
        "file_names",
        "input_validation",
    ),
    "granular": (
        "payload_size_guard",
        "body",
        "query",
        "params",
        "headers",
        "file_names",
        "input_validation",
    ),
}

DEFAULT_PRESET = "comprehensive"


def preset_steps(name: str) -> tuple[str, ...]:
    """Return the step names for preset *name*."""
    try:
        return PIPELINE_PRESETS[name]
    except KeyError:
        raise ValueError(
            f"Unknown pipeline preset {name!r}; expected one of {sorted(PIPELINE_PRESETS)}"
        ) from None
