"""Terminal output interpretation — escape sequences, colors, rendering."""

from proterm.terminal.colors import Color, indexed_rgb
from proterm.terminal.escape import (
    DEFAULT_ATTRIBUTES,
    InterpreterState,
    StyledSpan,
    TextAttributes,
    apply_sgr,
    interpret,
    plain_text,
    strip_escapes,
)

__all__ = [
    "Color",
    "DEFAULT_ATTRIBUTES",
    "InterpreterState",
    "StyledSpan",
    "TextAttributes",
    "apply_sgr",
    "indexed_rgb",
    "interpret",
    "plain_text",
    "strip_escapes",
]
