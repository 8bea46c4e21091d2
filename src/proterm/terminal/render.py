"""Render styled spans with rich."""

from __future__ import annotations

from collections.abc import Iterable

from rich.color import Color as RichColor
from rich.style import Style
from rich.text import Text

from proterm.terminal.colors import Color
from proterm.terminal.escape import StyledSpan, TextAttributes


def to_rich_color(color: Color | None) -> RichColor | None:
    if color is None:
        return None
    if color.index is not None:
        return RichColor.from_ansi(color.index)
    return RichColor.from_rgb(*color.triplet)


def to_rich_style(attributes: TextAttributes) -> Style:
    """Map interpreter attributes onto a rich Style.

    Flags that are off are left unset so the console default shows through.
    """
    return Style(
        color=to_rich_color(attributes.foreground),
        bgcolor=to_rich_color(attributes.background),
        bold=attributes.bold or None,
        italic=attributes.italic or None,
        underline=attributes.underline or None,
        strike=attributes.strikethrough or None,
    )


def to_rich_text(spans: Iterable[StyledSpan]) -> Text:
    text = Text()
    for span in spans:
        if span.attributes.is_default:
            text.append(span.text)
        else:
            text.append(span.text, style=to_rich_style(span.attributes))
    return text
