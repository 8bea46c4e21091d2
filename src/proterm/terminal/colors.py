"""Terminal colors — the 16-color palette and the xterm 256-color table."""

from __future__ import annotations

from dataclasses import dataclass

RGB = tuple[int, int, int]

# Standard (0-7) and bright (8-15) colors, xterm defaults
STANDARD_PALETTE: tuple[RGB, ...] = (
    (0, 0, 0),
    (205, 0, 0),
    (0, 205, 0),
    (205, 205, 0),
    (0, 0, 238),
    (205, 0, 205),
    (0, 205, 205),
    (229, 229, 229),
    (127, 127, 127),
    (255, 0, 0),
    (0, 255, 0),
    (255, 255, 0),
    (92, 92, 255),
    (255, 0, 255),
    (0, 255, 255),
    (255, 255, 255),
)

COLOR_NAMES = ("black", "red", "green", "yellow", "blue", "magenta", "cyan", "white")

_CUBE_LEVELS = (0, 95, 135, 175, 215, 255)


def indexed_rgb(index: int) -> RGB:
    """Resolve an xterm 256-color index to an RGB triplet.

    0-15 map to the standard palette, 16-231 to the 6x6x6 cube and
    232-255 to the 24-step grayscale ramp.
    """
    if not 0 <= index <= 255:
        raise ValueError(f"Color index out of range: {index}")
    if index < 16:
        return STANDARD_PALETTE[index]
    if index < 232:
        cube = index - 16
        return (
            _CUBE_LEVELS[cube // 36],
            _CUBE_LEVELS[(cube % 36) // 6],
            _CUBE_LEVELS[cube % 6],
        )
    gray = 8 + (index - 232) * 10
    return (gray, gray, gray)


@dataclass(frozen=True)
class Color:
    """A foreground or background color.

    Either a palette ``index`` (0-255) or a direct ``rgb`` triplet.
    """

    index: int | None = None
    rgb: RGB | None = None

    def __post_init__(self) -> None:
        if (self.index is None) == (self.rgb is None):
            raise ValueError("Color needs exactly one of index or rgb")
        if self.index is not None and not 0 <= self.index <= 255:
            raise ValueError(f"Color index out of range: {self.index}")

    @classmethod
    def indexed(cls, index: int) -> Color:
        return cls(index=index)

    @classmethod
    def from_rgb(cls, red: int, green: int, blue: int) -> Color:
        return cls(rgb=(_clamp(red), _clamp(green), _clamp(blue)))

    @property
    def triplet(self) -> RGB:
        if self.rgb is not None:
            return self.rgb
        return indexed_rgb(self.index)  # type: ignore[arg-type]

    @property
    def name(self) -> str:
        """Human-readable name for the 16 standard colors, hex otherwise."""
        if self.index is not None and self.index < 16:
            base = COLOR_NAMES[self.index % 8]
            return f"bright_{base}" if self.index >= 8 else base
        r, g, b = self.triplet
        return f"#{r:02x}{g:02x}{b:02x}"


def _clamp(value: int) -> int:
    return max(0, min(255, value))
