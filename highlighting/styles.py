"""
Style values for the highlighting engine.

Toolkit-independent font and colour types. The rendering side (see
components/highlighted_text_editor.py) maps them to QFont / QColor.
"""

import enum
import platform
from dataclasses import dataclass, field, replace
from typing import Union


# --- Style Keys ---
class StyleKey(enum.Enum):
    """Presentation keys understood by the renderer."""
    FONT = "font"
    FOREGROUND = "foreground"
    BACKGROUND = "background"
    UNDERLINE = "underline"
    STRIKETHROUGH = "strikethrough"
    LINK = "link"
    TOOLTIP = "tooltip"


@dataclass(frozen=True)
class CustomKey:
    """Application-defined key, carried through to the renderer untouched."""
    name: str


# --- Font ---
class FontWeight(enum.IntEnum):
    LIGHT = 300
    NORMAL = 400
    MEDIUM = 500
    BOLD = 700


class FontSlant(enum.Enum):
    UPRIGHT = "upright"
    ITALIC = "italic"


class FontTrait(enum.Flag):
    """Symbolic traits merged into whatever font a range already has."""
    NONE = 0
    BOLD = enum.auto()
    ITALIC = enum.auto()
    MONOSPACE = enum.auto()
    CONDENSED = enum.auto()
    EXPANDED = enum.auto()


@dataclass(frozen=True)
class FontDescriptor:
    family: str
    size: float
    weight: FontWeight = FontWeight.NORMAL
    slant: FontSlant = FontSlant.UPRIGHT
    # Traits without a dedicated field (monospace, condensed, ...)
    extra_traits: FontTrait = FontTrait.NONE

    @property
    def traits(self) -> FontTrait:
        traits = self.extra_traits
        if self.weight >= FontWeight.BOLD:
            traits |= FontTrait.BOLD
        if self.slant is FontSlant.ITALIC:
            traits |= FontTrait.ITALIC
        return traits

    def with_traits(self, traits: FontTrait) -> "FontDescriptor":
        """Return a copy with `traits` added on top of the existing ones.

        Traits are only ever added; a font that is already bold stays bold.
        """
        if not traits:
            return self
        weight = FontWeight.BOLD if FontTrait.BOLD in traits else self.weight
        slant = FontSlant.ITALIC if FontTrait.ITALIC in traits else self.slant
        extra = self.extra_traits | (traits & ~(FontTrait.BOLD | FontTrait.ITALIC))
        return replace(self, weight=max(weight, self.weight), slant=slant, extra_traits=extra)

    @property
    def bold(self) -> bool:
        return FontTrait.BOLD in self.traits

    @property
    def italic(self) -> bool:
        return FontTrait.ITALIC in self.traits


# --- Color ---
@dataclass(frozen=True)
class Color:
    red: int
    green: int
    blue: int
    alpha: int = 255

    def __post_init__(self):
        for channel in (self.red, self.green, self.blue, self.alpha):
            if not 0 <= channel <= 255:
                raise ValueError(f"Color channel out of range: {channel}")

    @classmethod
    def from_hex(cls, value: str) -> "Color":
        """Parse '#rrggbb' or '#rrggbbaa'."""
        hex_str = value.lstrip('#')
        if len(hex_str) not in (6, 8):
            raise ValueError(f"Invalid color hex: {value}")
        try:
            channels = [int(hex_str[i:i + 2], 16) for i in range(0, len(hex_str), 2)]
        except ValueError as e:
            raise ValueError(f"Invalid color hex: {value}") from e
        return cls(*channels)

    def name(self) -> str:
        if self.alpha == 255:
            return f"#{self.red:02x}{self.green:02x}{self.blue:02x}"
        return f"#{self.red:02x}{self.green:02x}{self.blue:02x}{self.alpha:02x}"


@dataclass(frozen=True)
class OpaqueValue:
    """Any other style value (link target, underline flag, custom metadata)."""
    value: object = field(compare=True)


StyleValue = Union[FontDescriptor, Color, OpaqueValue]
AnyStyleKey = Union[StyleKey, CustomKey]


def as_style_value(value) -> StyleValue:
    """Tag a raw value with its place in the StyleValue union."""
    if isinstance(value, (FontDescriptor, Color, OpaqueValue)):
        return value
    return OpaqueValue(value)


# --- Base Style ---
@dataclass(frozen=True)
class BaseStyle:
    """Font and foreground colour laid over the whole text before any rule."""
    font: FontDescriptor
    foreground: Color


DEFAULT_EDITOR_FONT = FontDescriptor('Consolas' if platform.system() == 'Windows' else 'Menlo', 10)
# One Dark main text colour
DEFAULT_TEXT_COLOR = Color.from_hex("#abb2bf")
DEFAULT_BASE_STYLE = BaseStyle(DEFAULT_EDITOR_FONT, DEFAULT_TEXT_COLOR)
