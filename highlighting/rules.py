"""
Highlight rules: a compiled pattern plus the style directives applied to
each of its matches.
"""

import re
from dataclasses import dataclass
from typing import Callable, NamedTuple, Sequence

from highlighting.styles import AnyStyleKey, Color, FontTrait, StyleKey


class InvalidPatternError(ValueError):
    """Raised when a rule is built from a pattern `re` cannot compile."""


class TextRange(NamedTuple):
    """Half-open span of Python string indices."""
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start

    def as_slice(self) -> slice:
        return slice(self.start, self.end)


# (matched substring, matched range) -> style value
ValueCallback = Callable[[str, TextRange], object]


@dataclass(frozen=True)
class StyleDirective:
    key: AnyStyleKey | None = None
    calculate_value: ValueCallback | None = None
    font_traits: FontTrait = FontTrait.NONE

    # --- Constructors ---
    @classmethod
    def traits(cls, font_traits: FontTrait) -> "StyleDirective":
        return cls(font_traits=font_traits)

    @classmethod
    def attribute(cls, key: AnyStyleKey, value, font_traits: FontTrait = FontTrait.NONE) -> "StyleDirective":
        """Fixed value for `key` on every match."""
        return cls(key=key, calculate_value=_constant(value), font_traits=font_traits)

    @classmethod
    def computed(cls, key: AnyStyleKey, calculate_value: ValueCallback) -> "StyleDirective":
        """Value for `key` computed per match from the matched text and range."""
        if not callable(calculate_value):
            raise TypeError("calculate_value must be callable")
        return cls(key=key, calculate_value=calculate_value)

    @classmethod
    def foreground(cls, color: Color, font_traits: FontTrait = FontTrait.NONE) -> "StyleDirective":
        return cls.attribute(StyleKey.FOREGROUND, color, font_traits)

    @classmethod
    def highlight(cls, color: Color, font_traits: FontTrait = FontTrait.NONE) -> "StyleDirective":
        return cls.attribute(StyleKey.BACKGROUND, color, font_traits)

    @property
    def is_noop(self) -> bool:
        return not self.font_traits and (self.key is None or self.calculate_value is None)


def _constant(value) -> ValueCallback:
    def calculate(_substring: str, _range: TextRange):
        return value
    return calculate


@dataclass(frozen=True)
class HighlightRule:
    pattern: re.Pattern
    directives: tuple[StyleDirective, ...]

    def __init__(self, pattern: re.Pattern | str, directives: Sequence[StyleDirective], flags: int = 0):
        if isinstance(pattern, str):
            try:
                pattern = re.compile(pattern, flags)
            except re.error as e:
                raise InvalidPatternError(f"Invalid highlight pattern {pattern!r}: {e}") from e
        elif not isinstance(pattern, re.Pattern):
            raise TypeError(f"Expected a pattern string or compiled pattern, got {type(pattern).__name__}")
        elif flags:
            raise ValueError("flags cannot be combined with an already compiled pattern")
        if isinstance(directives, StyleDirective):
            directives = (directives,)
        object.__setattr__(self, 'pattern', pattern)
        object.__setattr__(self, 'directives', tuple(directives))

    @classmethod
    def single(cls, pattern: re.Pattern | str, directive: StyleDirective, flags: int = 0) -> "HighlightRule":
        return cls(pattern, (directive,), flags)
