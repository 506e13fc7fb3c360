"""
Highlighting engine.

Runs every rule's pattern over the full text and lays the rule's directives
over each match: base style first, then rule order, match order and
directive order. Later writes to the same key win.
"""

import bisect
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, NamedTuple

from highlighting.rules import HighlightRule, StyleDirective, TextRange
from highlighting.styles import (
    DEFAULT_BASE_STYLE, AnyStyleKey, BaseStyle, FontDescriptor, StyleKey, StyleValue, as_style_value,
)


class Match(NamedTuple):
    range: TextRange
    rule: HighlightRule


@dataclass(frozen=True)
class Overlay:
    range: TextRange
    key: AnyStyleKey
    value: StyleValue


@dataclass(frozen=True)
class StyledText:
    """
    Result of a highlight pass: the base style over the whole text plus the
    overlays recorded in application order.
    """
    text: str
    base: BaseStyle
    overlays: tuple[Overlay, ...] = ()

    @property
    def full_range(self) -> TextRange:
        return TextRange(0, len(self.text))

    def _base_value(self, key: AnyStyleKey):
        if key is StyleKey.FONT:
            return self.base.font
        if key is StyleKey.FOREGROUND:
            return self.base.foreground
        return None

    def value_at(self, index: int, key: AnyStyleKey):
        """Value of `key` at `index`, or None when nothing sets it."""
        if not 0 <= index < len(self.text):
            raise IndexError(f"Index {index} outside text of length {len(self.text)}")
        for overlay in reversed(self.overlays):
            if overlay.key == key and overlay.range.start <= index < overlay.range.end:
                return overlay.value
        return self._base_value(key)

    def font_at(self, index: int) -> FontDescriptor:
        return self.value_at(index, StyleKey.FONT)

    def attributes_at(self, index: int) -> dict:
        attributes = {StyleKey.FONT: self.base.font, StyleKey.FOREGROUND: self.base.foreground}
        for overlay in self.overlays:
            if overlay.range.start <= index < overlay.range.end:
                attributes[overlay.key] = overlay.value
        return attributes

    def runs(self) -> list[tuple[TextRange, dict]]:
        """Flatten the overlays into consecutive segments with their resolved attributes."""
        if not self.text:
            return []
        boundaries = {0, len(self.text)}
        for overlay in self.overlays:
            boundaries.add(overlay.range.start)
            boundaries.add(overlay.range.end)
        edges = sorted(boundaries)

        # One attribute slot per segment between edges, painted in application order
        segments = [{StyleKey.FONT: self.base.font, StyleKey.FOREGROUND: self.base.foreground}
                    for _ in range(len(edges) - 1)]
        for overlay in self.overlays:
            first = bisect.bisect_left(edges, overlay.range.start)
            last = bisect.bisect_left(edges, overlay.range.end)
            for index in range(first, last):
                segments[index][overlay.key] = overlay.value

        runs = []
        for start, end, attributes in zip(edges, edges[1:], segments):
            # Merge with the previous segment when nothing changed
            if runs and runs[-1][1] == attributes:
                runs[-1] = (TextRange(runs[-1][0].start, end), attributes)
            else:
                runs.append((TextRange(start, end), attributes))
        return runs


class _StyleAccumulator:
    """
    In-progress result of one pass. Keeps the overlays in application order
    and, separately, the font currently resolved for every position so trait
    merges never have to scan the overlays.
    """

    def __init__(self, text: str, base: BaseStyle):
        self.text = text
        self.base = base
        self.overlays: list[Overlay] = []
        # Non-overlapping (start, end, font) runs covering the text, sorted by start
        self._font_runs = [(0, len(text), base.font)] if text else []
        self._font_starts = [run[0] for run in self._font_runs]

    def check_range(self, text_range: TextRange):
        if not 0 <= text_range.start <= text_range.end <= len(self.text):
            raise IndexError(f"Range {tuple(text_range)} outside text of length {len(self.text)}")

    def font_at(self, index: int) -> FontDescriptor:
        pos = bisect.bisect_right(self._font_starts, index) - 1
        return self._font_runs[pos][2]

    def _set_font(self, text_range: TextRange, font: FontDescriptor):
        start, end = text_range
        if start == end:
            return
        # Runs from the one holding `start` up to the last one starting before `end`
        first = bisect.bisect_right(self._font_starts, start) - 1
        last = bisect.bisect_left(self._font_starts, end)
        head_start, _, head_font = self._font_runs[first]
        _, tail_end, tail_font = self._font_runs[last - 1]

        replacement = []
        if head_start < start:
            replacement.append((head_start, start, head_font))
        replacement.append((start, end, font))
        if tail_end > end:
            replacement.append((end, tail_end, tail_font))
        self._font_runs[first:last] = replacement
        self._font_starts[first:last] = [run[0] for run in replacement]

    def add(self, text_range: TextRange, key: AnyStyleKey, value: StyleValue):
        self.check_range(text_range)
        if key is StyleKey.FONT:
            if not isinstance(value, FontDescriptor):
                raise TypeError(f"Font overlay needs a FontDescriptor, got {type(value).__name__}")
            self._set_font(text_range, value)
        self.overlays.append(Overlay(text_range, key, value))

    def result(self) -> StyledText:
        return StyledText(self.text, self.base, tuple(self.overlays))


# --- Matcher ---
def find_matches(text: str, pattern: re.Pattern) -> Iterator[TextRange]:
    """
    Leftmost-first, non-overlapping matches of `pattern` over the whole text.

    Zero-length matches are skipped: they style nothing, and `finditer`
    already steps past them so empty patterns terminate.
    """
    for match in pattern.finditer(text):
        if match.end() == match.start():
            continue
        yield TextRange(match.start(), match.end())


def iter_rule_matches(text: str, rule: HighlightRule) -> Iterator[Match]:
    for text_range in find_matches(text, rule.pattern):
        yield Match(text_range, rule)


# --- Style Resolver ---
def resolve_directive(match_range: TextRange, directive: StyleDirective, accumulator: _StyleAccumulator):
    """Apply one directive of a rule to one of its matches."""
    accumulator.check_range(match_range)

    if directive.font_traits:
        # Mixed fonts under the match resolve to the font at its start
        current_font = accumulator.font_at(match_range.start)
        accumulator.add(match_range, StyleKey.FONT, current_font.with_traits(directive.font_traits))

    if directive.key is None or directive.calculate_value is None:
        return

    substring = accumulator.text[match_range.as_slice()]
    value = directive.calculate_value(substring, match_range)
    accumulator.add(match_range, directive.key, as_style_value(value))


# --- Output Assembler ---
def build_styled_text(text: str, rules: Iterable[HighlightRule], base: BaseStyle | None = None) -> StyledText:
    """
    Highlight `text` with `rules`.

    Args:
        text (str): The full text to highlight.
        rules (Iterable[HighlightRule]): Rules in precedence order; later rules win on overlaps.
        base (BaseStyle | None): Font and colour under every rule. Defaults to DEFAULT_BASE_STYLE.

    Returns:
        StyledText: The base style plus every overlay, in application order.
    """
    accumulator = _StyleAccumulator(text, base or DEFAULT_BASE_STYLE)

    rule_count = 0
    for rule in rules:
        rule_count += 1
        for match in iter_rule_matches(text, rule):
            for directive in rule.directives:
                resolve_directive(match.range, directive, accumulator)

    result = accumulator.result()
    logging.debug(f"Highlighted {len(text)} chars with {rule_count} rules: {len(result.overlays)} overlays")
    return result
