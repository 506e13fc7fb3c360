"""Tests for matching, style resolution and assembly of highlight passes."""

import re

import pytest

from highlighting.engine import StyledText, build_styled_text, find_matches, iter_rule_matches
from highlighting.rules import HighlightRule, StyleDirective, TextRange
from highlighting.styles import (
    DEFAULT_BASE_STYLE, BaseStyle, Color, CustomKey, FontDescriptor, FontTrait, FontWeight, OpaqueValue, StyleKey,
)

RED = Color.from_hex("#ff0000")
BLUE = Color.from_hex("#0000ff")
GREEN = Color.from_hex("#00ff00")
BASE = BaseStyle(FontDescriptor("Menlo", 12), Color.from_hex("#abb2bf"))


# --- Matcher ---
def test_find_matches_is_leftmost_first_and_non_overlapping() -> None:
    ranges = list(find_matches("aaaa", re.compile(r"aa")))
    assert ranges == [TextRange(0, 2), TextRange(2, 4)]


def test_find_matches_skips_zero_length_matches() -> None:
    assert list(find_matches("abc", re.compile(r""))) == []
    assert list(find_matches("a1b22", re.compile(r"\d*"))) == [TextRange(1, 2), TextRange(3, 5)]


def test_find_matches_restarts_on_each_call() -> None:
    pattern = re.compile(r"\w+")
    assert list(find_matches("one two", pattern)) == list(find_matches("one two", pattern))


def test_iter_rule_matches_carries_the_rule() -> None:
    rule = HighlightRule(r"x", [StyleDirective.foreground(RED)])
    matches = list(iter_rule_matches("x.x", rule))
    assert [m.range for m in matches] == [TextRange(0, 1), TextRange(2, 3)]
    assert all(m.rule is rule for m in matches)


# --- Assembly ---
def test_base_style_covers_whole_text_with_no_rules() -> None:
    styled = build_styled_text("hello\nworld", [], BASE)
    assert styled.overlays == ()
    assert styled.full_range == TextRange(0, 11)
    for i in range(len(styled.text)):
        assert styled.font_at(i) == BASE.font
        assert styled.value_at(i, StyleKey.FOREGROUND) == BASE.foreground
    assert styled.runs() == [(TextRange(0, 11), {StyleKey.FONT: BASE.font, StyleKey.FOREGROUND: BASE.foreground})]


def test_default_base_style_is_used_when_none_given() -> None:
    styled = build_styled_text("abc", [])
    assert styled.base == DEFAULT_BASE_STYLE


def test_empty_text_has_no_runs() -> None:
    styled = build_styled_text("", [HighlightRule(r"x", [StyleDirective.foreground(RED)])], BASE)
    assert styled.runs() == []
    assert styled.overlays == ()


def test_build_is_idempotent() -> None:
    rules = [
        HighlightRule(r"\bfoo\b", [StyleDirective.foreground(RED), StyleDirective.traits(FontTrait.BOLD)]),
        HighlightRule(r"o+", [StyleDirective.computed(StyleKey.TOOLTIP, lambda s, r: f"{s}@{r.start}")]),
    ]
    text = "foo bar foo"
    assert build_styled_text(text, rules, BASE) == build_styled_text(text, rules, BASE)


def test_later_rule_wins_on_overlap() -> None:
    rules = [
        HighlightRule(r"foo", [StyleDirective.foreground(RED)]),
        HighlightRule(r"foobar", [StyleDirective.foreground(BLUE)]),
    ]
    styled = build_styled_text("foobar", rules, BASE)
    for i in range(3):
        assert styled.value_at(i, StyleKey.FOREGROUND) == BLUE
    assert styled.value_at(4, StyleKey.FOREGROUND) == BLUE


def test_earlier_rule_keeps_the_part_later_rule_does_not_cover() -> None:
    rules = [
        HighlightRule(r"foobar", [StyleDirective.foreground(BLUE)]),
        HighlightRule(r"foo", [StyleDirective.foreground(RED)]),
    ]
    styled = build_styled_text("foobar", rules, BASE)
    assert styled.value_at(0, StyleKey.FOREGROUND) == RED
    assert styled.value_at(3, StyleKey.FOREGROUND) == BLUE


def test_directives_apply_in_declaration_order() -> None:
    rule = HighlightRule(r"abc", [StyleDirective.foreground(RED), StyleDirective.foreground(GREEN)])
    styled = build_styled_text("abc", [rule], BASE)
    assert [o.value for o in styled.overlays] == [RED, GREEN]
    assert styled.value_at(1, StyleKey.FOREGROUND) == GREEN


def test_rule_without_matches_leaves_styling_alone() -> None:
    bold = HighlightRule(r"bold", [StyleDirective.traits(FontTrait.BOLD)])
    missing = HighlightRule(r"zzz", [StyleDirective.foreground(RED)])
    with_missing = build_styled_text("a bold word", [bold, missing], BASE)
    without = build_styled_text("a bold word", [bold], BASE)
    assert with_missing == without


def test_heading_line_is_bold_and_next_line_is_plain() -> None:
    rule = HighlightRule(r"^#.*", [StyleDirective.traits(FontTrait.BOLD)], re.MULTILINE)
    styled = build_styled_text("# Heading\nplain text", [rule], BASE)
    for i in range(len("# Heading")):
        assert styled.font_at(i).bold
    for i in range(len("# Heading"), len(styled.text)):
        assert styled.font_at(i) == BASE.font
    assert styled.overlays[0].range == TextRange(0, 9)


# --- Style Resolver ---
def test_trait_directives_compose_within_a_match() -> None:
    rule = HighlightRule(r"word", [StyleDirective.traits(FontTrait.BOLD), StyleDirective.traits(FontTrait.ITALIC)])
    font = build_styled_text("word", [rule], BASE).font_at(0)
    assert font.bold and font.italic
    assert font.family == BASE.font.family and font.size == BASE.font.size


def test_single_trait_adds_to_existing_traits() -> None:
    italic_base = BaseStyle(FontDescriptor("Menlo", 12).with_traits(FontTrait.ITALIC), BASE.foreground)
    rule = HighlightRule(r"word", [StyleDirective.traits(FontTrait.BOLD)])
    font = build_styled_text("word", [rule], italic_base).font_at(0)
    assert font.bold and font.italic


def test_later_rule_merges_traits_into_font_left_by_earlier_rule() -> None:
    rules = [
        HighlightRule(r"abc", [StyleDirective.traits(FontTrait.BOLD)]),
        HighlightRule(r"abc", [StyleDirective.traits(FontTrait.MONOSPACE)]),
    ]
    font = build_styled_text("abc", rules, BASE).font_at(0)
    assert font.bold
    assert FontTrait.MONOSPACE in font.traits


def test_mixed_fonts_resolve_to_font_at_match_start() -> None:
    rules = [
        HighlightRule(r"ab", [StyleDirective.traits(FontTrait.ITALIC)]),
        HighlightRule(r"abcd", [StyleDirective.traits(FontTrait.BOLD)]),
    ]
    styled = build_styled_text("abcd", rules, BASE)
    # "ab" was italic, "cd" plain; the whole match takes the font at its start
    for i in range(4):
        assert styled.font_at(i).bold
        assert styled.font_at(i).italic


def test_computed_value_receives_matched_substring_and_range() -> None:
    seen = []

    def count(substring, text_range):
        seen.append((substring, text_range))
        return len(substring)

    rule = HighlightRule(r"\w+\(\)", [StyleDirective.computed(CustomKey("length"), count)])
    styled = build_styled_text("call foo() now", [rule], BASE)

    assert seen == [("foo()", TextRange(5, 10))]
    assert styled.overlays[-1].range == TextRange(5, 10)
    assert styled.value_at(5, CustomKey("length")) == OpaqueValue(5)
    assert styled.value_at(4, CustomKey("length")) is None


def test_computed_font_and_color_values_keep_their_type() -> None:
    rule = HighlightRule(r"x", [
        StyleDirective.computed(StyleKey.BACKGROUND, lambda s, r: GREEN),
        StyleDirective.computed(StyleKey.FONT, lambda s, r: FontDescriptor("Courier", 9, FontWeight.BOLD)),
    ])
    styled = build_styled_text("x", [rule], BASE)
    assert styled.value_at(0, StyleKey.BACKGROUND) == GREEN
    assert styled.font_at(0) == FontDescriptor("Courier", 9, FontWeight.BOLD)


def test_computed_font_must_be_a_font_descriptor() -> None:
    rule = HighlightRule(r"x", [StyleDirective.computed(StyleKey.FONT, lambda s, r: "bold please")])
    with pytest.raises(TypeError):
        build_styled_text("x", [rule], BASE)


def test_directive_with_key_and_traits_applies_both() -> None:
    rule = HighlightRule(r"x", [StyleDirective.foreground(RED, FontTrait.BOLD)])
    styled = build_styled_text("x", [rule], BASE)
    assert styled.font_at(0).bold
    assert styled.value_at(0, StyleKey.FOREGROUND) == RED


def test_noop_directive_contributes_nothing() -> None:
    rule = HighlightRule(r"x", [StyleDirective()])
    styled = build_styled_text("x", [rule], BASE)
    assert StyleDirective().is_noop
    assert styled.overlays == ()


def test_callback_errors_propagate() -> None:
    def explode(substring, text_range):
        raise RuntimeError("bad callback")

    rule = HighlightRule(r"x", [StyleDirective.computed(StyleKey.TOOLTIP, explode)])
    with pytest.raises(RuntimeError, match="bad callback"):
        build_styled_text("x", [rule], BASE)


# --- StyledText queries ---
def test_value_at_rejects_out_of_range_index() -> None:
    styled = StyledText("ab", BASE)
    with pytest.raises(IndexError):
        styled.value_at(2, StyleKey.FONT)


def test_runs_split_on_overlay_boundaries() -> None:
    rule = HighlightRule(r"bb", [StyleDirective.foreground(RED)])
    runs = build_styled_text("aabbcc", [rule], BASE).runs()
    assert [r for r, _ in runs] == [TextRange(0, 2), TextRange(2, 4), TextRange(4, 6)]
    assert runs[1][1][StyleKey.FOREGROUND] == RED
    assert runs[2][1][StyleKey.FOREGROUND] == BASE.foreground


def test_attributes_at_includes_custom_keys() -> None:
    rule = HighlightRule(r"b", [StyleDirective.attribute(CustomKey("token"), "name")])
    attributes = build_styled_text("abc", [rule], BASE).attributes_at(1)
    assert attributes[CustomKey("token")] == OpaqueValue("name")
    assert attributes[StyleKey.FONT] == BASE.font


def test_matches_on_non_bmp_text_use_python_indices() -> None:
    rule = HighlightRule(r"b+", [StyleDirective.foreground(RED)])
    styled = build_styled_text("😀bb", [rule], BASE)
    assert styled.overlays[0].range == TextRange(1, 3)


def test_runs_agree_with_attributes_at_on_a_long_document() -> None:
    rules = [
        HighlightRule(r"^#.*", [StyleDirective.traits(FontTrait.BOLD), StyleDirective.foreground(RED)],
                      flags=re.MULTILINE),
        HighlightRule(r"\*[^*\n]+\*", [StyleDirective.traits(FontTrait.ITALIC)]),
        HighlightRule(r"`[^`\n]+`", [StyleDirective.traits(FontTrait.MONOSPACE), StyleDirective.highlight(BLUE)]),
        HighlightRule(r"\d+", [StyleDirective.foreground(GREEN)]),
    ]
    text = "".join(f"# Section {i}\nsome *soft {i}* text with `code {i}` inside\n" for i in range(200))
    styled = build_styled_text(text, rules, BASE)
    runs = styled.runs()

    assert runs[0][0].start == 0
    assert runs[-1][0].end == len(text)
    for (previous, previous_attributes), (current, attributes) in zip(runs, runs[1:]):
        assert previous.end == current.start
        assert previous_attributes != attributes
    for text_range, attributes in runs[::37]:
        for index in range(text_range.start, text_range.end):
            assert styled.attributes_at(index) == attributes


def test_overlapping_trait_matches_keep_font_runs_consistent() -> None:
    rules = [
        HighlightRule(r"ab", [StyleDirective.traits(FontTrait.BOLD)]),
        HighlightRule(r"bc", [StyleDirective.traits(FontTrait.ITALIC)]),
        HighlightRule(r"abcd", [StyleDirective.traits(FontTrait.MONOSPACE)]),
    ]
    styled = build_styled_text("xabcdx" * 50, rules, BASE)
    # The last rule spreads the font found at each match start over the whole match
    for offset in range(0, 300, 6):
        assert styled.font_at(offset).traits == FontTrait.NONE
        assert styled.font_at(offset + 1).traits == FontTrait.BOLD | FontTrait.MONOSPACE
        assert styled.font_at(offset + 4).traits == FontTrait.BOLD | FontTrait.MONOSPACE
        assert styled.font_at(offset + 5).traits == FontTrait.NONE
