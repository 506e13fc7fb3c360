"""
Ready-made rule sets.

Order matters: later rules win where ranges overlap, so broad rules come
first and the more specific ones (code, links) last.
"""

import re

from highlighting.rules import HighlightRule, StyleDirective, TextRange
from highlighting.styles import Color, FontTrait, StyleKey

# Atom One Dark palette
DEFAULT_COLORS = {
    "black": "#282c34",
    "white": "#abb2bf",
    "gray3": "#3e4451",
    "gray4": "#5c6370",
    "blue": "#61afef",
    "green": "#98c379",
    "red": "#e06c75",
    "orange": "#d19a66",
    "yellow": "#e5c07b",
    "purple": "#c678dd",
    "cyan": "#56b6c2",
}

URL_PATTERN = re.compile(r'\b(?:https?://|www\.)[^\s<>()"\']+[^\s<>()"\'.,;:!?]', re.IGNORECASE)
MARKDOWN_LINK_PATTERN = re.compile(r'\[([^\]\n]+)\]\(([^)\s]+)(?:\s+"[^"]*")?\)')


def _color(colors: dict | None, key: str) -> Color:
    palette = colors if isinstance(colors, dict) else DEFAULT_COLORS
    return Color.from_hex(palette.get(key, DEFAULT_COLORS[key]))


def _url_target(substring: str, _range: TextRange) -> str:
    if substring.lower().startswith('www.'):
        return f"http://{substring}"
    return substring


def _markdown_link_target(substring: str, _range: TextRange) -> str:
    match = MARKDOWN_LINK_PATTERN.fullmatch(substring)
    return match.group(2) if match else substring


def url_rules(colors: dict | None = None) -> list[HighlightRule]:
    """Underline bare URLs and attach their target under StyleKey.LINK."""
    return [
        HighlightRule(URL_PATTERN, [
            StyleDirective.foreground(_color(colors, 'blue')),
            StyleDirective.attribute(StyleKey.UNDERLINE, True),
            StyleDirective.computed(StyleKey.LINK, _url_target),
        ]),
    ]


def markdown_rules(colors: dict | None = None) -> list[HighlightRule]:
    """CommonMark-ish inline and block highlighting."""
    code_background = _color(colors, 'gray3')
    rules = [
        # Headings: # through ######
        HighlightRule(r'^#{1,6}[ \t].*$', [
            StyleDirective.traits(FontTrait.BOLD),
            StyleDirective.foreground(_color(colors, 'red')),
        ], re.MULTILINE),

        # Block quotes
        HighlightRule(r'^[ \t]*>.*$', [
            StyleDirective.traits(FontTrait.ITALIC),
            StyleDirective.foreground(_color(colors, 'gray4')),
        ], re.MULTILINE),

        # List markers (bullet and ordered)
        HighlightRule(r'^[ \t]*(?:[-*+]|\d+[.)])(?=[ \t])', StyleDirective.foreground(_color(colors, 'orange')),
                      re.MULTILINE),

        # Horizontal rules
        HighlightRule(r'^[ \t]*(?:-{3,}|\*{3,}|_{3,})[ \t]*$', StyleDirective.foreground(_color(colors, 'gray4')),
                      re.MULTILINE),

        # Bold: **text** or __text__
        HighlightRule(r'(\*\*|__)(?=\S)(.+?)(?<=\S)\1', StyleDirective.traits(FontTrait.BOLD)),

        # Italic: *text* or _text_ (single delimiters only)
        HighlightRule(r'(?<![*\w])\*(?![*\s])(.+?)(?<![*\s])\*(?!\*)|(?<![_\w])_(?![_\s])(.+?)(?<![_\s])_(?![_\w])',
                      StyleDirective.traits(FontTrait.ITALIC)),

        # Strikethrough: ~~text~~
        HighlightRule(r'~~(?=\S)(.+?)(?<=\S)~~', StyleDirective.attribute(StyleKey.STRIKETHROUGH, True)),

        # Links: [label](target)
        HighlightRule(MARKDOWN_LINK_PATTERN, [
            StyleDirective.foreground(_color(colors, 'blue')),
            StyleDirective.computed(StyleKey.LINK, _markdown_link_target),
        ]),

        # Inline code
        HighlightRule(r'`[^`\n]+`', [
            StyleDirective.traits(FontTrait.MONOSPACE),
            StyleDirective.foreground(_color(colors, 'green')),
            StyleDirective.highlight(code_background),
        ]),

        # Fenced code blocks (multi-line, last so nothing inside is restyled)
        HighlightRule(r'^```[^\n]*\n.*?^```[ \t]*$', [
            StyleDirective.traits(FontTrait.MONOSPACE),
            StyleDirective.foreground(_color(colors, 'green')),
            StyleDirective.highlight(code_background),
        ], re.MULTILINE | re.DOTALL),
    ]
    return rules


PRESETS = {
    'markdown': markdown_rules,
    'url': url_rules,
}


def get_preset(name: str, colors: dict | None = None) -> list[HighlightRule]:
    """Build the named preset. Unknown names raise KeyError."""
    try:
        factory = PRESETS[name]
    except KeyError:
        raise KeyError(f"Unknown highlight preset '{name}'. Available: {', '.join(sorted(PRESETS))}") from None
    return factory(colors)
