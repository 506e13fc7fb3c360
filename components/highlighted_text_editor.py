"""
Qt side of the highlighting engine.

RuleSetHighlighter renders StyledText results into a QTextDocument and
HighlightedTextEditor wraps it in a QPlainTextEdit with the editor callbacks
(editing began, commit, text change, selection change, introspection).
"""

import bisect
import logging
from typing import Callable, Iterable, NamedTuple

from PyQt6.QtCore import QTimer, pyqtSignal
from PyQt6.QtGui import (
    QColor, QFont, QFontDatabase, QSyntaxHighlighter, QTextCharFormat, QTextCursor, QTextDocument, QTextFormat,
)
from PyQt6.QtWidgets import QPlainTextEdit, QScrollBar

from components.text_model import HighlightedTextModel
from highlighting.engine import StyledText, build_styled_text
from highlighting.rules import HighlightRule, TextRange
from highlighting.styles import (
    DEFAULT_BASE_STYLE, BaseStyle, Color, CustomKey, FontDescriptor, FontTrait, OpaqueValue, StyleKey,
)

HIGHLIGHT_DEBOUNCE_MS = 150


# --- Conversions ---
def utf16_offsets(text: str) -> list[int]:
    """UTF-16 offset of every code point index in `text`, plus one for len(text)."""
    offsets = [0] * (len(text) + 1)
    position = 0
    for i, char in enumerate(text):
        offsets[i] = position
        position += 2 if ord(char) > 0xFFFF else 1
    offsets[len(text)] = position
    return offsets


def codepoint_index(text: str, utf16_position: int) -> int:
    """Inverse of utf16_offsets: the code point index at a UTF-16 position."""
    offsets = utf16_offsets(text)
    return bisect.bisect_left(offsets, utf16_position)


def custom_property_id(key: CustomKey, property_ids: dict[str, int]) -> int:
    """
    QTextFormat user property holding `key`, allocated in `property_ids`.

    Ids are handed out in first-seen order, so they are only meaningful
    together with the map that allocated them.
    """
    if key.name not in property_ids:
        property_ids[key.name] = QTextFormat.Property.UserProperty.value + len(property_ids)
    return property_ids[key.name]


def to_qcolor(color: Color) -> QColor:
    return QColor(color.red, color.green, color.blue, color.alpha)


def _apply_font(fmt: QTextCharFormat, font: FontDescriptor):
    if FontTrait.MONOSPACE in font.traits:
        # The base family may be proportional
        fmt.setFontFamilies([QFontDatabase.systemFont(QFontDatabase.SystemFont.FixedFont).family()])
        fmt.setFontFixedPitch(True)
        fmt.setFontStyleHint(QFont.StyleHint.Monospace)
    else:
        fmt.setFontFamilies([font.family])
    fmt.setFontPointSize(font.size)
    fmt.setFontWeight(int(font.weight))
    fmt.setFontItalic(font.italic)
    if FontTrait.CONDENSED in font.traits:
        fmt.setFontStretch(QFont.Stretch.Condensed.value)
    elif FontTrait.EXPANDED in font.traits:
        fmt.setFontStretch(QFont.Stretch.Expanded.value)


def to_char_format(attributes: dict, property_ids: dict[str, int] | None = None) -> QTextCharFormat:
    """Map resolved engine attributes to a QTextCharFormat."""
    if property_ids is None:
        property_ids = {}
    fmt = QTextCharFormat()
    for key, value in attributes.items():
        raw = value.value if isinstance(value, OpaqueValue) else value
        if key is StyleKey.FONT:
            _apply_font(fmt, value)
        elif key is StyleKey.FOREGROUND and isinstance(value, Color):
            fmt.setForeground(to_qcolor(value))
        elif key is StyleKey.BACKGROUND and isinstance(value, Color):
            fmt.setBackground(to_qcolor(value))
        elif key is StyleKey.UNDERLINE:
            if isinstance(value, Color):
                fmt.setFontUnderline(True)
                fmt.setUnderlineColor(to_qcolor(value))
            else:
                fmt.setFontUnderline(bool(raw))
        elif key is StyleKey.STRIKETHROUGH:
            fmt.setFontStrikeOut(bool(raw))
        elif key is StyleKey.LINK:
            fmt.setAnchor(True)
            fmt.setAnchorHref(str(raw))
        elif key is StyleKey.TOOLTIP:
            fmt.setToolTip(str(raw))
        elif isinstance(key, CustomKey):
            fmt.setProperty(custom_property_id(key, property_ids), raw)
        else:
            logging.debug(f"No Qt mapping for {key} = {value!r}")
    return fmt


# --- Highlighter ---
class RuleSetHighlighter(QSyntaxHighlighter):
    """
    Applies a rule set to a whole QTextDocument.

    The engine works on the full text, so a change in one block can restyle
    others (multi-line rules). While the user types, only the edited block is
    highlighted, on its own text. The full-document pass runs once typing
    pauses for HIGHLIGHT_DEBOUNCE_MS. Passes that produce the same StyledText
    as the last render do nothing.
    """

    def __init__(self, document: QTextDocument | None, rules: Iterable[HighlightRule] = (),
                 base: BaseStyle | None = None):
        super().__init__(document)
        self.rules = tuple(rules)
        self.base = base or DEFAULT_BASE_STYLE
        self.last_styled_text: StyledText | None = None
        self.last_error: Exception | None = None
        # CustomKey name -> QTextFormat user property id, for this document
        self.property_ids: dict[str, int] = {}

        self._block_starts: list[int] = []
        self._block_texts: list[str] = []
        self._run_starts: list[int] = []
        self._run_formats: list[tuple[TextRange, QTextCharFormat]] = []

        self.refresh_timer = QTimer(self)
        self.refresh_timer.setSingleShot(True)
        self.refresh_timer.timeout.connect(self.refresh)

    def set_rules(self, rules: Iterable[HighlightRule]):
        self.rules = tuple(rules)
        self.refresh()

    def set_base(self, base: BaseStyle):
        self.base = base
        self.refresh()

    def custom_property_id(self, key: CustomKey) -> int:
        """Property id under which formats of this highlighter store `key`."""
        return custom_property_id(key, self.property_ids)

    def _document_text(self) -> str:
        document = self.document()
        if document is None:
            return ""
        # Raw text keeps non-breaking spaces; blocks are separated by U+2029
        return document.toRawText().replace('\u2029', '\n')

    def _highlight(self, text: str) -> StyledText:
        try:
            styled = build_styled_text(text, self.rules, self.base)
            self.last_error = None
            return styled
        except Exception as e:
            logging.exception(f"Highlighting failed, showing plain text: {e}")
            self.last_error = e
            return StyledText(text, self.base)

    def _formats(self, styled: StyledText) -> list[tuple[TextRange, QTextCharFormat]]:
        return [(text_range, to_char_format(attributes, self.property_ids))
                for text_range, attributes in styled.runs()]

    def refresh(self) -> bool:
        """
        Re-run the engine over the whole document and rehighlight it now.

        Returns True when the result differs from the last render.
        """
        self.refresh_timer.stop()
        styled = self._highlight(self._document_text())
        if styled == self.last_styled_text:
            logging.debug("Highlight result unchanged, skipping re-render")
            return False
        self._store(styled)
        self.rehighlight()
        return True

    def _store(self, styled: StyledText):
        self.last_styled_text = styled
        self._block_texts = styled.text.split('\n')
        self._block_starts = []
        position = 0
        for block_text in self._block_texts:
            self._block_starts.append(position)
            position += len(block_text) + 1
        self._run_formats = self._formats(styled)
        self._run_starts = [text_range.start for text_range, _ in self._run_formats]

    def _is_current(self, block_number: int, text: str) -> bool:
        return (self.last_styled_text is not None
                and block_number < len(self._block_texts)
                and self._block_texts[block_number] == text
                and self.document().blockCount() == len(self._block_texts))

    def highlightBlock(self, text: str):
        block_number = self.currentBlock().blockNumber()
        if not self._is_current(block_number, text):
            # Edited block: style it on its own until the debounced full pass
            self.refresh_timer.start(HIGHLIGHT_DEBOUNCE_MS)
            if text:
                run_formats = self._formats(self._highlight(text))
                self._apply_formats(text, 0, [text_range.start for text_range, _ in run_formats], run_formats)
            return

        if text:
            self._apply_formats(text, self._block_starts[block_number], self._run_starts, self._run_formats)

    def _apply_formats(self, text: str, block_start: int, run_starts: list[int],
                       run_formats: list[tuple[TextRange, QTextCharFormat]]):
        block_end = block_start + len(text)
        offsets = utf16_offsets(text)

        index = max(bisect.bisect_right(run_starts, block_start) - 1, 0)
        while index < len(run_formats):
            text_range, fmt = run_formats[index]
            if text_range.start >= block_end:
                break
            start = max(text_range.start, block_start) - block_start
            end = min(text_range.end, block_end) - block_start
            if end > start:
                self.setFormat(offsets[start], offsets[end] - offsets[start], fmt)
            index += 1


# --- Editor Widget ---
class EditorInternals(NamedTuple):
    text_view: QPlainTextEdit
    scroll_bar: QScrollBar | None


class HighlightedTextEditor(QPlainTextEdit):
    """Plain text editor highlighting its content with a rule set."""
    editingStarted = pyqtSignal()
    editingFinished = pyqtSignal()
    contentChanged = pyqtSignal(str)
    selectionRangeChanged = pyqtSignal(object)  # TextRange

    def __init__(self, rules: Iterable[HighlightRule] = (), model: HighlightedTextModel | None = None,
                 base: BaseStyle | None = None, parent=None):
        super().__init__(parent)
        self.model = model if model is not None else HighlightedTextModel()
        self._updating = False
        self._introspect: Callable[[EditorInternals], None] | None = None
        self._last_selection: TextRange | None = None

        self.highlighter = RuleSetHighlighter(self.document(), rules, base)
        self.set_text(self.model.text)

        self.textChanged.connect(self._on_text_changed)
        self.selectionChanged.connect(self._on_selection_changed)
        self.cursorPositionChanged.connect(self._on_selection_changed)
        self.model.textChanged.connect(self._on_model_text_changed)

    # --- Rules ---
    @property
    def highlight_rules(self) -> tuple[HighlightRule, ...]:
        return self.highlighter.rules

    def set_highlight_rules(self, rules: Iterable[HighlightRule]):
        self.highlighter.set_rules(rules)
        self._run_introspect()

    @property
    def styled_text(self) -> StyledText | None:
        return self.highlighter.last_styled_text

    # --- Text ---
    def set_text(self, text: str):
        """Replace the content, keeping the selection clamped to the new length."""
        cursor = self.textCursor()
        anchor, position = cursor.anchor(), cursor.position()

        self._updating = True
        try:
            self.setPlainText(text)
            self.model.text = text
            self.highlighter.refresh()
            length = self.document().characterCount() - 1
            cursor = self.textCursor()
            cursor.setPosition(min(anchor, length))
            cursor.setPosition(min(position, length), QTextCursor.MoveMode.KeepAnchor)
            self.setTextCursor(cursor)
        finally:
            self._updating = False
        self._run_introspect()

    def selected_range(self) -> TextRange:
        """Current selection in Python string indices."""
        cursor = self.textCursor()
        text = self.toPlainText()
        return TextRange(codepoint_index(text, cursor.selectionStart()),
                         codepoint_index(text, cursor.selectionEnd()))

    def _on_text_changed(self):
        if self._updating:
            return
        text = self.toPlainText()
        self._updating = True
        try:
            self.model.text = text
        finally:
            self._updating = False
        self.contentChanged.emit(text)

    def _on_model_text_changed(self, text: str):
        if self._updating or text == self.toPlainText():
            return
        self.set_text(text)

    def _on_selection_changed(self):
        if self._updating:
            return
        # selectionChanged and cursorPositionChanged often fire together
        selection = self.selected_range()
        if selection != self._last_selection:
            self._last_selection = selection
            self.selectionRangeChanged.emit(selection)

    # --- Editing state ---
    def focusInEvent(self, event):
        super().focusInEvent(event)
        self.editingStarted.emit()

    def focusOutEvent(self, event):
        super().focusOutEvent(event)
        self.editingFinished.emit()

    # --- Callback builders ---
    def on_editing_changed(self, callback: Callable[[], None]) -> "HighlightedTextEditor":
        self.editingStarted.connect(callback)
        return self

    def on_commit(self, callback: Callable[[], None]) -> "HighlightedTextEditor":
        self.editingFinished.connect(callback)
        return self

    def on_text_change(self, callback: Callable[[str], None]) -> "HighlightedTextEditor":
        self.contentChanged.connect(callback)
        return self

    def on_selection_change(self, callback: Callable[[TextRange], None]) -> "HighlightedTextEditor":
        self.selectionRangeChanged.connect(callback)
        return self

    def introspect(self, callback: Callable[[EditorInternals], None]) -> "HighlightedTextEditor":
        """Give `callback` the underlying widgets now and after every programmatic update."""
        self._introspect = callback
        self._run_introspect()
        return self

    def _run_introspect(self):
        if self._introspect:
            self._introspect(EditorInternals(self, self.verticalScrollBar()))
