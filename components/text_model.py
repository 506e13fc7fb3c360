"""
Observable text model for HighlightedTextEditor.

Holds the editor's text and its character count. Several editors (or a
status bar) can share one model and follow its signals instead of polling
the widget.
"""

from PyQt6.QtCore import QObject, pyqtSignal


class HighlightedTextModel(QObject):
    textChanged = pyqtSignal(str)
    charactersChanged = pyqtSignal(int)

    def __init__(self, text: str = "", parent=None):
        super().__init__(parent)
        self._text = text
        # Counted in Python code points
        self._characters = len(text)

    @property
    def text(self) -> str:
        return self._text

    @text.setter
    def text(self, value: str):
        if value == self._text:
            return
        self._text = value
        self.textChanged.emit(value)
        self._update_characters(len(value))

    @property
    def characters(self) -> int:
        return self._characters

    def set_initial_text(self, text: str):
        """Replace the text and character count in one go."""
        self.text = text
        self._update_characters(len(text))

    def _update_characters(self, count: int):
        if count != self._characters:
            self._characters = count
            self.charactersChanged.emit(count)
