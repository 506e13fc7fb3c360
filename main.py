import sys
import os
import codecs
import logging
from PyQt6.QtWidgets import (
    QApplication, QMainWindow, QFileDialog, QMessageBox, QStatusBar, QLabel, QFontDialog, QPlainTextEdit,
)
from PyQt6.QtGui import QAction, QActionGroup, QColor, QFont, QPalette
from PyQt6.QtCore import QObject, QSettings, QThread, pyqtSignal

from components.highlighted_text_editor import HighlightedTextEditor
from components.text_model import HighlightedTextModel
from highlighting.presets import PRESETS, get_preset
from highlighting.styles import BaseStyle, Color, FontDescriptor


# --- Configuration ---
APP_NAME = "Highlighted Text Editor"
ORG_NAME = "HighlightedTextEditor"
DEFAULT_ENCODING = 'utf-8'
DEFAULT_PRESET = 'markdown'
MAX_TEXT_FILE_SIZE = 50 * 1024 * 1024  # 50MB
CHUNK_SIZE = 1024 * 1024  # 1MB chunks for file operations

# Preset picked from the file extension when a file is opened
PRESET_BY_EXTENSION = {
    '.md': 'markdown',
    '.markdown': 'markdown',
    '.txt': 'url',
    '.log': 'url',
}

# --- Logging Setup ---
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


# --- Helper Functions ---
# Longest marks first: the UTF-32 LE mark starts with the UTF-16 LE one
BOM_ENCODINGS = (
    (codecs.BOM_UTF32_LE, 'utf-32'),
    (codecs.BOM_UTF32_BE, 'utf-32'),
    (codecs.BOM_UTF8, 'utf-8-sig'),
    (codecs.BOM_UTF16_LE, 'utf-16'),
    (codecs.BOM_UTF16_BE, 'utf-16'),
)


def encoding_from_bom(head: bytes):
    """Codec for a file starting with `head`, or None without a byte order mark.

    The returned codecs consume the mark, so it never shows up in the text.
    """
    for bom, encoding in BOM_ENCODINGS:
        if head.startswith(bom):
            return encoding
    return None


def base_style_for(font: QFont, color_hex: str) -> BaseStyle:
    """Engine base style matching the editor's current Qt font."""
    # Pixel-sized fonts report -1
    size = font.pointSizeF() if font.pointSizeF() > 0 else 10
    return BaseStyle(FontDescriptor(font.family(), size), Color.from_hex(color_hex))


# --- File Worker for Background Operations ---
class FileWorker(QObject):
    """Reads or writes one file off the GUI thread, in CHUNK_SIZE pieces."""
    finished = pyqtSignal(str, str)  # content (empty after a save), encoding
    error = pyqtSignal(str)
    progress = pyqtSignal(int)

    def __init__(self, file_path, encoding=None, content_to_save=None):
        super().__init__()
        self.file_path = file_path
        self.encoding = encoding
        self.content_to_save = content_to_save
        self._is_running = True

    def run(self):
        try:
            if self.content_to_save is not None:
                self._save_file()
            else:
                self._load_file()
        except Exception as e:
            logging.exception(f"File operation error: {e}")
            self.error.emit(str(e))

    def _save_file(self):
        encoding = self.encoding or DEFAULT_ENCODING
        logging.info(f"Saving '{self.file_path}' with encoding '{encoding}'")
        total = len(self.content_to_save)

        with open(self.file_path, 'w', encoding=encoding, errors='replace') as f:
            for i in range(0, total, CHUNK_SIZE):
                if not self._is_running:
                    raise InterruptedError("Save cancelled")
                f.write(self.content_to_save[i:i + CHUNK_SIZE])
                self.progress.emit(min(i + CHUNK_SIZE, total) * 100 // total)

        self.progress.emit(100)
        self.finished.emit("", encoding)

    def _load_file(self):
        file_size = os.path.getsize(self.file_path)
        if file_size > MAX_TEXT_FILE_SIZE:
            raise ValueError(f"'{os.path.basename(self.file_path)}' is too large to open "
                             f"({file_size:,} bytes, limit {MAX_TEXT_FILE_SIZE:,})")

        if self.encoding is None:
            with open(self.file_path, 'rb') as f:
                self.encoding = encoding_from_bom(f.read(4)) or DEFAULT_ENCODING
        logging.info(f"Loading '{self.file_path}' with encoding '{self.encoding}'")

        content = []
        with open(self.file_path, 'r', encoding=self.encoding, errors='replace') as f:
            while chunk := f.read(CHUNK_SIZE):
                if not self._is_running:
                    raise InterruptedError("Load cancelled")
                content.append(chunk)
                # Byte position, text length differs for multi-byte encodings
                self.progress.emit(min(f.buffer.tell() * 100 // file_size, 100) if file_size else 100)

        self.progress.emit(100)
        self.finished.emit(''.join(content), self.encoding)

    def stop(self):
        self._is_running = False


# --- Main Application ---
class EditorWindow(QMainWindow):

    def __init__(self):
        super().__init__()
        self.settings = QSettings(ORG_NAME, APP_NAME)
        self.current_file = None
        self.current_encoding = DEFAULT_ENCODING
        self.current_preset = None

        # Background file operation state
        self.file_thread = None
        self.file_worker = None
        self._is_busy = False
        self._file_operation = ""
        self._finished_path = None
        self._after_save = None

        # Atom One Dark theme color scheme
        self.colors = {
            "black": "#282c34",      # One Dark background
            "black2": "#21252b",     # Darker background variant
            "white": "#abb2bf",      # One Dark main text color
            "gray2": "#2c313c",      # One Dark sidebar/UI color
            "gray3": "#3e4451",      # One Dark border/inactive color
            "gray4": "#5c6370",      # One Dark comment/muted text
            "blue": "#61afef",
            "green": "#98c379",
            "red": "#e06c75",
            "orange": "#d19a66",
            "yellow": "#e5c07b",
            "purple": "#c678dd",
            "cyan": "#56b6c2",
            "selection": "#3e4451",
        }

        self.model = HighlightedTextModel()
        self.initUI()
        self.loadSettings()

    def initUI(self):
        self.setWindowTitle(f"Untitled - {APP_NAME}")
        self.setGeometry(100, 100, 800, 600)

        self.text_edit = HighlightedTextEditor(model=self.model)
        self.text_edit.setFrameStyle(0)
        self.setCentralWidget(self.text_edit)

        self.status_bar = QStatusBar()
        self.setStatusBar(self.status_bar)
        self.characters_label = QLabel("0 characters")
        self.preset_label = QLabel("Plain Text")
        self.selection_label = QLabel("Sel 0-0")
        self.status_bar.addWidget(self.characters_label)
        self.status_bar.addWidget(self.preset_label)
        self.status_bar.addWidget(QLabel(), 1)  # Spacer with stretch
        self.status_bar.addWidget(self.selection_label)

        self.model.charactersChanged.connect(self.update_characters)
        self.text_edit.on_selection_change(self.update_selection)
        self.text_edit.document().modificationChanged.connect(self.update_title)

        self.createMenus()
        self.setupTheme()

    def createMenus(self):
        menu_bar = self.menuBar()

        file_menu = menu_bar.addMenu('&File')
        self.add_menu_action(file_menu, '&Open...', self.open_file, 'Ctrl+O')
        self.add_menu_action(file_menu, '&Save', self.save_file, 'Ctrl+S')
        self.add_menu_action(file_menu, 'Save &As...', self.save_file_as, 'Ctrl+Shift+S')
        file_menu.addSeparator()
        self.add_menu_action(file_menu, 'E&xit', self.close, 'Ctrl+Q')

        view_menu = menu_bar.addMenu('&View')
        self.wrap_action = self.add_menu_action(view_menu, '&Word Wrap', self.toggle_word_wrap, checkable=True)
        self.add_menu_action(view_menu, '&Font...', self.choose_font)

        highlight_menu = menu_bar.addMenu('&Highlighting')
        self.preset_group = QActionGroup(self)
        self.preset_group.setExclusive(True)
        for name in [None] + sorted(PRESETS):
            self.add_menu_action(highlight_menu, name.title() if name else 'Plain Text',
                                 lambda checked, n=name: self.apply_preset(n), group=self.preset_group, data=name)

    def add_menu_action(self, menu, text, slot, shortcut=None, checkable=False, group=None, data=None):
        """Add an action to `menu`. Actions in an exclusive `group` are checkable and carry `data`."""
        action = QAction(text, self)
        if shortcut:
            action.setShortcut(shortcut)
        if group is not None:
            group.addAction(action)
            action.setData(data)
            checkable = True
        action.setCheckable(checkable)
        action.triggered.connect(slot)
        menu.addAction(action)
        return action

    def setupTheme(self):
        palette = QPalette()
        palette.setColor(QPalette.ColorRole.Window, QColor(self.colors["black"]))
        palette.setColor(QPalette.ColorRole.WindowText, QColor(self.colors["white"]))
        palette.setColor(QPalette.ColorRole.Base, QColor(self.colors["black2"]))
        palette.setColor(QPalette.ColorRole.Text, QColor(self.colors["white"]))
        palette.setColor(QPalette.ColorRole.Highlight, QColor(self.colors["selection"]))
        palette.setColor(QPalette.ColorRole.HighlightedText, QColor(self.colors["white"]))
        QApplication.instance().setPalette(palette)

        self.setStyleSheet(f"""
            QPlainTextEdit {{
                background-color: {self.colors["black2"]};
                color: {self.colors["white"]};
                border: none;
                padding: 4px;
            }}
            QStatusBar {{
                background-color: {self.colors["gray2"]};
                color: {self.colors["gray4"]};
            }}
        """)

    # --- Highlighting ---
    def apply_preset(self, name):
        self.current_preset = name
        self.text_edit.highlighter.set_base(base_style_for(self.text_edit.font(), self.colors["white"]))
        self.text_edit.set_highlight_rules(get_preset(name, self.colors) if name else [])
        self.preset_label.setText(name.title() if name else "Plain Text")
        for action in self.preset_group.actions():
            action.setChecked(action.data() == name)
        logging.info(f"Highlighting preset: {name or 'none'}")

    # --- File Operations ---
    def open_file(self):
        if not self.maybe_save(then=self.open_file):
            return
        file_path, _ = QFileDialog.getOpenFileName(self, "Open File", self.settings.value("lastDir/open", ""),
                                                   "All Files (*)")
        if file_path:
            self.load_file(file_path)

    def load_file(self, file_path, encoding=None):
        """Read `file_path` in the background. Without `encoding` it comes from the byte order mark."""
        if self._is_busy:
            return
        self._is_busy = True
        self.text_edit.setReadOnly(True)
        self._file_operation = "Loading"
        self.status_bar.showMessage(f"Loading {os.path.basename(file_path)}...")
        self._start_file_worker(FileWorker(file_path, encoding), self.on_file_loaded)

    def save_file(self):
        if self.current_file:
            return self.save_to_file(self.current_file)
        return self.save_file_as()

    def save_file_as(self):
        file_path, _ = QFileDialog.getSaveFileName(self, "Save As", self.current_file or "", "All Files (*)")
        if file_path:
            return self.save_to_file(file_path)
        return False

    def save_to_file(self, file_path):
        """Start writing the document to `file_path`. Returns False when another file operation is running."""
        if self._is_busy:
            return False
        self._is_busy = True
        self._file_operation = "Saving"
        self.status_bar.showMessage(f"Saving {os.path.basename(file_path)}...")
        self._start_file_worker(FileWorker(file_path, self.current_encoding, self.model.text), self.on_file_saved)
        return True

    def _start_file_worker(self, worker, on_finished):
        self.file_thread = QThread()
        self.file_worker = worker
        worker.moveToThread(self.file_thread)

        # Bound methods of this window, so the slots run on the GUI thread
        worker.finished.connect(self.cleanup_file_operation)
        worker.error.connect(self.cleanup_file_operation)
        worker.finished.connect(on_finished)
        worker.error.connect(self.on_file_error)
        worker.progress.connect(self.show_file_progress)

        self.file_thread.started.connect(worker.run)
        self.file_thread.start()

    def show_file_progress(self, percent):
        self.status_bar.showMessage(f"{self._file_operation}... {percent}%")

    def on_file_loaded(self, content, encoding):
        file_path = self._finished_path
        self.current_file = file_path
        self.current_encoding = encoding
        self.settings.setValue("lastDir/open", os.path.dirname(file_path))
        self.model.set_initial_text(content)
        self.text_edit.document().setModified(False)

        ext = os.path.splitext(file_path)[1].lower()
        self.apply_preset(PRESET_BY_EXTENSION.get(ext, self.current_preset))
        self.update_title()
        self.status_bar.showMessage(f"Loaded {os.path.basename(file_path)}", 3000)

    def on_file_saved(self, _content, encoding):
        self.current_file = self._finished_path
        self.current_encoding = encoding
        self.text_edit.document().setModified(False)
        self.update_title()
        self.status_bar.showMessage(f"Saved {os.path.basename(self.current_file)}", 3000)

        then, self._after_save = self._after_save, None
        if then:
            then()

    def on_file_error(self, error_msg):
        self._after_save = None
        QMessageBox.critical(self, "Error", error_msg)
        self.status_bar.showMessage(f"{self._file_operation} failed", 3000)

    def cleanup_file_operation(self):
        self._is_busy = False
        self.text_edit.setReadOnly(False)
        if self.file_worker:
            self._finished_path = self.file_worker.file_path
            self.file_worker.stop()
        if self.file_thread and self.file_thread.isRunning():
            self.file_thread.quit()
            self.file_thread.wait()
        self.file_thread = None
        self.file_worker = None

    def maybe_save(self, then=None):
        """
        True when the document can be dropped right away.

        Choosing Save returns False: the save runs in the background and
        `then` is called once it succeeded.
        """
        if not self.text_edit.document().isModified():
            return True
        reply = QMessageBox.question(self, APP_NAME, "The document has been modified.\nSave changes?",
                                     QMessageBox.StandardButton.Save | QMessageBox.StandardButton.Discard |
                                     QMessageBox.StandardButton.Cancel)
        if reply == QMessageBox.StandardButton.Save:
            self._after_save = then
            if not self.save_file():
                self._after_save = None
            return False
        return reply == QMessageBox.StandardButton.Discard

    # --- Settings ---
    def loadSettings(self):
        if geom := self.settings.value("geometry"):
            self.restoreGeometry(geom)

        font_family = self.settings.value("font/family", "Consolas")
        font_size = self.settings.value("font/size", 10, type=int)
        self.text_edit.setFont(QFont(font_family, font_size))

        self.wrap_action.setChecked(self.settings.value("wordWrap", False, type=bool))
        self.toggle_word_wrap()

        preset = self.settings.value("preset", DEFAULT_PRESET) or None
        self.apply_preset(preset if preset in PRESETS else None)

    def saveSettings(self):
        self.settings.setValue("geometry", self.saveGeometry())
        font = self.text_edit.font()
        self.settings.setValue("font/family", font.family())
        self.settings.setValue("font/size", font.pointSize())
        self.settings.setValue("wordWrap", self.wrap_action.isChecked())
        self.settings.setValue("preset", self.current_preset or "")

    # --- UI Updates ---
    def update_title(self):
        name = os.path.basename(self.current_file) if self.current_file else "Untitled"
        modified = "*" if self.text_edit.document().isModified() else ""
        self.setWindowTitle(f"{modified}{name} - {APP_NAME}")

    def update_characters(self, count):
        self.characters_label.setText(f"{count:,} characters")

    def update_selection(self, selection):
        self.selection_label.setText(f"Sel {selection.start}-{selection.end}")

    def toggle_word_wrap(self):
        wrap = self.wrap_action.isChecked()
        self.text_edit.setLineWrapMode(QPlainTextEdit.LineWrapMode.WidgetWidth if wrap
                                       else QPlainTextEdit.LineWrapMode.NoWrap)

    def choose_font(self):
        font, ok = QFontDialog.getFont(self.text_edit.font(), self)
        if ok:
            self.text_edit.setFont(font)
            self.text_edit.highlighter.set_base(base_style_for(font, self.colors["white"]))

    def closeEvent(self, event):
        if self._is_busy:
            self.status_bar.showMessage(f"{self._file_operation} in progress, try again when it finishes", 3000)
            event.ignore()
            return
        if self.maybe_save(then=self.close):
            self.saveSettings()
            event.accept()
        else:
            event.ignore()


def main():
    app = QApplication(sys.argv)
    app.setOrganizationName(ORG_NAME)
    app.setApplicationName(APP_NAME)

    window = EditorWindow()
    window.show()

    # Handle command line file
    if len(sys.argv) > 1 and os.path.isfile(sys.argv[1]):
        window.load_file(sys.argv[1])

    sys.exit(app.exec())


if __name__ == '__main__':
    main()
