from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from PySide6.QtCore import QMimeData, Qt, QTimer, Signal
from PySide6.QtGui import QColor, QKeyEvent, QTextCursor, QTextFormat
from PySide6.QtWidgets import QPlainTextEdit, QTextEdit

from linkedit.core.config import LINKED_EDITING_KEY, ConfigManager
from linkedit.core.threads import BackgroundWorkers, Dispatcher
from linkedit.editor.dispatch import QtDispatcher
from linkedit.lang.document import TextDocument
from linkedit.lang.services import LanguageServiceRegistry
from linkedit.linked.controller import LinkedEditingController
from linkedit.linked.synchronizer import EditCommand

logger = logging.getLogger(__name__)

_BLOCKING_MODIFIERS = (
    Qt.KeyboardModifier.ControlModifier
    | Qt.KeyboardModifier.AltModifier
    | Qt.KeyboardModifier.MetaModifier
)


class LinkedEditor(QPlainTextEdit):
    """Plain text editor that mirrors edits across linked ranges.

    Typing, deleting and pasting are turned into :class:`EditCommand` objects
    and handed to the linked editing controller, which applies them back
    through :meth:`apply_edit`, possibly rewritten to cover every linked range.
    """

    selectionSettled = Signal(int)

    supports_atomic_replace = True
    supports_lock = False

    def __init__(
        self,
        path: Path | None = None,
        parent=None,
        *,
        config: ConfigManager | None = None,
        registry: LanguageServiceRegistry | None = None,
        dispatcher: Dispatcher | None = None,
        workers: BackgroundWorkers | None = None,
    ) -> None:
        super().__init__(parent)
        self.path = path
        self.config = config or ConfigManager()
        self.registry = registry or LanguageServiceRegistry(self.config)
        self.dispatcher = dispatcher or QtDispatcher(self)
        self._linked_selections: dict[int, QTextEdit.ExtraSelection] = {}
        self._next_decoration = 0

        self._selection_timer = QTimer(self)
        self._selection_timer.setSingleShot(True)
        debounce = self.config.get(LINKED_EDITING_KEY, {}).get("selection_debounce_ms", 100)
        self._selection_timer.setInterval(int(debounce))
        self._selection_timer.timeout.connect(self._emit_selection_settled)

        self.cursorPositionChanged.connect(self._highlight_current_line)
        self.cursorPositionChanged.connect(self._selection_timer.start)
        self.document().contentsChange.connect(self._on_contents_change)

        self.linked_editing = LinkedEditingController(
            self,
            self.registry,
            config=self.config,
            dispatcher=self.dispatcher,
            workers=workers,
        )
        if path is not None:
            if path.exists():
                self.setPlainText(path.read_text(encoding="utf-8"))
            self.linked_editing.open(path)

    def load_text(self, text: str, path: Path | str | None = None) -> None:
        """Replace the buffer and reopen it under ``path``."""

        self.linked_editing.close()
        self.setPlainText(text)
        if path is not None:
            self.path = Path(path)
        if self.path is not None:
            self.linked_editing.open(self.path)

    # EditorHost
    def document_snapshot(self) -> TextDocument:
        return TextDocument(self.toPlainText())

    def cursor_offset(self) -> int:
        return self.textCursor().position()

    def apply_edit(self, command: EditCommand) -> None:
        cursor = QTextCursor(self.document())
        cursor.beginEditBlock()
        cursor.setPosition(command.offset)
        cursor.setPosition(command.end, QTextCursor.MoveMode.KeepAnchor)
        cursor.insertText(command.text)
        cursor.endEditBlock()
        caret = QTextCursor(self.document())
        caret.setPosition(min(command.caret_after(), self.document().characterCount() - 1))
        self.setTextCursor(caret)

    def add_selection_listener(self, callback: Callable[[int], None]) -> None:
        self.selectionSettled.connect(callback)

    def remove_selection_listener(self, callback: Callable[[int], None]) -> None:
        try:
            self.selectionSettled.disconnect(callback)
        except (RuntimeError, TypeError):
            logger.debug("Selection listener was not connected")

    # DecorationHost
    def replace_decorations(self, old: list[Any], new: list[tuple[int, int]]) -> list[int]:
        for handle in old:
            self._linked_selections.pop(handle, None)
        handles: list[int] = []
        for start, end in new:
            self._next_decoration += 1
            self._linked_selections[self._next_decoration] = self._linked_selection(start, end)
            handles.append(self._next_decoration)
        self._highlight_current_line()
        return handles

    def linked_ranges_highlighted(self) -> list[tuple[int, int]]:
        return [
            (sel.cursor.selectionStart(), sel.cursor.selectionEnd())
            for sel in self._linked_selections.values()
        ]

    def _linked_selection(self, start: int, end: int) -> QTextEdit.ExtraSelection:
        selection = QTextEdit.ExtraSelection()
        cursor = QTextCursor(self.document())
        cursor.setPosition(start)
        cursor.setPosition(end, QTextCursor.MoveMode.KeepAnchor)
        selection.cursor = cursor
        selection.format.setBackground(QColor(80, 120, 200, 60))
        return selection

    def _highlight_current_line(self) -> None:
        extra_selections = []
        if not self.isReadOnly():
            selection = QTextEdit.ExtraSelection()
            selection.format.setBackground(QColor(0x2A, 0x2D, 0x2E))
            selection.format.setProperty(QTextFormat.Property.FullWidthSelection, True)
            selection.cursor = self.textCursor()
            selection.cursor.clearSelection()
            extra_selections.append(selection)
        extra_selections.extend(self._linked_selections.values())
        self.setExtraSelections(extra_selections)

    # Edit interception
    def keyPressEvent(self, event: QKeyEvent) -> None:  # noqa: N802 - Qt override
        command = self._command_for_key(event)
        if command is not None and self.linked_editing.handle_edit(command):
            event.accept()
            return
        super().keyPressEvent(event)

    def insertFromMimeData(self, source: QMimeData) -> None:  # noqa: N802 - Qt override
        if source.hasText() and not self.isReadOnly():
            command = self._command_for_selection(source.text(), "paste")
            if self.linked_editing.handle_edit(command):
                return
        super().insertFromMimeData(source)

    def _command_for_key(self, event: QKeyEvent) -> EditCommand | None:
        if self.isReadOnly() or event.modifiers() & _BLOCKING_MODIFIERS:
            return None
        cursor = self.textCursor()
        key = event.key()
        if key in (Qt.Key.Key_Backspace, Qt.Key.Key_Delete):
            if cursor.hasSelection():
                return self._command_for_selection("", "delete")
            position = cursor.position()
            if key == Qt.Key.Key_Backspace:
                return EditCommand(position - 1, 1, "", "backspace", anchor=position) if position > 0 else None
            if position >= self.document().characterCount() - 1:
                return None
            return EditCommand(position, 1, "", "delete", anchor=position)
        text = event.text()
        if not text or not text.isprintable():
            return None
        return self._command_for_selection(text, "typing")

    def _command_for_selection(self, text: str, origin: str) -> EditCommand:
        cursor = self.textCursor()
        start = cursor.selectionStart()
        return EditCommand(start, cursor.selectionEnd() - start, text, origin, anchor=cursor.position())

    # Change tracking
    def _on_contents_change(self, position: int, removed: int, added: int) -> None:
        self.linked_editing.invalidate()
        QTimer.singleShot(0, self, self._refresh_after_edit)

    def _refresh_after_edit(self) -> None:
        self._selection_timer.stop()
        self.linked_editing.document_changed(self.cursor_offset())

    def _emit_selection_settled(self) -> None:
        self.selectionSettled.emit(self.cursor_offset())

    def closeEvent(self, event) -> None:  # noqa: N802 - Qt override
        self.linked_editing.dispose()
        super().closeEvent(event)
