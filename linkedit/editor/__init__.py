"""Qt editor widgets with linked editing support."""

from linkedit.editor.code_editor import LinkedEditor
from linkedit.editor.dispatch import QtDispatcher

__all__ = ["LinkedEditor", "QtDispatcher"]
