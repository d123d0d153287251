"""Linked editing: keep sibling text ranges identical while one of them is edited."""

from linkedit.linked.controller import LinkedEditingController, LinkedEditingState
from linkedit.linked.synchronizer import EditCommand, EditSynchronizer, transform

__all__ = [
    "EditCommand",
    "EditSynchronizer",
    "LinkedEditingController",
    "LinkedEditingState",
    "transform",
]
