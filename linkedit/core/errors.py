"""Exception types raised inside the linked editing pipeline.

None of these escape into the document-mutation path: the component that
catches one logs it and falls back to leaving the edit untouched.
"""
from __future__ import annotations


class LinkedEditingError(Exception):
    """Base class for linked editing failures."""


class PositionConversionError(LinkedEditingError):
    """An offset or position lies outside the document bounds."""


class MalformedRangeSet(LinkedEditingError):
    """A linked range set has ranges of unequal length or overlapping ranges."""


class NoCapableService(LinkedEditingError):
    """No language service advertises linked editing for a document."""


class LanguageServiceError(LinkedEditingError):
    """A language service answered a query with an error."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
