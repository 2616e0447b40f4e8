"""Error types raised by the inlining pipeline."""

from __future__ import annotations


class InlinerError(Exception):
    """Base class for pipeline failures. ``kind`` identifies the failure class."""

    kind = "inliner_error"

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.source = source


class NotFound(InlinerError):
    """A stylesheet file or remote resource could not be read."""

    kind = "not_found"


class ParseFailure(InlinerError):
    """The CSS or HTML parser rejected the input."""

    kind = "parse_failure"
