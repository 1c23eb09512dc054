"""Loader exceptions.

Raised inside the loader and converted to ``ParseError`` records at the
file or reference boundary; none of them escape ``RepoLoader.load``.
"""

from __future__ import annotations

from fleetplan.models.repo import ErrorKind, ParseError


class LoaderError(Exception):
    """Base class for loader errors."""

    kind = ErrorKind.FILE

    def __init__(self, message: str, *, file: str = "", line: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.file = file
        self.line = line

    def to_parse_error(self, default_file: str = "") -> ParseError:
        return ParseError(
            file=self.file or default_file,
            message=self.message,
            line=self.line,
            kind=self.kind,
        )


class StructuralError(LoaderError):
    """The repository layout is unusable; nothing can be loaded."""

    kind = ErrorKind.STRUCTURAL


class FileError(LoaderError):
    """A declaration file could not be read or parsed."""

    kind = ErrorKind.FILE


class ValidationError(LoaderError):
    """A declaration is well-formed YAML but not a valid declaration."""

    kind = ErrorKind.VALIDATION


class PathEscapeError(LoaderError):
    """A reference resolves to a location outside the repository root."""

    kind = ErrorKind.PATH_ESCAPE
