"""Error taxonomy shared by retrieval, supervision and scanning."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    RECOVERABLE_FALLBACK = "recoverable_fallback"
    FATAL_BUDGET = "fatal_budget"
    FATAL_INTEGRITY = "fatal_integrity"
    FATAL = "fatal"


class ScraperError(Exception):
    """Base class for scraper errors."""

    kind: ErrorKind = ErrorKind.FATAL


class RepositoryError(ScraperError):
    """Raised when a repository descriptor is invalid."""


class ToolUnavailableError(ScraperError):
    """Raised when a required external tool is missing or unsupported."""


class CommandFailedError(ScraperError):
    """Raised when an external command exits with a nonzero status."""

    kind = ErrorKind.RECOVERABLE_FALLBACK

    def __init__(
        self,
        message: str,
        *,
        command: str = "",
        exit_code: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.output = output


class LimitError(CommandFailedError):
    """Raised when a supervised command exceeds its budget."""

    kind = ErrorKind.FATAL_BUDGET


class SizeLimitError(LimitError):
    pass


class TimeLimitError(LimitError):
    pass


class RetrieverError(ScraperError):
    """Raised for unrecoverable retrieval failures."""


class ReferenceResolutionError(RetrieverError):
    """Raised when a requested revision cannot be trusted."""


class AmbiguousReferenceError(ReferenceResolutionError):
    pass


class MissingReferenceError(ReferenceResolutionError):
    pass


class UpdateFailedError(RetrieverError):
    kind = ErrorKind.RECOVERABLE_FALLBACK


class CheckoutFailedError(RetrieverError):
    pass


class MetadataError(ScraperError):
    """Raised when resource metadata cannot be read or generated."""


class IntegrityError(ScraperError):
    """Raised when persisted traversal state no longer matches the tree."""

    kind = ErrorKind.FATAL_INTEGRITY


def is_recoverable(exc: BaseException) -> bool:
    """Return True when an update failure may fall back to a full checkout."""
    if isinstance(exc, ScraperError):
        return exc.kind is ErrorKind.RECOVERABLE_FALLBACK
    return isinstance(exc, Exception)
