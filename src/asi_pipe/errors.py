"""Decoder error taxonomy.

Every failure raised by a decoder is a :class:`DecodeError` subclass with a
stable ``code``. The orchestrator records per-file failures by that code and
keeps going with the next file; only :class:`NoFilesFound` and
:class:`IngestionFailed` reach the caller as terminal errors.

``structural`` marks failures that happen mid-stream (a file that started
decoding but turned out to be malformed). They abort only that file's
contribution, exactly like other per-file errors, but are flagged separately
so callers can tell damaged files from merely unexpected ones.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence


class DecodeError(RuntimeError):
    """Base class for all decoder failures.

    The message is meant to be actionable: it carries the offending path and a
    short context dump (first few items only).
    """

    code = "DecodeError"
    structural = False

    def __init__(
        self,
        message: str,
        *,
        path: str | Path | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.path = Path(path) if path is not None else None
        self.context = context or {}
        self.reason = message
        base = message
        if self.path is not None:
            base += f" | file={self.path.name}"
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in list(self.context.items())[:8])
            base += f" | ctx: {ctx}"
        super().__init__(base)


class NoFilesFound(DecodeError):
    code = "NoFilesFound"


class InvalidMagicNumber(DecodeError):
    code = "InvalidMagicNumber"


class TruncatedHeader(DecodeError):
    code = "TruncatedHeader"


class TruncatedPixelData(DecodeError):
    code = "TruncatedPixelData"
    structural = True


class InvalidDimensions(DecodeError):
    code = "InvalidDimensions"


class MissingTimeInformation(DecodeError):
    code = "MissingTimeInformation"


class UnrecognizedFilenameFormat(DecodeError):
    code = "UnrecognizedFilenameFormat"


class UnrecognizedFileFormat(DecodeError):
    code = "UnrecognizedFileFormat"


class MissingRequiredAttribute(DecodeError):
    code = "MissingRequiredAttribute"

    def __init__(
        self,
        message: str,
        *,
        missing_keys: Sequence[str] | None = None,
        path: str | Path | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.missing_keys = list(missing_keys or [])
        if self.missing_keys:
            message += f" | missing={self.missing_keys}"
        super().__init__(message, path=path, context=context)


class ArchiveCorrupt(DecodeError):
    code = "ArchiveCorrupt"
    structural = True


class ReadError(DecodeError):
    """An ``OSError`` raised while a file was being read."""

    code = "ReadError"
    structural = True


class IngestionFailed(DecodeError):
    """No input file could be decoded; ``failures`` lists why."""

    code = "IngestionFailed"

    def __init__(self, message: str, *, failures: Sequence[Any] = ()):
        self.failures = list(failures)
        super().__init__(message, context={"n_failures": len(self.failures)})


class UnsupportedCapability(UserWarning):
    """A runtime capability is missing and a slower fallback path is used.

    This is a warning category, not an error: decoding still succeeds.
    """

    code = "UnsupportedCapability"
