"""
core/audio/errors.py — Error kinds raised by the transposition pipeline.

Every failure surfaces as exactly one subclass of TranspositionError.
Callers branch on the class (or the stable `kind` string), never on the
message text. Nothing in the pipeline retries or swallows these.

    MissingInput       no stream / filename supplied
    InvalidShiftRange  semitones outside [-12, 12]
    UnreadableStream   container unparseable or no audio track
    ProcessingFailure  resample / encode / probe-of-output failure
    Cancelled          cancelled by the caller or timed out
"""

from __future__ import annotations


class TranspositionError(Exception):
    """Base class for all pipeline errors.

    Attributes:
        kind: Stable machine-readable error kind.
        step: Pipeline step the error was raised in, when known.
        detail: Underlying tool output (stderr tail) for diagnostics.
    """

    kind: str = "transposition_error"

    def __init__(self, message: str, *, step: str | None = None, detail: str = "") -> None:
        super().__init__(message)
        self.step = step
        self.detail = detail

    def with_step(self, step: str) -> TranspositionError:
        """Tag the error with the pipeline step it escaped from (first tag wins)."""
        if self.step is None:
            self.step = step
        return self

    def __str__(self) -> str:
        message = super().__str__()
        if self.step:
            return f"[{self.step}] {message}"
        return message


class MissingInput(TranspositionError):
    """No input stream or filename was given."""

    kind = "missing_input"


class InvalidShiftRange(TranspositionError):
    """Semitone shift is not an integer in [-12, 12]."""

    kind = "invalid_shift_range"


class UnreadableStream(TranspositionError):
    """The input is missing, not a parseable container, or has no audio track."""

    kind = "unreadable_stream"


class ProcessingFailure(TranspositionError):
    """A codec, resampler or probe-of-output step failed."""

    kind = "processing_failure"


class Cancelled(TranspositionError):
    """The operation was cancelled or exceeded its timeout."""

    kind = "cancelled"
