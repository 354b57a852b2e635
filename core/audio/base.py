"""
Capability protocols for the transposition pipeline.

Defines the contracts that probing, key estimation and pitch shifting
implementations must satisfy. This module is pure — no I/O, no
subprocesses, no side effects. Concrete implementations (ffprobe/ffmpeg,
librosa) live in ingestion/.

Structural typing: any class with the right method signatures satisfies
a protocol without inheriting from it, so tests can pass small in-memory
fakes instead of requiring a codec binary.
"""

import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from core.audio.types import AudioMetadata, AudioStream, KeyEstimate


@runtime_checkable
class MetadataProber(Protocol):
    """Protocol for lightweight container/codec metadata extraction."""

    def probe(self, stream: AudioStream) -> AudioMetadata:
        """
        Read container and codec attributes without a full decode.

        Must not move the read position of a caller-owned buffer.

        Args:
            stream: Path or seekable binary buffer.

        Returns:
            Freshly probed ``AudioMetadata``.

        Raises:
            UnreadableStream: Not parseable, or no audio track.
            ProcessingFailure: The probing tool itself could not run.
        """
        ...


@runtime_checkable
class KeyEstimator(Protocol):
    """Protocol for musical key estimation."""

    def detect_key(self, stream: AudioStream) -> KeyEstimate:
        """
        Produce a best-guess key, mode and confidence for a stream.

        Raises:
            UnreadableStream: Same condition as ``MetadataProber.probe``.
        """
        ...


@runtime_checkable
class PitchTransposer(Protocol):
    """Protocol for tempo-preserving pitch shifting."""

    def shift(
        self,
        stream: AudioStream,
        semitones: int,
        output_path: Path,
        *,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Path:
        """
        Shift a stream by ``semitones`` and write the result to ``output_path``.

        ``output_path`` only ever becomes visible complete: on any failure
        no file is left behind at that path.

        Args:
            stream: Path or seekable binary buffer. Never modified.
            semitones: Integer in [-12, 12]. 0 means verbatim byte copy.
            output_path: Destination chosen by the caller, unique per call.
            cancel_event: Set it to abort a shift in progress.
            timeout: Wall-clock limit in seconds. None = no limit.

        Returns:
            ``output_path``.

        Raises:
            InvalidShiftRange: Before any work, if semitones is out of range.
            UnreadableStream: The input cannot be opened or decoded.
            ProcessingFailure: Resampling or encoding failed.
            Cancelled: ``cancel_event`` was set or ``timeout`` elapsed.
        """
        ...
