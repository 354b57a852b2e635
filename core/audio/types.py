"""
core/audio/types.py — Frozen data types for the transposition pipeline.

All types are frozen dataclasses — immutable value objects that can be
safely passed between layers and across worker threads.

Design principles:
    - No I/O, no state, no side effects.
    - Value invariants are enforced in __post_init__ so that a probe or
      estimator can never hand back a half-valid record.
    - Metadata is recomputed after every transform, never patched.
    - `KeyEstimate.label` is a computed property to avoid duplicate storage.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, TypeAlias

# Sharp-spelled chromatic pitch classes, index == pitch class number (C = 0).
PITCH_CLASSES: tuple[str, ...] = (
    "C",
    "C#",
    "D",
    "D#",
    "E",
    "F",
    "F#",
    "G",
    "G#",
    "A",
    "A#",
    "B",
)

SEMITONE_MIN: int = -12
SEMITONE_MAX: int = 12

AudioStream: TypeAlias = str | os.PathLike | BinaryIO | int
"""A path to decodable audio, a seekable binary file object, or an open file descriptor."""


class Mode(str, Enum):
    """Tonal quality of a key."""

    MAJOR = "major"
    MINOR = "minor"


@dataclass(frozen=True)
class AudioMetadata:
    """Container and codec attributes of an audio file, read without decoding.

    Invariants:
        duration_sec >= 0
        bitrate_bps >= 0
        sample_rate_hz > 0
        channel_count >= 1
        size_bytes >= 0
    """

    duration_sec: float
    """Total playback duration in seconds."""

    bitrate_bps: int
    """Overall container bitrate in bits per second. 0 when unknown."""

    sample_rate_hz: int
    """Sample rate of the first audio stream."""

    channel_count: int
    """Channel count of the first audio stream."""

    codec_name: str
    """Decoder name reported by the prober, e.g. 'mp3', 'pcm_s16le'."""

    container_format: str
    """Container/demuxer name, e.g. 'mp3', 'wav', 'mov,mp4,m4a,3gp,3g2,mj2'."""

    size_bytes: int
    """File size on disk in bytes."""

    def __post_init__(self) -> None:
        if self.duration_sec < 0:
            raise ValueError(f"duration_sec must be >= 0, got {self.duration_sec}")
        if self.bitrate_bps < 0:
            raise ValueError(f"bitrate_bps must be >= 0, got {self.bitrate_bps}")
        if self.sample_rate_hz <= 0:
            raise ValueError(f"sample_rate_hz must be > 0, got {self.sample_rate_hz}")
        if self.channel_count < 1:
            raise ValueError(f"channel_count must be >= 1, got {self.channel_count}")
        if self.size_bytes < 0:
            raise ValueError(f"size_bytes must be >= 0, got {self.size_bytes}")


@dataclass(frozen=True)
class KeyEstimate:
    """Best-guess musical key of an audio file.

    Invariants:
        pitch_class in PITCH_CLASSES (sharp spelling)
        0.0 <= confidence <= 1.0
    """

    pitch_class: str
    """Root pitch class, sharp-spelled, e.g. 'A', 'F#'."""

    mode: Mode
    """Major or minor."""

    confidence: float
    """Estimator confidence in [0.0, 1.0]."""

    def __post_init__(self) -> None:
        if self.pitch_class not in PITCH_CLASSES:
            raise ValueError(
                f"pitch_class must be one of {PITCH_CLASSES}, got {self.pitch_class!r}"
            )
        # Accept plain strings ("minor") from callers and store the enum.
        object.__setattr__(self, "mode", Mode(self.mode))
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")

    @property
    def label(self) -> str:
        """Human-readable key label, e.g. 'A minor', 'C# major'."""
        return f"{self.pitch_class} {self.mode.value}"


@dataclass(frozen=True)
class KeyTransform:
    """Result of mapping a key through a semitone shift."""

    original_key: str
    original_mode: Mode
    new_key: str
    new_mode: Mode
    semitones: int
    interval_name: str


@dataclass(frozen=True)
class TranspositionOption:
    """One row of the "what key would I land in" table."""

    semitones: int
    interval_name: str
    new_key: str


@dataclass(frozen=True)
class TransposeResult:
    """Outcome of a successful TranspositionPipeline.transpose() call.

    The file at `output_path` belongs to the caller from here on.
    """

    output_path: Path
    applied_shift: int
    metadata: AudioMetadata
    key_transform: KeyTransform | None = None
    processing_time_ms: float = 0.0


@dataclass(frozen=True)
class AnalysisReport:
    """Probe + key estimate + the 24 non-zero transposition options."""

    metadata: AudioMetadata
    key: KeyEstimate
    transpositions: tuple[TranspositionOption, ...] = ()
