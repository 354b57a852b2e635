"""
ingestion/audio_loader.py — File I/O boundary for decoding audio to samples.

Only the chroma key estimator needs decoded samples; probing and shifting
go through ffprobe/ffmpeg (ingestion/ffmpeg.py). Everything downstream
(core/audio/features.py) takes pre-loaded (y, sr) arrays — never paths.

Usage:
    from ingestion.audio_loader import load_audio
    y, sr = load_audio("/path/to/track.mp3", duration=30.0)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import numpy as np

# Supported audio file extensions (must be loadable by librosa / soundfile)
AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {".mp3", ".wav", ".flac", ".aiff", ".aif", ".ogg", ".m4a", ".opus", ".aac"}
)

# Default: load only the first N seconds to avoid OOM on full-length tracks
DEFAULT_DURATION: float = 30.0


def load_audio(
    path: str | Path,
    *,
    duration: float | None = DEFAULT_DURATION,
    sr: int | None = None,
    mono: bool = True,
    check_suffix: bool = True,
    librosa: Any = None,
) -> tuple[np.ndarray, int]:
    """Load an audio file and return (y, sr).

    Args:
        path: Absolute or relative path to an audio file.
        duration: Maximum seconds to load. None loads the whole file.
        sr: Target sample rate in Hz. None preserves the native rate.
        mono: Mix down to mono when True (default).
        check_suffix: Reject paths whose extension is not in AUDIO_EXTENSIONS.
                      Disable for spooled buffers, which carry no name.
        librosa: Injected librosa module. None = import lazily.

    Returns:
        (y, sr) — float32 numpy array of audio samples and sample rate.

    Raises:
        FileNotFoundError: File does not exist at the given path.
        ValueError: File extension is not a supported audio format.
        RuntimeError: librosa/soundfile could not decode the file
                      (corrupted, truncated, DRM-protected, etc.).
    """
    if librosa is None:
        import librosa  # deferred to allow testing without audio backend

    file_path = Path(path)

    if not file_path.exists():
        raise FileNotFoundError(f"Audio file not found: {file_path}")

    if check_suffix and file_path.suffix.lower() not in AUDIO_EXTENSIONS:
        raise ValueError(
            f"Unsupported audio format {file_path.suffix!r}. "
            f"Supported: {sorted(AUDIO_EXTENSIONS)}"
        )

    try:
        y, loaded_sr = librosa.load(
            file_path,
            sr=sr,
            mono=mono,
            duration=duration,
            offset=0.0,
        )
    except Exception as exc:
        raise RuntimeError(f"Failed to decode audio file {file_path.name!r}: {exc}") from exc

    return y, int(loaded_sr)
