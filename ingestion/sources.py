"""
ingestion/sources.py — Resolve an AudioStream to something a codec can open.

ffprobe/ffmpeg and librosa want a filesystem path. Callers may hand the
pipeline a path, a seekable binary buffer or an open file descriptor;
buffers and descriptors are spooled to a private temporary file for the
duration of one operation.

Guarantees:
    - The caller's path is never modified or deleted, and a caller's
      descriptor is never closed.
    - A caller's buffer is read from its current position and then seeked
      back, so the position observed by the caller does not move.
    - Temporary files are removed when the context exits, even on error.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from core.audio.errors import MissingInput, UnreadableStream
from core.audio.types import AudioStream

logger = logging.getLogger(__name__)


def is_path_like(stream: object) -> bool:
    """True for str / os.PathLike inputs, False for file objects."""
    return isinstance(stream, (str, os.PathLike))


def stream_name(stream: AudioStream) -> str:
    """Best-effort filename for a stream ('' for anonymous buffers)."""
    if is_path_like(stream):
        return Path(stream).name
    name = getattr(stream, "name", "")
    return Path(name).name if isinstance(name, str) else ""


def stream_suffix(stream: AudioStream) -> str:
    """Lowercase file suffix of a stream, e.g. '.wav' ('' if unknown)."""
    return Path(stream_name(stream)).suffix.lower()


def stream_stem(stream: AudioStream) -> str:
    """Filename without suffix, 'stream' for anonymous buffers."""
    return Path(stream_name(stream)).stem or "stream"


@contextmanager
def local_path(stream: AudioStream | None) -> Iterator[Path]:
    """Yield a filesystem path holding the stream's bytes.

    Args:
        stream: Path to an existing file, a readable + seekable binary
                file object, or an open file descriptor. Buffers are copied
                from their current position.

    Yields:
        Path readable for the duration of the ``with`` block.

    Raises:
        MissingInput: stream is None or an empty path.
        UnreadableStream: Path does not exist, the descriptor is invalid,
                          or the buffer is not readable/seekable.
    """
    if stream is None or (isinstance(stream, str) and not stream.strip()):
        raise MissingInput("No audio stream or filename provided")

    if is_path_like(stream):
        path = Path(stream)
        if not path.is_file():
            raise UnreadableStream(f"Audio file not found: {path}")
        yield path
        return

    if isinstance(stream, int) and not isinstance(stream, bool):
        # Read through a duplicate so the caller's descriptor stays open.
        try:
            fh = os.fdopen(os.dup(stream), "rb")
        except OSError as exc:
            raise UnreadableStream(f"Invalid file descriptor {stream}: {exc}") from exc
        with fh, local_path(fh) as path:
            yield path
        return

    if not hasattr(stream, "read") or not hasattr(stream, "seek"):
        raise UnreadableStream(
            f"Unsupported stream type {type(stream).__name__}: need a path or a seekable buffer"
        )

    try:
        position = stream.tell()
    except (OSError, ValueError) as exc:
        raise UnreadableStream(f"Audio buffer is not seekable: {exc}") from exc

    fd, tmp_name = tempfile.mkstemp(prefix="transposer-", suffix=stream_suffix(stream))
    tmp_path = Path(tmp_name)
    try:
        try:
            with os.fdopen(fd, "wb") as fh:
                shutil.copyfileobj(stream, fh)
        except (OSError, ValueError) as exc:
            raise UnreadableStream(f"Failed to read audio buffer: {exc}") from exc
        finally:
            stream.seek(position)
        logger.debug("Spooled buffer to %s (%d bytes)", tmp_path, tmp_path.stat().st_size)
        yield tmp_path
    finally:
        tmp_path.unlink(missing_ok=True)
