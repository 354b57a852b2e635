"""
Shared fixtures for the test suite.

Centralizes the in-memory pipeline fakes so individual test files don't
need to repeat override/mock boilerplate. No fixture here spawns ffmpeg.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from api.deps import get_config, get_prober, get_transposer
from api.main import app
from core.audio.errors import Cancelled, TranspositionError, UnreadableStream
from core.audio.key_transform import validate_shift
from core.audio.types import AudioMetadata, AudioStream, KeyEstimate, Mode
from core.config import TranspositionConfig
from ingestion.sources import local_path

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

FAKE_AUDIO_BYTES: bytes = b"ID3\x04\x00fake-audio-payload" * 8
"""Bytes the fake prober accepts as audio."""

FAKE_ENCODED_BYTES: bytes = b"ID3\x04\x00fake-encoded-mp3" * 8
"""Bytes the fake transposer writes for any non-zero shift."""

NOT_AUDIO_BYTES: bytes = b"NOTAUDIO plain text"
"""Any file starting with these bytes is rejected by the fake prober."""


def make_metadata(**overrides: object) -> AudioMetadata:
    """Build an ``AudioMetadata`` with sensible defaults.

    Default attributes can be overridden via keyword arguments.
    """
    defaults: dict[str, object] = {
        "duration_sec": 3.0,
        "bitrate_bps": 128_000,
        "sample_rate_hz": 44100,
        "channel_count": 2,
        "codec_name": "mp3",
        "container_format": "mp3",
        "size_bytes": 48_000,
    }
    defaults.update(overrides)
    return AudioMetadata(**defaults)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeProber:
    """Deterministic prober — reads the file, never spawns ffprobe."""

    def __init__(self, metadata: AudioMetadata | None = None) -> None:
        self.metadata = metadata or make_metadata()
        self.calls: list[AudioStream] = []
        self.fail_with: TranspositionError | None = None

    def probe(self, stream: AudioStream) -> AudioMetadata:
        self.calls.append(stream)
        if self.fail_with is not None:
            raise self.fail_with
        with local_path(stream) as path:
            data = path.read_bytes()
        if data.startswith(NOT_AUDIO_BYTES):
            raise UnreadableStream("No audio stream found in file")
        return replace(self.metadata, size_bytes=len(data))


class FakeTransposer:
    """In-memory transposer honouring the shift contract without ffmpeg.

    Zero shift copies bytes verbatim; other shifts write FAKE_ENCODED_BYTES.
    Set ``fail_with`` to make the next calls raise.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[AudioStream, int, Path, float | None]] = []
        self.fail_with: TranspositionError | None = None

    def shift(
        self,
        stream: AudioStream,
        semitones: int,
        output_path: Path,
        *,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Path:
        self.calls.append((stream, semitones, Path(output_path), timeout))
        validate_shift(semitones)
        if self.fail_with is not None:
            raise self.fail_with
        if cancel_event is not None and cancel_event.is_set():
            raise Cancelled("ffmpeg cancelled by caller")
        with local_path(stream) as source:
            data = source.read_bytes()
        Path(output_path).write_bytes(data if semitones == 0 else FAKE_ENCODED_BYTES)
        return Path(output_path)

    def normalize(
        self,
        stream: AudioStream,
        output_path: Path,
        *,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Path:
        if self.fail_with is not None:
            raise self.fail_with
        with local_path(stream):
            pass
        Path(output_path).write_bytes(FAKE_ENCODED_BYTES)
        return Path(output_path)


class FakeKeyEstimator:
    """Always reports the same key."""

    def __init__(self, key: KeyEstimate | None = None) -> None:
        self.key = key or KeyEstimate(pitch_class="A", mode=Mode.MINOR, confidence=0.75)
        self.calls: list[AudioStream] = []

    def detect_key(self, stream: AudioStream) -> KeyEstimate:
        self.calls.append(stream)
        return self.key


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def audio_file(tmp_path: Path) -> Path:
    """A small file the fake prober accepts as audio."""
    path = tmp_path / "song.wav"
    path.write_bytes(FAKE_AUDIO_BYTES)
    return path


@pytest.fixture()
def api_client(tmp_path: Path):
    """FastAPI ``TestClient`` with config, prober and transposer overridden.

    The upload dir is a fresh temporary directory. The fakes and config are
    accessible as ``client.upload_dir``, ``client.prober`` and
    ``client.transposer``.
    """
    upload_dir = tmp_path / "uploads"
    upload_dir.mkdir()
    config = TranspositionConfig(upload_dir=upload_dir, max_upload_bytes=4096)
    prober = FakeProber()
    transposer = FakeTransposer()

    app.dependency_overrides[get_config] = lambda: config
    app.dependency_overrides[get_prober] = lambda: prober
    app.dependency_overrides[get_transposer] = lambda: transposer

    with TestClient(app) as c:
        c.upload_dir = upload_dir  # type: ignore[attr-defined]
        c.prober = prober  # type: ignore[attr-defined]
        c.transposer = transposer  # type: ignore[attr-defined]
        yield c

    app.dependency_overrides.clear()
