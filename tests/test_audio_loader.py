"""
Tests for ingestion/audio_loader.py — file I/O boundary.

All tests mock librosa.load(), via patch.dict("sys.modules", ...) or the
librosa= keyword, to avoid requiring real audio files or audio backend.
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from ingestion.audio_loader import AUDIO_EXTENSIONS, DEFAULT_DURATION, load_audio


def _make_mock_librosa(sr: int = 44100, n_samples: int = 44100) -> MagicMock:
    """Return a mock librosa module that simulates a successful load."""
    mock = MagicMock()
    mock.load.return_value = (np.zeros(n_samples, dtype=np.float32), sr)
    return mock


class TestLoadAudioErrors:
    def test_missing_file(self, tmp_path):
        with patch.dict("sys.modules", {"librosa": _make_mock_librosa()}):
            with pytest.raises(FileNotFoundError, match="not found"):
                load_audio(tmp_path / "absent.mp3")

    def test_unsupported_extension(self, tmp_path):
        doc = tmp_path / "notes.pdf"
        doc.write_bytes(b"not audio")
        with patch.dict("sys.modules", {"librosa": _make_mock_librosa()}):
            with pytest.raises(ValueError, match="Unsupported audio format"):
                load_audio(doc)

    def test_decode_failure_wrapped(self, tmp_path):
        """Any librosa.load() failure surfaces as RuntimeError."""
        corrupt = tmp_path / "corrupt.wav"
        corrupt.write_bytes(b"garbage")
        mock = _make_mock_librosa()
        mock.load.side_effect = Exception("decode error")
        with patch.dict("sys.modules", {"librosa": mock}):
            with pytest.raises(RuntimeError, match="Failed to decode"):
                load_audio(corrupt)


class TestLoadAudioSuccess:
    def test_returns_samples_and_int_rate(self, tmp_path):
        track = tmp_path / "track.aac"
        track.write_bytes(b"fake")
        with patch.dict("sys.modules", {"librosa": _make_mock_librosa(sr=np.int64(22050))}):
            y, sr = load_audio(track)
        assert isinstance(y, np.ndarray)
        assert type(sr) is int
        assert sr == 22050

    def test_forwards_options(self, tmp_path):
        track = tmp_path / "track.flac"
        track.write_bytes(b"fake")
        mock = _make_mock_librosa()
        with patch.dict("sys.modules", {"librosa": mock}):
            load_audio(str(track), duration=15.0, sr=16000, mono=False)
        kwargs = mock.load.call_args.kwargs
        assert kwargs["duration"] == 15.0
        assert kwargs["sr"] == 16000
        assert kwargs["mono"] is False

    def test_default_duration(self, tmp_path):
        track = tmp_path / "track.mp3"
        track.write_bytes(b"fake")
        mock = _make_mock_librosa()
        with patch.dict("sys.modules", {"librosa": mock}):
            load_audio(track)
        assert mock.load.call_args.kwargs["duration"] == DEFAULT_DURATION


    def test_suffix_check_can_be_skipped(self, tmp_path):
        """Spooled buffers carry no suffix and are decoded anyway."""
        spooled = tmp_path / "transposer-abc123"
        spooled.write_bytes(b"fake")
        mock = _make_mock_librosa()
        y, sr = load_audio(spooled, check_suffix=False, librosa=mock)
        assert sr == 44100
        assert len(y) == 44100

    def test_injected_librosa_used(self, tmp_path):
        track = tmp_path / "track.wav"
        track.write_bytes(b"fake")
        mock = _make_mock_librosa(sr=8000)
        _, sr = load_audio(track, librosa=mock)
        assert sr == 8000
        assert mock.load.call_args.args[0] == track

    def test_injected_librosa_still_checks_suffix(self, tmp_path):
        doc = tmp_path / "notes.pdf"
        doc.write_bytes(b"not audio")
        with pytest.raises(ValueError, match="Unsupported audio format"):
            load_audio(doc, librosa=_make_mock_librosa())

class TestAudioExtensions:
    @pytest.mark.parametrize("ext", [".mp3", ".wav", ".m4a", ".aac", ".ogg", ".flac"])
    def test_upload_formats_supported(self, ext):
        assert ext in AUDIO_EXTENSIONS
