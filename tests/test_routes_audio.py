"""
Tests for api/routes/audio.py — HTTP adapters over the pipeline.

Uses the ``api_client`` fixture: a temporary upload dir plus fake prober
and transposer injected through ``app.dependency_overrides``. The real
TranspositionPipeline / AudioAnalysisEngine run on top of the fakes.
"""

from __future__ import annotations

import os

import pytest

from conftest import FAKE_AUDIO_BYTES, FAKE_ENCODED_BYTES, NOT_AUDIO_BYTES
from core.audio.errors import Cancelled, ProcessingFailure
from core.audio.types import PITCH_CLASSES


def _store(client, name: str = "audio-abc.wav", data: bytes = FAKE_AUDIO_BYTES) -> str:
    (client.upload_dir / name).write_bytes(data)
    return name


# ---------------------------------------------------------------------------
# POST /audio/upload
# ---------------------------------------------------------------------------


class TestUpload:
    def test_upload_stores_and_probes(self, api_client):
        response = api_client.post(
            "/audio/upload",
            files={"audio": ("My Song.MP3", FAKE_AUDIO_BYTES, "audio/mpeg")},
        )
        assert response.status_code == 200
        body = response.json()
        stored = body["file"]
        assert stored["original_name"] == "My Song.MP3"
        assert stored["filename"].startswith("audio-")
        assert stored["filename"].endswith(".mp3")
        assert stored["size"] == len(FAKE_AUDIO_BYTES)
        assert stored["mimetype"] == "audio/mpeg"
        assert body["metadata"]["sample_rate_hz"] == 44100
        assert (api_client.upload_dir / stored["filename"]).read_bytes() == FAKE_AUDIO_BYTES

    def test_rejects_non_audio_mime(self, api_client):
        response = api_client.post(
            "/audio/upload",
            files={"audio": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 415
        assert list(api_client.upload_dir.iterdir()) == []

    def test_rejects_oversized(self, api_client):
        response = api_client.post(
            "/audio/upload",
            files={"audio": ("big.wav", b"\x00" * 5000, "audio/wav")},
        )
        assert response.status_code == 413
        assert list(api_client.upload_dir.iterdir()) == []

    def test_rejects_empty(self, api_client):
        response = api_client.post(
            "/audio/upload",
            files={"audio": ("empty.wav", b"", "audio/wav")},
        )
        assert response.status_code == 400

    def test_rejects_unreadable_audio(self, api_client):
        response = api_client.post(
            "/audio/upload",
            files={"audio": ("fake.mp3", NOT_AUDIO_BYTES, "audio/mpeg")},
        )
        assert response.status_code == 422
        assert list(api_client.upload_dir.iterdir()) == []

    def test_missing_file_field(self, api_client):
        assert api_client.post("/audio/upload").status_code == 422


# ---------------------------------------------------------------------------
# POST /audio/analyze
# ---------------------------------------------------------------------------


class TestAnalyze:
    def test_analyze_report(self, api_client):
        name = _store(api_client)
        response = api_client.post("/audio/analyze", json={"filename": name})
        assert response.status_code == 200
        body = response.json()
        assert body["filename"] == name
        assert body["metadata"]["channel_count"] == 2
        key = body["key_info"]
        assert key["key"] in PITCH_CLASSES
        assert key["mode"] in ("major", "minor")
        assert key["confidence"] == 0.75
        assert key["label"] == f"{key['key']} {key['mode']}"
        rows = body["supported_transpositions"]
        assert len(rows) == 24
        assert {r["semitones"] for r in rows} == set(range(-12, 13)) - {0}

    def test_missing_file(self, api_client):
        response = api_client.post("/audio/analyze", json={"filename": "nope.wav"})
        assert response.status_code == 404

    @pytest.mark.parametrize("name", ["../secret.wav", "sub/dir.wav", ".hidden.wav"])
    def test_rejects_path_escape(self, api_client, name):
        response = api_client.post("/audio/analyze", json={"filename": name})
        assert response.status_code == 400

    def test_not_audio(self, api_client):
        name = _store(api_client, "audio-bad.mp3", NOT_AUDIO_BYTES)
        response = api_client.post("/audio/analyze", json={"filename": name})
        assert response.status_code == 404

    def test_empty_filename(self, api_client):
        assert api_client.post("/audio/analyze", json={"filename": ""}).status_code == 422


# ---------------------------------------------------------------------------
# POST /audio/transpose
# ---------------------------------------------------------------------------


class TestTranspose:
    def test_transpose_with_key(self, api_client):
        name = _store(api_client)
        response = api_client.post(
            "/audio/transpose",
            json={"filename": name, "semitones": 7, "original_key": "C", "mode": "major"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["original_file"] == name
        assert body["semitones"] == 7
        assert body["transposed_file"].startswith("transposed_up_7_audio-abc_")
        assert body["transposed_file"].endswith(".mp3")
        assert body["key_info"] == {
            "original_key": "C",
            "original_mode": "major",
            "new_key": "G",
            "new_mode": "major",
            "semitone_change": 7,
            "interval": "Perfect Fifth",
        }
        produced = api_client.upload_dir / body["transposed_file"]
        assert produced.read_bytes() == FAKE_ENCODED_BYTES

    def test_flat_key_normalised(self, api_client):
        name = _store(api_client)
        response = api_client.post(
            "/audio/transpose",
            json={"filename": name, "semitones": 2, "original_key": "Bb", "mode": "major"},
        )
        assert response.status_code == 200
        key_info = response.json()["key_info"]
        assert key_info["original_key"] == "A#"
        assert key_info["new_key"] == "C"

    def test_without_key(self, api_client):
        name = _store(api_client)
        response = api_client.post("/audio/transpose", json={"filename": name, "semitones": -3})
        assert response.status_code == 200
        body = response.json()
        assert body["key_info"] is None
        assert body["transposed_file"].startswith("transposed_down_3_")

    def test_zero_shift_copy(self, api_client):
        name = _store(api_client)
        response = api_client.post("/audio/transpose", json={"filename": name, "semitones": 0})
        assert response.status_code == 200
        produced = api_client.upload_dir / response.json()["transposed_file"]
        assert produced.suffix == ".wav"
        assert produced.read_bytes() == FAKE_AUDIO_BYTES

    @pytest.mark.parametrize("semitones", [13, -13])
    def test_out_of_range(self, api_client, semitones):
        name = _store(api_client)
        response = api_client.post(
            "/audio/transpose", json={"filename": name, "semitones": semitones}
        )
        assert response.status_code == 400
        assert "between -12 and +12" in response.json()["detail"]
        assert sorted(p.name for p in api_client.upload_dir.iterdir()) == [name]

    def test_key_without_mode(self, api_client):
        name = _store(api_client)
        response = api_client.post(
            "/audio/transpose",
            json={"filename": name, "semitones": 1, "original_key": "C"},
        )
        assert response.status_code == 422

    def test_unknown_key(self, api_client):
        name = _store(api_client)
        response = api_client.post(
            "/audio/transpose",
            json={"filename": name, "semitones": 1, "original_key": "H", "mode": "major"},
        )
        assert response.status_code == 422

    def test_missing_file(self, api_client):
        response = api_client.post("/audio/transpose", json={"filename": "x.wav", "semitones": 1})
        assert response.status_code == 404

    def test_processing_failure_is_500(self, api_client):
        name = _store(api_client)
        api_client.transposer.fail_with = ProcessingFailure("Audio processing failed: boom")
        response = api_client.post("/audio/transpose", json={"filename": name, "semitones": 1})
        assert response.status_code == 500
        assert "Audio processing failed" in response.json()["detail"]

    def test_timeout_is_504(self, api_client):
        name = _store(api_client)
        api_client.transposer.fail_with = Cancelled("ffmpeg timed out after 300s")
        response = api_client.post("/audio/transpose", json={"filename": name, "semitones": 1})
        assert response.status_code == 504


# ---------------------------------------------------------------------------
# POST /audio/convert
# ---------------------------------------------------------------------------


class TestConvert:
    def test_convert(self, api_client):
        name = _store(api_client)
        response = api_client.post("/audio/convert", json={"filename": name})
        assert response.status_code == 200
        body = response.json()
        assert body["converted_file"].startswith("converted_")
        assert body["converted_file"].endswith("_audio-abc.mp3")
        assert (api_client.upload_dir / body["converted_file"]).exists()

    def test_convert_failure(self, api_client):
        name = _store(api_client)
        api_client.transposer.fail_with = ProcessingFailure("Audio processing failed: bad")
        response = api_client.post("/audio/convert", json={"filename": name})
        assert response.status_code == 500


# ---------------------------------------------------------------------------
# GET /audio/download, GET /audio/files, DELETE /audio/{filename}
# ---------------------------------------------------------------------------


class TestStoredFiles:
    def test_download(self, api_client):
        name = _store(api_client)
        response = api_client.get(f"/audio/download/{name}")
        assert response.status_code == 200
        assert response.content == FAKE_AUDIO_BYTES
        assert "attachment" in response.headers["content-disposition"]

    def test_download_range(self, api_client):
        name = _store(api_client)
        response = api_client.get(f"/audio/download/{name}", headers={"Range": "bytes=0-3"})
        assert response.status_code == 206
        assert response.content == FAKE_AUDIO_BYTES[:4]

    def test_download_missing(self, api_client):
        assert api_client.get("/audio/download/absent.mp3").status_code == 404

    def test_list_newest_first(self, api_client):
        old = _store(api_client, "audio-old.mp3")
        new = _store(api_client, "audio-new.wav")
        os.utime(api_client.upload_dir / old, (1_000_000, 1_000_000))
        os.utime(api_client.upload_dir / new, (2_000_000, 2_000_000))
        (api_client.upload_dir / ".audio-x.mp3.part").write_bytes(b"partial")
        (api_client.upload_dir / "notes.txt").write_text("not audio")

        response = api_client.get("/audio/files")
        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 2
        assert [f["filename"] for f in body["files"]] == [new, old]

    def test_delete(self, api_client):
        name = _store(api_client)
        response = api_client.delete(f"/audio/{name}")
        assert response.status_code == 200
        assert response.json()["filename"] == name
        assert not (api_client.upload_dir / name).exists()
        assert api_client.delete(f"/audio/{name}").status_code == 404


# ---------------------------------------------------------------------------
# /health and /metrics
# ---------------------------------------------------------------------------


class TestServiceEndpoints:
    def test_health(self, api_client):
        assert api_client.get("/health").json() == {"status": "ok"}

    def test_metrics_exposed(self, api_client):
        name = _store(api_client)
        api_client.post("/audio/transpose", json={"filename": name, "semitones": 1})
        response = api_client.get("/metrics")
        assert response.status_code == 200
        assert "transposer_transpose_requests_total" in response.text
