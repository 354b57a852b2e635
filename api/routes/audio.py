"""
api/routes/audio.py — Audio upload, analysis and transposition endpoints.

Endpoints:
    POST   /audio/upload              — Store an uploaded file and probe it
    POST   /audio/analyze             — Metadata + key estimate + transposition table
    POST   /audio/transpose           — Pitch-shift a stored file
    POST   /audio/convert             — Re-encode a stored file to the normalized MP3
    GET    /audio/download/{filename} — Serve a stored file (range requests supported)
    GET    /audio/files               — List stored audio files, newest first
    DELETE /audio/{filename}          — Delete a stored file

Handlers are plain `def` so FastAPI runs the blocking pipeline calls in its
worker threadpool. Each request gets its own pipeline objects (api/deps.py).
"""

from __future__ import annotations

import logging
import mimetypes
import uuid
from datetime import datetime, timezone
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import FileResponse

from api.deps import (
    get_analysis_engine,
    get_config,
    get_pipeline,
    get_prober,
    get_transposer,
)
from api.schemas.audio import (
    AnalyzeRequest,
    AnalyzeResponse,
    ConvertRequest,
    ConvertResponse,
    DeleteResponse,
    FileEntryOut,
    FileListResponse,
    KeyOut,
    KeyTransformOut,
    MetadataOut,
    StoredFileOut,
    TranspositionOptionOut,
    TransposeRequest,
    TransposeResponse,
    UploadResponse,
)
from core.audio.base import MetadataProber
from core.audio.errors import ProcessingFailure, TranspositionError, UnreadableStream
from core.audio.types import AudioMetadata, KeyEstimate
from core.config import TranspositionConfig
from ingestion.audio_engine import AudioAnalysisEngine, TranspositionPipeline
from ingestion.audio_loader import AUDIO_EXTENSIONS
from ingestion.ffmpeg import FFmpegTransposer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audio", tags=["audio"])

ALLOWED_MIME_TYPES: frozenset[str] = frozenset(
    {
        "audio/mpeg",
        "audio/mp3",
        "audio/wav",
        "audio/x-wav",
        "audio/aac",
        "audio/mp4",
        "audio/x-m4a",
        "audio/ogg",
        "audio/flac",
        "audio/x-flac",
    }
)

_UPLOAD_CHUNK_BYTES: int = 1024 * 1024

# Error kind → HTTP status. Callers branch on kind only, never on text.
_STATUS_BY_KIND: dict[str, int] = {
    "missing_input": 400,
    "invalid_shift_range": 400,
    "unreadable_stream": 404,
    "processing_failure": 500,
    "cancelled": 504,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _http_error(exc: TranspositionError) -> HTTPException:
    status = _STATUS_BY_KIND.get(exc.kind, 500)
    if isinstance(exc, UnreadableStream):
        detail = "Audio file not found or not audio"
    else:
        detail = str(exc)
    if status >= 500:
        logger.error("Audio request failed (%s): %s", exc.kind, exc)
    return HTTPException(status_code=status, detail=detail)


def _resolve_stored(config: TranspositionConfig, filename: str) -> Path:
    """Map a client-supplied filename to a file inside the upload dir."""
    if Path(filename).name != filename or filename.startswith("."):
        raise HTTPException(status_code=400, detail="Invalid filename")
    path = config.upload_dir / filename
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Audio file not found")
    return path


def _metadata_out(metadata: AudioMetadata) -> MetadataOut:
    return MetadataOut(
        duration_sec=metadata.duration_sec,
        bitrate_bps=metadata.bitrate_bps,
        sample_rate_hz=metadata.sample_rate_hz,
        channel_count=metadata.channel_count,
        codec_name=metadata.codec_name,
        container_format=metadata.container_format,
        size_bytes=metadata.size_bytes,
    )


# ---------------------------------------------------------------------------
# POST /audio/upload
# ---------------------------------------------------------------------------


@router.post("/upload", response_model=UploadResponse)
def upload_audio(
    audio: UploadFile = File(...),
    config: TranspositionConfig = Depends(get_config),
    prober: MetadataProber = Depends(get_prober),
) -> UploadResponse:
    """Persist an uploaded audio file and return its probed metadata.

    Raises:
        400: Empty upload.
        413: Upload exceeds config.max_upload_bytes.
        415: MIME type not in the audio allow-list.
        422: Stored bytes are not decodable audio (file is removed).
    """
    if audio.content_type not in ALLOWED_MIME_TYPES:
        raise HTTPException(
            status_code=415,
            detail=f"Unsupported audio format {audio.content_type!r}",
        )

    original_name = audio.filename or "upload"
    file_id = f"audio-{uuid.uuid4().hex}"
    filename = file_id + Path(original_name).suffix.lower()
    dest = config.upload_dir / filename

    size = 0
    try:
        with dest.open("wb") as out:
            while chunk := audio.file.read(_UPLOAD_CHUNK_BYTES):
                size += len(chunk)
                if size > config.max_upload_bytes:
                    raise HTTPException(
                        status_code=413,
                        detail=f"File exceeds {config.max_upload_bytes // (1024 * 1024)} MB limit",
                    )
                out.write(chunk)
        if size == 0:
            raise HTTPException(status_code=400, detail="No audio file provided")
        metadata = prober.probe(dest)
    except HTTPException:
        dest.unlink(missing_ok=True)
        raise
    except UnreadableStream as exc:
        dest.unlink(missing_ok=True)
        raise HTTPException(status_code=422, detail=f"Uploaded file is not audio: {exc}") from exc
    except TranspositionError as exc:
        dest.unlink(missing_ok=True)
        raise _http_error(exc) from exc

    logger.info("Stored upload %r as %s (%d bytes)", original_name, filename, size)
    return UploadResponse(
        message="Audio file uploaded successfully",
        file=StoredFileOut(
            id=file_id,
            original_name=original_name,
            filename=filename,
            size=size,
            mimetype=audio.content_type,
        ),
        metadata=_metadata_out(metadata),
    )


# ---------------------------------------------------------------------------
# POST /audio/analyze
# ---------------------------------------------------------------------------


@router.post("/analyze", response_model=AnalyzeResponse)
def analyze_audio(
    request: AnalyzeRequest,
    config: TranspositionConfig = Depends(get_config),
    engine: AudioAnalysisEngine = Depends(get_analysis_engine),
) -> AnalyzeResponse:
    """Probe a stored file, estimate its key and tabulate every transposition."""
    path = _resolve_stored(config, request.filename)
    try:
        report = engine.analyze(path)
    except TranspositionError as exc:
        raise _http_error(exc) from exc

    return AnalyzeResponse(
        filename=request.filename,
        metadata=_metadata_out(report.metadata),
        key_info=KeyOut(
            key=report.key.pitch_class,
            mode=report.key.mode,
            confidence=report.key.confidence,
            label=report.key.label,
        ),
        supported_transpositions=[
            TranspositionOptionOut(
                semitones=option.semitones,
                interval=option.interval_name,
                new_key=option.new_key,
            )
            for option in report.transpositions
        ],
    )


# ---------------------------------------------------------------------------
# POST /audio/transpose
# ---------------------------------------------------------------------------


@router.post("/transpose", response_model=TransposeResponse)
def transpose_audio(
    request: TransposeRequest,
    config: TranspositionConfig = Depends(get_config),
    pipeline: TranspositionPipeline = Depends(get_pipeline),
) -> TransposeResponse:
    """Pitch-shift a stored file by `semitones`, preserving tempo.

    Raises:
        400: Invalid filename or shift.
        404: File missing or not audio.
        500: Processing failure (ffmpeg message included).
        504: Shift exceeded the configured timeout.
    """
    path = _resolve_stored(config, request.filename)

    known_key = None
    if request.original_key is not None and request.mode is not None:
        # Caller-asserted key: full confidence.
        known_key = KeyEstimate(pitch_class=request.original_key, mode=request.mode, confidence=1.0)

    try:
        result = pipeline.transpose(path, request.semitones, known_key)
    except TranspositionError as exc:
        raise _http_error(exc) from exc

    key_info = None
    if result.key_transform is not None:
        kt = result.key_transform
        key_info = KeyTransformOut(
            original_key=kt.original_key,
            original_mode=kt.original_mode,
            new_key=kt.new_key,
            new_mode=kt.new_mode,
            semitone_change=kt.semitones,
            interval=kt.interval_name,
        )

    return TransposeResponse(
        message="Audio transposed successfully",
        original_file=request.filename,
        transposed_file=result.output_path.name,
        semitones=result.applied_shift,
        metadata=_metadata_out(result.metadata),
        key_info=key_info,
        processing_time_ms=result.processing_time_ms,
    )


# ---------------------------------------------------------------------------
# POST /audio/convert
# ---------------------------------------------------------------------------


@router.post("/convert", response_model=ConvertResponse)
def convert_audio(
    request: ConvertRequest,
    config: TranspositionConfig = Depends(get_config),
    prober: MetadataProber = Depends(get_prober),
    transposer: FFmpegTransposer = Depends(get_transposer),
) -> ConvertResponse:
    """Re-encode a stored file to the normalized output format."""
    path = _resolve_stored(config, request.filename)
    output = config.upload_dir / (
        f"converted_{uuid.uuid4().hex[:8]}_{path.stem}.{config.target_format}"
    )
    try:
        transposer.normalize(path, output, timeout=config.transpose_timeout_sec)
        try:
            metadata = prober.probe(output)
        except TranspositionError as exc:
            output.unlink(missing_ok=True)
            raise ProcessingFailure(f"Converted output could not be probed: {exc}") from exc
    except TranspositionError as exc:
        raise _http_error(exc) from exc

    return ConvertResponse(
        message="Audio converted successfully",
        original_file=request.filename,
        converted_file=output.name,
        metadata=_metadata_out(metadata),
    )


# ---------------------------------------------------------------------------
# GET /audio/download/{filename}
# ---------------------------------------------------------------------------


@router.get("/download/{filename}")
def download_audio(
    filename: str,
    config: TranspositionConfig = Depends(get_config),
) -> FileResponse:
    """Serve a stored file as an attachment. Range requests are honoured."""
    path = _resolve_stored(config, filename)
    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return FileResponse(path, media_type=media_type, filename=filename)


# ---------------------------------------------------------------------------
# GET /audio/files
# ---------------------------------------------------------------------------


@router.get("/files", response_model=FileListResponse)
def list_audio_files(
    config: TranspositionConfig = Depends(get_config),
) -> FileListResponse:
    """List stored audio files, newest first. Partial outputs are hidden."""
    entries = []
    for path in config.upload_dir.iterdir():
        if not path.is_file() or path.name.startswith("."):
            continue
        if path.suffix.lower() not in AUDIO_EXTENSIONS:
            continue
        stat = path.stat()
        entries.append(
            FileEntryOut(
                filename=path.name,
                size=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            )
        )
    entries.sort(key=lambda entry: entry.modified_at, reverse=True)
    return FileListResponse(files=entries, count=len(entries))


# ---------------------------------------------------------------------------
# DELETE /audio/{filename}
# ---------------------------------------------------------------------------


@router.delete("/{filename}", response_model=DeleteResponse)
def delete_audio(
    filename: str,
    config: TranspositionConfig = Depends(get_config),
) -> DeleteResponse:
    """Delete a stored file."""
    path = _resolve_stored(config, filename)
    path.unlink()
    logger.info("Deleted %s", filename)
    return DeleteResponse(message="File deleted successfully", filename=filename)
