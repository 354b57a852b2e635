"""
api/schemas/audio.py — Pydantic request/response schemas for audio endpoints.

Covers:
    /audio/upload     — UploadResponse
    /audio/analyze    — AnalyzeRequest / AnalyzeResponse
    /audio/transpose  — TransposeRequest / TransposeResponse
    /audio/convert    — ConvertRequest / ConvertResponse
    /audio/files      — FileListResponse
    /audio/{filename} — DeleteResponse

Requests are validated once here; the pipeline never sees untyped data.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from core.audio.key_transform import note_to_index
from core.audio.types import PITCH_CLASSES, SEMITONE_MAX, SEMITONE_MIN, Mode

# ---------------------------------------------------------------------------
# Shared sub-schemas
# ---------------------------------------------------------------------------


class MetadataOut(BaseModel):
    """Probed container/codec attributes."""

    duration_sec: float = Field(..., ge=0.0)
    bitrate_bps: int = Field(..., ge=0)
    sample_rate_hz: int = Field(..., gt=0)
    channel_count: int = Field(..., ge=1)
    codec_name: str
    container_format: str
    size_bytes: int = Field(..., ge=0)


class KeyOut(BaseModel):
    """Key estimation result."""

    key: str
    mode: Mode
    confidence: float = Field(..., ge=0.0, le=1.0)
    label: str


class KeyTransformOut(BaseModel):
    """Key before and after a shift."""

    original_key: str
    original_mode: Mode
    new_key: str
    new_mode: Mode
    semitone_change: int
    interval: str


class TranspositionOptionOut(BaseModel):
    """One row of the analyze table."""

    semitones: int = Field(..., ge=SEMITONE_MIN, le=SEMITONE_MAX)
    interval: str
    new_key: str


class StoredFileOut(BaseModel):
    """A file persisted by the upload adapter."""

    id: str
    original_name: str
    filename: str
    size: int = Field(..., ge=0)
    mimetype: str


class _FilenameRequest(BaseModel):
    filename: str = Field(
        ...,
        min_length=1,
        description="Name of a file previously stored by /audio/upload.",
    )


# ---------------------------------------------------------------------------
# /audio/upload
# ---------------------------------------------------------------------------


class UploadResponse(BaseModel):
    """Response body for POST /audio/upload."""

    message: str
    file: StoredFileOut
    metadata: MetadataOut


# ---------------------------------------------------------------------------
# /audio/analyze
# ---------------------------------------------------------------------------


class AnalyzeRequest(_FilenameRequest):
    """Request body for POST /audio/analyze."""


class AnalyzeResponse(BaseModel):
    """Response body for POST /audio/analyze."""

    filename: str
    metadata: MetadataOut
    key_info: KeyOut
    supported_transpositions: list[TranspositionOptionOut]


# ---------------------------------------------------------------------------
# /audio/transpose
# ---------------------------------------------------------------------------


class TransposeRequest(_FilenameRequest):
    """Request body for POST /audio/transpose.

    `original_key` and `mode` come from an earlier /audio/analyze call and
    must be given together or not at all.
    """

    # Range checked by the pipeline: invalid_shift_range → 400.
    semitones: int = Field(
        ...,
        description=(
            f"Signed shift in semitones, {SEMITONE_MIN}..{SEMITONE_MAX}; "
            "0 returns an identical copy."
        ),
    )
    original_key: str | None = Field(
        default=None,
        description="Key root in sharp or flat spelling, e.g. 'A', 'Bb'.",
    )
    mode: Mode | None = None

    @field_validator("original_key")
    @classmethod
    def normalise_key(cls, value: str | None) -> str | None:
        """Accept flat spellings and normalise to sharps."""
        if value is None:
            return None
        try:
            return PITCH_CLASSES[note_to_index(value)]
        except ValueError as exc:
            raise ValueError(f"original_key must be a note name, got {value!r}") from exc

    @model_validator(mode="after")
    def key_and_mode_together(self) -> "TransposeRequest":
        """original_key and mode are both present or both absent."""
        if (self.original_key is None) != (self.mode is None):
            raise ValueError("original_key and mode must be provided together")
        return self


class TransposeResponse(BaseModel):
    """Response body for POST /audio/transpose."""

    message: str
    original_file: str
    transposed_file: str
    semitones: int
    metadata: MetadataOut
    key_info: KeyTransformOut | None = None
    processing_time_ms: float = Field(..., ge=0.0)


# ---------------------------------------------------------------------------
# /audio/convert
# ---------------------------------------------------------------------------


class ConvertRequest(_FilenameRequest):
    """Request body for POST /audio/convert."""


class ConvertResponse(BaseModel):
    """Response body for POST /audio/convert."""

    message: str
    original_file: str
    converted_file: str
    metadata: MetadataOut


# ---------------------------------------------------------------------------
# /audio/files and DELETE /audio/{filename}
# ---------------------------------------------------------------------------


class FileEntryOut(BaseModel):
    """A stored audio file."""

    filename: str
    size: int = Field(..., ge=0)
    modified_at: datetime


class FileListResponse(BaseModel):
    """Response body for GET /audio/files (newest first)."""

    files: list[FileEntryOut]
    count: int


class DeleteResponse(BaseModel):
    """Response body for DELETE /audio/{filename}."""

    message: str
    filename: str
