"""
core/audio — Pure domain layer of the transposition pipeline.

Types, error kinds, capability protocols and key arithmetic. Nothing here
opens files or spawns processes — that lives in ingestion/.

Architecture note:
    numpy is the only third-party import at module top. librosa is always
    injected as a parameter (see features.py) so tests can mock it without
    installing the full audio stack.

Public API:
    Types:      AudioMetadata, KeyEstimate, KeyTransform, Mode,
                TransposeResult, TranspositionOption, AnalysisReport
    Errors:     TranspositionError, MissingInput, InvalidShiftRange,
                UnreadableStream, ProcessingFailure, Cancelled
    Protocols:  MetadataProber, KeyEstimator, PitchTransposer
    Keys:       apply_key_transform, interval_name, supported_transpositions
"""

from core.audio.base import KeyEstimator, MetadataProber, PitchTransposer
from core.audio.errors import (
    Cancelled,
    InvalidShiftRange,
    MissingInput,
    ProcessingFailure,
    TranspositionError,
    UnreadableStream,
)
from core.audio.key_transform import (
    apply_key_transform,
    interval_name,
    supported_transpositions,
    validate_shift,
)
from core.audio.types import (
    PITCH_CLASSES,
    AnalysisReport,
    AudioMetadata,
    AudioStream,
    KeyEstimate,
    KeyTransform,
    Mode,
    TransposeResult,
    TranspositionOption,
)

__all__ = [
    "PITCH_CLASSES",
    "AnalysisReport",
    "AudioMetadata",
    "AudioStream",
    "Cancelled",
    "InvalidShiftRange",
    "KeyEstimate",
    "KeyEstimator",
    "KeyTransform",
    "MetadataProber",
    "MissingInput",
    "Mode",
    "PitchTransposer",
    "ProcessingFailure",
    "TransposeResult",
    "TranspositionError",
    "TranspositionOption",
    "UnreadableStream",
    "apply_key_transform",
    "interval_name",
    "supported_transpositions",
    "validate_shift",
]
