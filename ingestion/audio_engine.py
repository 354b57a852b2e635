"""
ingestion/audio_engine.py — Orchestrators for the transposition pipeline.

TranspositionPipeline wires one transpose request:

    input stream
        │
        ├─ validate              [core/audio/key_transform.py — range check]
        │       ↓
        ├─ PitchTransposer.shift [ingestion/ffmpeg.py — asetrate + atempo]
        │       ↓
        ├─ MetadataProber.probe  [ingestion/ffmpeg.py — re-probe the output]
        │       ↓
        └─ apply_key_transform   [core/audio/key_transform.py — only if a key is known]

AudioAnalysisEngine wires one analyze request: probe + key estimate
(concurrently for path inputs) + the 24-row transposition table.

Key detection is NOT part of transpose(): analysis and transposition are
independently requestable, so the caller runs the estimator first and
passes the result in as `known_key`.

This module is in `ingestion/` because it creates output files and
coordinates side-effectful collaborators. Both classes hold only
immutable configuration and injected collaborators, so one instance per
request (or one shared instance) is safe under concurrency.

Usage:
    pipeline = TranspositionPipeline(FFprobeProber(), FFmpegTransposer())
    result = pipeline.transpose("/uploads/song.wav", 5, known_key=key)
    print(result.output_path, result.metadata.duration_sec)
"""

from __future__ import annotations

import logging
import tempfile
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path

from core.audio.base import KeyEstimator, MetadataProber, PitchTransposer
from core.audio.errors import MissingInput, ProcessingFailure, TranspositionError
from core.audio.key_transform import (
    apply_key_transform,
    supported_transpositions,
    validate_shift,
)
from core.audio.types import (
    AnalysisReport,
    AudioStream,
    KeyEstimate,
    KeyTransform,
    TransposeResult,
)
from core.config import DEFAULT_CONFIG, TranspositionConfig
from infrastructure.metrics import record_analyze, record_probe_failure, record_transpose
from ingestion.sources import is_path_like, stream_stem, stream_suffix

logger = logging.getLogger(__name__)


class PipelineStep(str, Enum):
    """States of one transpose request. FAILED is reachable from any step."""

    VALIDATING = "validating"
    SHIFTING = "shifting"
    PROBING = "probing"
    KEY_MAPPING = "key_mapping"
    DONE = "done"
    FAILED = "failed"


def output_filename(stream: AudioStream, semitones: int, *, extension: str) -> str:
    """Collision-free output name derived from shift direction, size and input name.

    Example: ``transposed_up_5_song_1a2b3c4d.mp3``
    """
    direction = "up" if semitones >= 0 else "down"
    token = uuid.uuid4().hex[:8]
    return f"transposed_{direction}_{abs(semitones)}_{stream_stem(stream)}_{token}{extension}"


# ---------------------------------------------------------------------------
# TranspositionPipeline
# ---------------------------------------------------------------------------


class TranspositionPipeline:
    """Validate → shift → re-probe → (optional) key mapping.

    Performs exactly one shift attempt per call; callers that want
    retry-on-transient-failure re-invoke transpose() themselves.

    Args:
        prober:     Re-probes the produced output.
        transposer: Performs the shift.
        config:     Supplies the output format and the default timeout.
        output_dir: Where generated output names are placed. None = next
                    to a path input, or the system temp dir for buffers.

    Example:
        pipeline = TranspositionPipeline(prober, transposer, output_dir=Path("uploads"))
        result = pipeline.transpose("uploads/song.mp3", -3)
    """

    def __init__(
        self,
        prober: MetadataProber,
        transposer: PitchTransposer,
        *,
        config: TranspositionConfig = DEFAULT_CONFIG,
        output_dir: Path | None = None,
    ) -> None:
        self._prober = prober
        self._transposer = transposer
        self._config = config
        self._output_dir = Path(output_dir) if output_dir is not None else None

    def transpose(
        self,
        stream: AudioStream | None,
        semitones: int,
        known_key: KeyEstimate | None = None,
        *,
        output_path: Path | None = None,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> TransposeResult:
        """Shift `stream` by `semitones` and describe the result.

        Args:
            stream:       Input path or seekable buffer. Never modified.
            semitones:    Integer in [-12, 12]. 0 = verbatim copy.
            known_key:    Key detected earlier by a KeyEstimator. When given,
                          the result carries the mapped key.
            output_path:  Explicit destination. Must be unique per call.
                          None = generated name in the output dir.
            cancel_event: Set it from another thread to abort the shift.
            timeout:      Wall-clock limit for the shift in seconds.
                          None = config.transpose_timeout_sec.

        Returns:
            TransposeResult owning the new output file.

        Raises:
            MissingInput:      stream is None or empty.
            InvalidShiftRange: semitones outside [-12, 12]; nothing written.
            UnreadableStream:  input cannot be opened or decoded.
            ProcessingFailure: shifting failed, or the output is unreadable.
            Cancelled:         cancel_event set or timeout elapsed.
        """
        t_start = time.monotonic()
        step = PipelineStep.VALIDATING
        try:
            semitones = self._validate(stream, semitones)
            target = Path(output_path) if output_path is not None else self._default_output(
                stream, semitones
            )

            step = self._advance(step, PipelineStep.SHIFTING)
            produced = self._transposer.shift(
                stream,
                semitones,
                target,
                cancel_event=cancel_event,
                timeout=timeout if timeout is not None else self._config.transpose_timeout_sec,
            )

            step = self._advance(step, PipelineStep.PROBING)
            try:
                metadata = self._prober.probe(produced)
            except TranspositionError as exc:
                # An output nobody can read is not a usable result.
                Path(produced).unlink(missing_ok=True)
                record_probe_failure()
                raise ProcessingFailure(
                    f"Transposed output could not be probed: {exc}",
                    detail=exc.detail,
                ) from exc

            key_transform: KeyTransform | None = None
            if known_key is not None:
                step = self._advance(step, PipelineStep.KEY_MAPPING)
                key_transform = apply_key_transform(known_key.pitch_class, known_key.mode, semitones)

            step = self._advance(step, PipelineStep.DONE)
        except TranspositionError as exc:
            exc.with_step(step.value)
            self._advance(step, PipelineStep.FAILED)
            record_transpose(status=exc.kind, latency_seconds=time.monotonic() - t_start)
            raise

        elapsed = time.monotonic() - t_start
        record_transpose(status="success", latency_seconds=elapsed)
        logger.info(
            "Transpose %+d done in %.0f ms → %s (%.2fs)",
            semitones,
            elapsed * 1000.0,
            produced,
            metadata.duration_sec,
        )
        return TransposeResult(
            output_path=Path(produced),
            applied_shift=semitones,
            metadata=metadata,
            key_transform=key_transform,
            processing_time_ms=elapsed * 1000.0,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(stream: AudioStream | None, semitones: int) -> int:
        if stream is None or (isinstance(stream, str) and not stream.strip()):
            raise MissingInput("No audio stream or filename provided")
        return validate_shift(semitones)

    @staticmethod
    def _advance(current: PipelineStep, new: PipelineStep) -> PipelineStep:
        logger.debug("Pipeline %s → %s", current.value, new.value)
        return new

    def _default_output(self, stream: AudioStream, semitones: int) -> Path:
        if self._output_dir is not None:
            directory = self._output_dir
        elif is_path_like(stream):
            directory = Path(stream).parent
        else:
            directory = Path(tempfile.gettempdir())

        # Zero shift copies bytes verbatim, so it keeps the input's suffix.
        if semitones == 0:
            extension = stream_suffix(stream)
        else:
            extension = f".{self._config.target_format}"
        return directory / output_filename(stream, semitones, extension=extension)


# ---------------------------------------------------------------------------
# AudioAnalysisEngine
# ---------------------------------------------------------------------------


class AudioAnalysisEngine:
    """Probe + key estimate + "if you shifted by N" table.

    For path inputs the probe and the key estimate run concurrently on a
    small thread pool. Buffers are processed sequentially because both
    collaborators seek the same file object.

    Args:
        prober:    Metadata source.
        estimator: Key source (placeholder or chroma).
    """

    def __init__(self, prober: MetadataProber, estimator: KeyEstimator) -> None:
        self._prober = prober
        self._estimator = estimator

    def analyze(self, stream: AudioStream | None) -> AnalysisReport:
        """Analyze a stored stream.

        Raises:
            MissingInput: stream is None or empty.
            UnreadableStream: Not audio (from either collaborator).
            ProcessingFailure: The probing tool could not run.
        """
        if stream is None or (isinstance(stream, str) and not stream.strip()):
            raise MissingInput("No audio stream or filename provided")

        try:
            if is_path_like(stream):
                with ThreadPoolExecutor(max_workers=2, thread_name_prefix="analyze") as pool:
                    metadata_future = pool.submit(self._prober.probe, stream)
                    key_future = pool.submit(self._estimator.detect_key, stream)
                    metadata = metadata_future.result()
                    key = key_future.result()
            else:
                metadata = self._prober.probe(stream)
                key = self._estimator.detect_key(stream)
        except TranspositionError as exc:
            record_analyze(status=exc.kind)
            raise

        record_analyze(status="success")
        logger.info("Analyzed %s: %s, %.2fs", stream_stem(stream), key.label, metadata.duration_sec)
        return AnalysisReport(
            metadata=metadata,
            key=key,
            transpositions=supported_transpositions(key),
        )
