"""
ingestion/ffmpeg.py — ffprobe/ffmpeg adapters for probing and pitch shifting.

This is the only module in the pipeline that spawns codec subprocesses.

    FFprobeProber.probe()      ffprobe -show_format -show_streams → AudioMetadata
    FFmpegTransposer.shift()   asetrate + aresample + atempo → normalized MP3
    FFmpegTransposer.normalize()  re-encode to the normalized format, no shift

Pitch shifting technique ("resample + reciprocal time-stretch"):
    ratio = 2 ** (semitones / 12)
    asetrate=<rate * ratio>   reinterpret samples at a faster/slower clock:
                              pitch AND speed move by `ratio`
    aresample=<target rate>   convert back to a standard clock, pitch kept
    atempo=<1 / ratio>        restore the original duration, pitch kept

Cancellation:
    run_tool() polls the child process; when the caller's threading.Event
    is set or the timeout elapses the child is terminated (then killed)
    and Cancelled is raised. Encoders always write to a hidden `.part`
    sibling that is renamed into place only after a clean exit, so a
    cancelled or failed shift never leaves a visible partial file.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import threading
import time
from pathlib import Path
from typing import Any

from core.audio.base import MetadataProber
from core.audio.errors import (
    Cancelled,
    ProcessingFailure,
    TranspositionError,
    UnreadableStream,
)
from core.audio.key_transform import validate_shift
from core.audio.types import AudioMetadata, AudioStream
from core.config import DEFAULT_CONFIG, TranspositionConfig
from ingestion.sources import local_path

logger = logging.getLogger(__name__)

# How often a running child is checked for cancellation / timeout.
_POLL_SECONDS: float = 0.1

# Grace period between SIGTERM and SIGKILL for a cancelled child.
_TERMINATE_GRACE_SECONDS: float = 5.0

# atempo accepts factors in [0.5, 2.0] on every ffmpeg release.
_ATEMPO_MIN: float = 0.5
_ATEMPO_MAX: float = 2.0

_STDERR_TAIL_CHARS: int = 500


# ---------------------------------------------------------------------------
# Subprocess runner
# ---------------------------------------------------------------------------


def run_tool(
    cmd: list[str],
    *,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
) -> tuple[int, bytes, bytes]:
    """Run a codec tool to completion, honouring cancellation and timeout.

    Args:
        cmd: Full argv, executable first.
        timeout: Wall-clock limit in seconds. None = no limit.
        cancel_event: Checked every poll interval while the child runs.

    Returns:
        (returncode, stdout, stderr)

    Raises:
        Cancelled: cancel_event set or timeout elapsed; child terminated.
        ProcessingFailure: The executable is missing or cannot be started.
    """
    if cancel_event is not None and cancel_event.is_set():
        raise Cancelled(f"{cmd[0]} cancelled before start")

    logger.debug("Running: %s", " ".join(cmd))
    try:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise ProcessingFailure(f"{cmd[0]} not found. Install ffmpeg or set its path.") from exc
    except OSError as exc:
        raise ProcessingFailure(f"Failed to start {cmd[0]}: {exc}") from exc

    deadline = time.monotonic() + timeout if timeout is not None else None
    while True:
        try:
            stdout, stderr = proc.communicate(timeout=_POLL_SECONDS)
        except subprocess.TimeoutExpired:
            if cancel_event is not None and cancel_event.is_set():
                _terminate(proc)
                raise Cancelled(f"{cmd[0]} cancelled by caller")
            if deadline is not None and time.monotonic() >= deadline:
                _terminate(proc)
                raise Cancelled(f"{cmd[0]} timed out after {timeout:g}s")
            continue
        return proc.returncode, stdout or b"", stderr or b""


def _terminate(proc: subprocess.Popen) -> None:
    """SIGTERM, wait briefly, then SIGKILL."""
    proc.terminate()
    try:
        proc.communicate(timeout=_TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.communicate()


def _stderr_tail(stderr: bytes) -> str:
    text = stderr.decode("utf-8", errors="replace").strip()
    return text[-_STDERR_TAIL_CHARS:]


def _to_int(value: Any, default: int = 0) -> int:
    # ffprobe reports numbers as strings and uses "N/A" for unknowns
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


# ---------------------------------------------------------------------------
# Probing
# ---------------------------------------------------------------------------


def parse_probe_output(data: dict[str, Any], *, fallback_size: int = 0) -> AudioMetadata:
    """Build AudioMetadata from ffprobe's JSON document.

    Args:
        data: Parsed output of ``ffprobe -print_format json -show_format -show_streams``.
        fallback_size: Size to report when ffprobe omits ``format.size``.

    Returns:
        AudioMetadata for the first audio stream.

    Raises:
        UnreadableStream: No audio stream, or it lacks a sample rate / channels.
    """
    streams = data.get("streams") or []
    audio = next((s for s in streams if s.get("codec_type") == "audio"), None)
    if audio is None:
        raise UnreadableStream("No audio stream found in file")

    fmt = data.get("format") or {}
    sample_rate = _to_int(audio.get("sample_rate"))
    channels = _to_int(audio.get("channels"))
    if sample_rate <= 0 or channels <= 0:
        raise UnreadableStream(
            f"Audio stream has no usable sample rate/channels ({sample_rate} Hz, {channels} ch)"
        )

    duration = _to_float(fmt.get("duration"), default=_to_float(audio.get("duration")))
    bitrate = _to_int(fmt.get("bit_rate"), default=_to_int(audio.get("bit_rate")))
    return AudioMetadata(
        duration_sec=max(0.0, duration),
        bitrate_bps=max(0, bitrate),
        sample_rate_hz=sample_rate,
        channel_count=channels,
        codec_name=str(audio.get("codec_name") or "unknown"),
        container_format=str(fmt.get("format_name") or "unknown"),
        size_bytes=max(0, _to_int(fmt.get("size"), default=fallback_size)),
    )


class FFprobeProber:
    """MetadataProber backed by the ffprobe binary.

    Example:
        prober = FFprobeProber()
        meta = prober.probe("/uploads/track.wav")
        print(meta.duration_sec, meta.sample_rate_hz)
    """

    def __init__(self, config: TranspositionConfig = DEFAULT_CONFIG) -> None:
        self._config = config

    def probe(self, stream: AudioStream) -> AudioMetadata:
        """Probe a path or buffer. See ``MetadataProber.probe``."""
        with local_path(stream) as path:
            return self._probe_path(path)

    def _probe_path(self, path: Path) -> AudioMetadata:
        cmd = [
            self._config.ffprobe_binary,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        code, stdout, stderr = run_tool(cmd, timeout=self._config.probe_timeout_sec)
        if code != 0:
            tail = _stderr_tail(stderr)
            raise UnreadableStream(f"Failed to read audio metadata: {tail}", detail=tail)

        try:
            data = json.loads(stdout.decode("utf-8", errors="replace") or "{}")
        except json.JSONDecodeError as exc:
            raise UnreadableStream(f"ffprobe returned invalid JSON: {exc}") from exc

        metadata = parse_probe_output(data, fallback_size=path.stat().st_size)
        logger.debug(
            "Probed %s: %.2fs %d Hz %d ch %s",
            path.name,
            metadata.duration_sec,
            metadata.sample_rate_hz,
            metadata.channel_count,
            metadata.codec_name,
        )
        return metadata


# ---------------------------------------------------------------------------
# Pitch shifting
# ---------------------------------------------------------------------------


def atempo_factors(tempo: float) -> list[float]:
    """Split a tempo factor into a chain of factors each inside [0.5, 2.0].

    >>> atempo_factors(4.0)
    [2.0, 2.0]
    """
    if tempo <= 0:
        raise ValueError(f"tempo must be positive, got {tempo}")
    factors: list[float] = []
    while tempo > _ATEMPO_MAX:
        factors.append(_ATEMPO_MAX)
        tempo /= _ATEMPO_MAX
    while tempo < _ATEMPO_MIN:
        factors.append(_ATEMPO_MIN)
        tempo /= _ATEMPO_MIN
    factors.append(tempo)
    return factors


def build_filter_chain(input_rate: int, semitones: int, target_rate: int) -> list[str]:
    """ffmpeg audio filters for a tempo-preserving shift of `semitones`.

    The reinterpreted rate is rounded to whole Hz; atempo compensates for
    the rounded value so the duration is preserved exactly.
    """
    ratio = 2.0 ** (semitones / 12.0)
    shifted_rate = max(1, round(input_rate * ratio))
    tempo = input_rate / shifted_rate
    filters = [f"asetrate={shifted_rate}", f"aresample={target_rate}"]
    filters.extend(f"atempo={factor:.10g}" for factor in atempo_factors(tempo))
    return filters


def partial_path(output_path: Path) -> Path:
    """Hidden sibling that receives bytes until the output is complete."""
    return output_path.with_name(f".{output_path.name}.part")


class FFmpegTransposer:
    """PitchTransposer backed by the ffmpeg binary.

    Args:
        config: Normalization constants and binary locations.
        prober: Used to read the input's native sample rate before
                shifting. Defaults to an FFprobeProber with the same config.

    Example:
        transposer = FFmpegTransposer()
        transposer.shift("/uploads/song.wav", 5, Path("/uploads/song_up5.mp3"))
    """

    def __init__(
        self,
        config: TranspositionConfig = DEFAULT_CONFIG,
        prober: MetadataProber | None = None,
    ) -> None:
        self._config = config
        self._prober = prober if prober is not None else FFprobeProber(config)

    def shift(
        self,
        stream: AudioStream,
        semitones: int,
        output_path: Path,
        *,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Path:
        """Pitch-shift `stream` by `semitones`. See ``PitchTransposer.shift``."""
        semitones = validate_shift(semitones)
        output_path = Path(output_path)

        with local_path(stream) as source:
            if semitones == 0:
                return self._copy(source, output_path, cancel_event=cancel_event)

            input_rate = self._prober.probe(source).sample_rate_hz
            filters = build_filter_chain(input_rate, semitones, self._config.target_sample_rate)
            self._encode(
                source,
                output_path,
                filters,
                cancel_event=cancel_event,
                timeout=timeout,
            )

        logger.info("Transposed %s by %+d semitones → %s", source.name, semitones, output_path)
        return output_path

    def normalize(
        self,
        stream: AudioStream,
        output_path: Path,
        *,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Path:
        """Re-encode `stream` to the normalized output format without shifting."""
        output_path = Path(output_path)
        with local_path(stream) as source:
            self._encode(source, output_path, [], cancel_event=cancel_event, timeout=timeout)
        logger.info("Converted %s → %s", source.name, output_path)
        return output_path

    def _copy(
        self,
        source: Path,
        output_path: Path,
        *,
        cancel_event: threading.Event | None,
    ) -> Path:
        # Zero shift: verbatim bytes, original codec, no re-encode.
        if cancel_event is not None and cancel_event.is_set():
            raise Cancelled("Copy cancelled before start")
        part = partial_path(output_path)
        try:
            shutil.copyfile(source, part)
            os.replace(part, output_path)
        except OSError as exc:
            part.unlink(missing_ok=True)
            raise ProcessingFailure(f"Failed to copy audio: {exc}") from exc
        logger.info("Zero shift: copied %s → %s", source.name, output_path)
        return output_path

    def _encode(
        self,
        source: Path,
        output_path: Path,
        filters: list[str],
        *,
        cancel_event: threading.Event | None,
        timeout: float | None,
    ) -> None:
        config = self._config
        part = partial_path(output_path)
        cmd = [
            config.ffmpeg_binary,
            "-hide_banner",
            "-nostdin",
            "-loglevel",
            "error",
            "-y",
            "-i",
            str(source),
            "-map",
            "0:a:0",
        ]
        if filters:
            cmd += ["-af", ",".join(filters)]
        cmd += [
            "-ar",
            str(config.target_sample_rate),
            "-ac",
            str(config.target_channels),
            "-c:a",
            config.target_codec,
            "-b:a",
            config.target_bitrate,
            "-f",
            config.target_format,
            str(part),
        ]

        try:
            code, _, stderr = run_tool(cmd, timeout=timeout, cancel_event=cancel_event)
        except TranspositionError as exc:
            part.unlink(missing_ok=True)
            if isinstance(exc, Cancelled):
                logger.warning("Encoding of %s aborted: %s", source.name, exc)
            raise

        if code != 0:
            part.unlink(missing_ok=True)
            tail = _stderr_tail(stderr)
            raise ProcessingFailure(f"Audio processing failed: {tail}", detail=tail)

        try:
            os.replace(part, output_path)
        except OSError as exc:
            part.unlink(missing_ok=True)
            raise ProcessingFailure(f"Failed to finalize output: {exc}") from exc
