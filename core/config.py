"""
Configuration dataclasses for the transposition pipeline.

These immutable config objects carry the output normalization constants,
tool locations and timeouts. A single instance can be shared across
concurrent requests because nothing in it ever changes after construction.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

# Key estimator implementations selectable via config.
VALID_KEY_ESTIMATORS: frozenset[str] = frozenset({"placeholder", "chroma"})

_ENV_PREFIX = "TRANSPOSER_"


@dataclass(frozen=True)
class TranspositionConfig:
    """
    Configuration for probing, key estimation and pitch shifting.

    Attributes:
        target_sample_rate: Sample rate of every re-encoded output (Hz).
        target_channels: Channel count of every re-encoded output.
            Mono sources are upmixed, surround sources downmixed.
        target_bitrate: Constant output bitrate in ffmpeg notation.
            Constant bitrate keeps outputs trivially range-servable.
        target_codec: ffmpeg encoder name.
        target_format: ffmpeg muxer name, also used as the output suffix.
        ffmpeg_binary: ffmpeg executable (name on PATH or absolute path).
        ffprobe_binary: ffprobe executable.
        transpose_timeout_sec: Default wall-clock limit for one shift.
        probe_timeout_sec: Wall-clock limit for one ffprobe call.
        upload_dir: Directory where the HTTP adapters store audio files.
        max_upload_bytes: Upload size cap enforced by the upload route.
        key_estimator: "placeholder" (random, reference behavior) or
            "chroma" (Krumhansl-Schmuckler over a librosa chromagram).
        placeholder_confidence: Fixed confidence reported by the
            placeholder estimator.

    Example:
        >>> config = TranspositionConfig(target_bitrate="192k")
        >>> pipeline = TranspositionPipeline(prober, transposer, config=config)
    """

    target_sample_rate: int = 44100
    target_channels: int = 2
    target_bitrate: str = "128k"
    target_codec: str = "libmp3lame"
    target_format: str = "mp3"
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    transpose_timeout_sec: float = 300.0
    probe_timeout_sec: float = 30.0
    upload_dir: Path = field(default_factory=lambda: Path("uploads"))
    max_upload_bytes: int = 50 * 1024 * 1024
    key_estimator: str = "placeholder"
    placeholder_confidence: float = 0.75

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.target_sample_rate <= 0:
            raise ValueError(
                f"target_sample_rate must be positive, got {self.target_sample_rate}"
            )
        if self.target_channels < 1:
            raise ValueError(f"target_channels must be >= 1, got {self.target_channels}")
        if not self.target_bitrate.rstrip("k").isdigit():
            raise ValueError(
                f"target_bitrate must look like '128k' or '128000', got {self.target_bitrate!r}"
            )
        if self.transpose_timeout_sec <= 0:
            raise ValueError(
                f"transpose_timeout_sec must be positive, got {self.transpose_timeout_sec}"
            )
        if self.probe_timeout_sec <= 0:
            raise ValueError(f"probe_timeout_sec must be positive, got {self.probe_timeout_sec}")
        if self.max_upload_bytes <= 0:
            raise ValueError(f"max_upload_bytes must be positive, got {self.max_upload_bytes}")
        if self.key_estimator not in VALID_KEY_ESTIMATORS:
            raise ValueError(
                f"Unknown key_estimator {self.key_estimator!r}, "
                f"valid options: {sorted(VALID_KEY_ESTIMATORS)}"
            )
        if not 0.0 <= self.placeholder_confidence <= 1.0:
            raise ValueError(
                f"placeholder_confidence must be in [0, 1], got {self.placeholder_confidence}"
            )

    @property
    def target_bitrate_bps(self) -> int:
        """Target bitrate in bits per second (``"128k"`` → 128000)."""
        if self.target_bitrate.endswith("k"):
            return int(self.target_bitrate[:-1]) * 1000
        return int(self.target_bitrate)

    @classmethod
    def from_env(cls) -> "TranspositionConfig":
        """Build a config from ``TRANSPOSER_*`` environment variables.

        Unset variables keep their dataclass defaults. Recognised names:
        ``TRANSPOSER_FFMPEG``, ``TRANSPOSER_FFPROBE``, ``TRANSPOSER_UPLOAD_DIR``,
        ``TRANSPOSER_TIMEOUT_SEC``, ``TRANSPOSER_PROBE_TIMEOUT_SEC``,
        ``TRANSPOSER_BITRATE``, ``TRANSPOSER_SAMPLE_RATE``,
        ``TRANSPOSER_MAX_UPLOAD_MB`` and ``TRANSPOSER_KEY_ESTIMATOR``.

        Raises:
            ValueError: If a variable holds an unparseable or invalid value.
        """
        env = os.environ
        kwargs: dict[str, object] = {}
        if ffmpeg := env.get(_ENV_PREFIX + "FFMPEG"):
            kwargs["ffmpeg_binary"] = ffmpeg
        if ffprobe := env.get(_ENV_PREFIX + "FFPROBE"):
            kwargs["ffprobe_binary"] = ffprobe
        if upload_dir := env.get(_ENV_PREFIX + "UPLOAD_DIR"):
            kwargs["upload_dir"] = Path(upload_dir)
        if timeout := env.get(_ENV_PREFIX + "TIMEOUT_SEC"):
            kwargs["transpose_timeout_sec"] = float(timeout)
        if probe_timeout := env.get(_ENV_PREFIX + "PROBE_TIMEOUT_SEC"):
            kwargs["probe_timeout_sec"] = float(probe_timeout)
        if bitrate := env.get(_ENV_PREFIX + "BITRATE"):
            kwargs["target_bitrate"] = bitrate
        if sample_rate := env.get(_ENV_PREFIX + "SAMPLE_RATE"):
            kwargs["target_sample_rate"] = int(sample_rate)
        if max_mb := env.get(_ENV_PREFIX + "MAX_UPLOAD_MB"):
            kwargs["max_upload_bytes"] = int(max_mb) * 1024 * 1024
        if estimator := env.get(_ENV_PREFIX + "KEY_ESTIMATOR"):
            kwargs["key_estimator"] = estimator.lower()
        return cls(**kwargs)  # type: ignore[arg-type]


DEFAULT_CONFIG = TranspositionConfig()
"""Reference normalization: 44.1 kHz stereo MP3 at 128 kbps, 5 minute timeout."""
