"""
ingestion/key_estimators.py — KeyEstimator implementations.

Two estimators share the ``KeyEstimator`` protocol, so the pipeline and the
HTTP adapters are unaffected by which one is configured:

    PlaceholderKeyEstimator  Reference behavior. Picks a key uniformly from
                             a table of commonly-used keys and a random mode,
                             confidence fixed at 0.75. NOT derived from the
                             audio content; only readability is checked.
    ChromaKeyEstimator       Decodes the first seconds with librosa and runs
                             Krumhansl-Schmuckler on the mean chromagram
                             (core/audio/features.py).

Usage:
    estimator = create_key_estimator(config, prober)
    key = estimator.detect_key("/uploads/track.mp3")
"""

from __future__ import annotations

import logging
import random
from typing import Any

from core.audio.base import KeyEstimator, MetadataProber
from core.audio.errors import UnreadableStream
from core.audio.features import estimate_key
from core.audio.types import AudioStream, KeyEstimate, Mode
from core.config import DEFAULT_CONFIG, TranspositionConfig
from ingestion.audio_loader import DEFAULT_DURATION, load_audio
from ingestion.sources import local_path

logger = logging.getLogger(__name__)

# Twelve commonly-used keys, sharp-spelled (Bb/Eb/Ab/Db → A#/D#/G#/C#).
COMMON_KEYS: tuple[str, ...] = (
    "C",
    "G",
    "D",
    "A",
    "E",
    "B",
    "F#",
    "F",
    "A#",
    "D#",
    "G#",
    "C#",
)


class PlaceholderKeyEstimator:
    """Random key estimator reproducing the reference placeholder.

    Results are non-deterministic unless a seeded ``random.Random`` is
    injected.

    Args:
        prober: Used to verify the stream is readable audio.
        rng: Random source. Defaults to a fresh ``random.Random()``.
        confidence: Fixed confidence reported for every estimate.
    """

    def __init__(
        self,
        prober: MetadataProber,
        *,
        rng: random.Random | None = None,
        confidence: float = DEFAULT_CONFIG.placeholder_confidence,
    ) -> None:
        self._prober = prober
        self._rng = rng if rng is not None else random.Random()
        self._confidence = confidence

    def detect_key(self, stream: AudioStream) -> KeyEstimate:
        self._prober.probe(stream)
        pitch_class = self._rng.choice(COMMON_KEYS)
        mode = self._rng.choice((Mode.MAJOR, Mode.MINOR))
        return KeyEstimate(pitch_class=pitch_class, mode=mode, confidence=self._confidence)


class ChromaKeyEstimator:
    """Krumhansl-Schmuckler key estimator over a librosa CQT chromagram.

    Args:
        librosa: Injected librosa module. Pass a MagicMock in tests to avoid
                 loading the audio stack. None = import lazily on first use.
        duration: Seconds of audio to analyse from the start of the file.
    """

    def __init__(self, librosa: Any = None, *, duration: float = DEFAULT_DURATION) -> None:
        self._librosa = librosa
        self._duration = duration

    def _get_librosa(self) -> Any:
        """Return librosa, importing it lazily if not already injected."""
        if self._librosa is None:
            import librosa as _lib  # deferred — allows testing without audio backend

            self._librosa = _lib
        return self._librosa

    def detect_key(self, stream: AudioStream) -> KeyEstimate:
        lib = self._get_librosa()
        with local_path(stream) as path:
            try:
                # Decodability decides readability, not the suffix.
                y, sr = load_audio(
                    path,
                    duration=self._duration,
                    check_suffix=False,
                    librosa=lib,
                )
            except (FileNotFoundError, ValueError, RuntimeError) as exc:
                raise UnreadableStream(str(exc)) from exc

        if len(y) == 0:
            raise UnreadableStream("Audio stream decoded to zero samples")

        key = estimate_key(y, sr, librosa=lib)
        logger.debug("Chroma key estimate: %s (r=%.2f)", key.label, key.confidence)
        return key


def create_key_estimator(
    config: TranspositionConfig,
    prober: MetadataProber,
) -> KeyEstimator:
    """Build the estimator named by ``config.key_estimator``."""
    if config.key_estimator == "chroma":
        return ChromaKeyEstimator()
    return PlaceholderKeyEstimator(prober, confidence=config.placeholder_confidence)
