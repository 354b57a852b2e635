"""
core/audio/features.py — Pure DSP feature extraction for key estimation.

All functions accept (y: np.ndarray, sr: int) and return structured data.
`librosa` is always injected as a parameter — never imported at module top —
so this module is testable without installing the audio stack.

Design:
    - `separate_hpss()` separates harmonic and percussive content first.
      Key detection only looks at the harmonic signal; drums smear the
      chroma distribution.
    - `extract_key()` is pure numpy — no librosa dependency. It takes a
      pre-computed chroma_mean vector and runs Krumhansl-Schmuckler.
    - `estimate_key()` wires the two together for one loaded signal.

Krumhansl-Schmuckler profiles (1990):
    Psychoacoustic salience weights for each of 12 pitch classes
    relative to a tonal centre. Pearson correlation against all 24
    key templates (12 major + 12 minor) selects the best match.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from core.audio.types import PITCH_CLASSES, KeyEstimate, Mode

# ---------------------------------------------------------------------------
# Krumhansl-Schmuckler profiles (1990)
# Starting from C — 12-element salience weights
# ---------------------------------------------------------------------------

_MAJOR_PROFILE: tuple[float, ...] = (
    6.35,
    2.23,
    3.48,
    2.33,
    4.38,
    4.09,
    2.52,
    5.19,
    2.39,
    3.66,
    2.29,
    2.88,
)
_MINOR_PROFILE: tuple[float, ...] = (
    6.33,
    2.68,
    3.52,
    5.38,
    2.60,
    3.53,
    2.54,
    4.75,
    3.98,
    2.69,
    3.34,
    3.17,
)


# ---------------------------------------------------------------------------
# HPSS — Harmonic-Percussive Source Separation
# ---------------------------------------------------------------------------


def separate_hpss(
    y: np.ndarray,
    *,
    librosa: Any,
) -> tuple[np.ndarray, np.ndarray]:
    """Separate audio into harmonic and percussive components (HPSS).

    Args:
        y: Audio time series (mono, float32)
        librosa: Injected librosa module

    Returns:
        (y_harmonic, y_percussive) — both same shape as y
    """
    y_harmonic, y_percussive = librosa.effects.hpss(y)
    return y_harmonic, y_percussive


# ---------------------------------------------------------------------------
# Chroma extraction
# ---------------------------------------------------------------------------


def extract_chroma(
    y: np.ndarray,
    sr: int,
    *,
    librosa: Any,
    use_harmonic: bool = True,
) -> np.ndarray:
    """Extract mean CQT-based chromagram from audio.

    CQT chromagram is preferred over STFT-based for key detection:
    it has logarithmic frequency resolution that aligns with musical
    pitch perception.

    Args:
        y: Audio time series (mono, float32)
        sr: Sample rate in Hz
        librosa: Injected librosa module
        use_harmonic: If True, separate HPSS first for cleaner chroma.

    Returns:
        np.ndarray of shape (12,) — mean pitch class energies (C first).
    """
    y_input = y
    if use_harmonic:
        y_input, _ = separate_hpss(y, librosa=librosa)

    chroma = librosa.feature.chroma_cqt(y=y_input, sr=sr)
    return np.mean(chroma, axis=1)  # shape (12,)


# ---------------------------------------------------------------------------
# Key detection — pure numpy, no librosa
# ---------------------------------------------------------------------------


def extract_key(chroma_mean: np.ndarray) -> KeyEstimate:
    """Detect musical key using Krumhansl-Schmuckler profiles.

    Pearson-correlates the 12-element chroma distribution against all
    24 key templates (12 major + 12 minor, each rotated to align with
    a different root). The best correlation wins; ties keep the first
    (lowest root, major before minor).

    Args:
        chroma_mean: np.ndarray of shape (12,) — pitch class distribution.

    Returns:
        KeyEstimate with sharp-spelled root, mode and confidence
        (best Pearson r clamped to [0, 1]). Flat/silent chroma yields
        C major with confidence 0.0.

    Raises:
        ValueError: If chroma_mean is not shape (12,).
    """
    if chroma_mean.shape != (12,):
        raise ValueError(f"chroma_mean must have shape (12,), got {chroma_mean.shape}")

    best_score: float = -2.0  # Pearson r ∈ [-1, 1]
    best_root: int = 0
    best_mode: Mode = Mode.MAJOR

    major_arr = np.array(_MAJOR_PROFILE)
    minor_arr = np.array(_MINOR_PROFILE)

    for root_idx in range(12):
        major_profile = np.roll(major_arr, root_idx)
        minor_profile = np.roll(minor_arr, root_idx)

        # zero-variance chroma → NaN → 0.0
        with np.errstate(invalid="ignore", divide="ignore"):
            major_r = float(np.nan_to_num(np.corrcoef(chroma_mean, major_profile)[0, 1]))
            minor_r = float(np.nan_to_num(np.corrcoef(chroma_mean, minor_profile)[0, 1]))

        if major_r > best_score:
            best_score, best_root, best_mode = major_r, root_idx, Mode.MAJOR

        if minor_r > best_score:
            best_score, best_root, best_mode = minor_r, root_idx, Mode.MINOR

    confidence = max(0.0, min(1.0, best_score))
    return KeyEstimate(
        pitch_class=PITCH_CLASSES[best_root],
        mode=best_mode,
        confidence=confidence,
    )


def estimate_key(y: np.ndarray, sr: int, *, librosa: Any) -> KeyEstimate:
    """Chroma → Krumhansl-Schmuckler for one loaded signal."""
    return extract_key(extract_chroma(y, sr, librosa=librosa, use_harmonic=True))
