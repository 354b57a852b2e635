"""
core/audio/key_transform.py — Pure key arithmetic for transposition.

Maps (key, mode, semitone shift) → (new key, mode, interval name).
No I/O, no audio — just modular arithmetic over the 12 pitch classes.

Exports:
    FLAT_TO_SHARP           flat spelling → sharp spelling
    INTERVAL_NAMES          semitone shift (-12..12) → canonical interval name

    note_to_index(note) → int
    transpose_index(index, semitones) → int
    interval_name(semitones) → str
    validate_shift(semitones) → int
    apply_key_transform(pitch_class, mode, semitones) → KeyTransform
    supported_transpositions(key) → tuple[TranspositionOption, ...]

Wrap policy:
    Key arithmetic is total over all integers and wraps modulo 12, so
    apply(apply(k, s1).new_key, s2).new_key == apply(k, s1 + s2).new_key
    even when s1 + s2 leaves [-12, 12]. Only the interval name differs
    for out-of-table shifts ("15 semitones up").
"""

from __future__ import annotations

from core.audio.errors import InvalidShiftRange
from core.audio.types import (
    PITCH_CLASSES,
    SEMITONE_MAX,
    SEMITONE_MIN,
    KeyEstimate,
    KeyTransform,
    Mode,
    TranspositionOption,
)

# Input normalisation: flat → sharp
FLAT_TO_SHARP: dict[str, str] = {
    "Db": "C#",
    "Eb": "D#",
    "Gb": "F#",
    "Ab": "G#",
    "Bb": "A#",
    # Rare enharmonics that still show up in tags
    "Cb": "B",
    "Fb": "E",
    "E#": "F",
    "B#": "C",
}

_UP_INTERVALS: tuple[str, ...] = (
    "Perfect Unison",
    "Minor Second",
    "Major Second",
    "Minor Third",
    "Major Third",
    "Perfect Fourth",
    "Tritone",
    "Perfect Fifth",
    "Minor Sixth",
    "Major Sixth",
    "Minor Seventh",
    "Major Seventh",
    "Perfect Octave",
)

INTERVAL_NAMES: dict[int, str] = {
    **{i: name for i, name in enumerate(_UP_INTERVALS)},
    **{-i: f"{name} (down)" for i, name in enumerate(_UP_INTERVALS) if i > 0},
}


def note_to_index(note: str) -> int:
    """Return the pitch class number (0–11) of a note name.

    Args:
        note: Note name in sharp or flat spelling, e.g. "A", "C#", "Bb".
              Leading/trailing whitespace and lowercase roots are accepted.

    Returns:
        Pitch class integer 0 (C) through 11 (B).

    Raises:
        ValueError: If the note name is not recognised.
    """
    cleaned = note.strip()
    if cleaned:
        cleaned = cleaned[0].upper() + cleaned[1:]
    cleaned = FLAT_TO_SHARP.get(cleaned, cleaned)
    if cleaned not in PITCH_CLASSES:
        raise ValueError(f"Unknown note name {note!r}")
    return PITCH_CLASSES.index(cleaned)


def transpose_index(index: int, semitones: int) -> int:
    """Shift a pitch class index, normalised into 0..11 for negative shifts too."""
    return ((index + semitones) % 12 + 12) % 12


def interval_name(semitones: int) -> str:
    """Return the canonical interval name for a shift.

    Down-shifts carry a " (down)" suffix. Values outside -12..12 fall
    back to a generic "N semitones up/down" string instead of failing.
    """
    name = INTERVAL_NAMES.get(semitones)
    if name is not None:
        return name
    direction = "up" if semitones > 0 else "down"
    return f"{abs(semitones)} semitones {direction}"


def validate_shift(semitones: object) -> int:
    """Return `semitones` if it is an integer in [-12, 12].

    bool is rejected even though it subclasses int.

    Raises:
        InvalidShiftRange: For non-integers and out-of-range values.
    """
    if isinstance(semitones, bool) or not isinstance(semitones, int):
        raise InvalidShiftRange(f"Semitones must be an integer, got {semitones!r}")
    if not SEMITONE_MIN <= semitones <= SEMITONE_MAX:
        raise InvalidShiftRange(
            f"Semitones must be between {SEMITONE_MIN} and +{SEMITONE_MAX}, got {semitones}"
        )
    return semitones


def apply_key_transform(pitch_class: str, mode: Mode | str, semitones: int) -> KeyTransform:
    """Map a key through a semitone shift.

    The new key is always sharp-spelled and the mode is preserved.

    Args:
        pitch_class: Original key root (sharp or flat spelling).
        mode:        Mode of the original key.
        semitones:   Signed shift. Any integer is accepted (wraps mod 12).

    Returns:
        KeyTransform with original and new key, mode and interval name.

    Raises:
        ValueError: If pitch_class or mode is not recognised.
    """
    mode = Mode(mode)
    index = note_to_index(pitch_class)
    new_key = PITCH_CLASSES[transpose_index(index, semitones)]
    return KeyTransform(
        original_key=PITCH_CLASSES[index],
        original_mode=mode,
        new_key=new_key,
        new_mode=mode,
        semitones=semitones,
        interval_name=interval_name(semitones),
    )


def supported_transpositions(key: KeyEstimate) -> tuple[TranspositionOption, ...]:
    """Tabulate the resulting key for every non-zero shift in [-12, 12].

    Returns:
        24 TranspositionOption rows ordered from -12 to +12.
    """
    rows = []
    for semitones in range(SEMITONE_MIN, SEMITONE_MAX + 1):
        if semitones == 0:
            continue
        transform = apply_key_transform(key.pitch_class, key.mode, semitones)
        rows.append(
            TranspositionOption(
                semitones=semitones,
                interval_name=transform.interval_name,
                new_key=transform.new_key,
            )
        )
    return tuple(rows)
