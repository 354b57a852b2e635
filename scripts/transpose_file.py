#!/usr/bin/env python
"""Transpose a single audio file from the command line.

Usage
-----
    # Shift up a perfect fifth, output next to the input
    python scripts/transpose_file.py song.wav --semitones 7

    # Shift down three semitones and report the new key
    python scripts/transpose_file.py song.mp3 --semitones -3 --key A --mode minor

    # Analyze only (metadata + key estimate + transposition table)
    python scripts/transpose_file.py song.mp3 --analyze

Reads TRANSPOSER_* settings from the environment / .env file.
Prints one JSON document on stdout.

Exit codes
----------
    0  — success
    1  — processing error (unreadable input, ffmpeg failure, timeout)
    2  — invalid arguments (bad shift, unknown key)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

# Add project root to sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv  # noqa: E402

load_dotenv()

from core.audio.errors import (  # noqa: E402
    InvalidShiftRange,
    MissingInput,
    TranspositionError,
)
from core.audio.types import PITCH_CLASSES, KeyEstimate, Mode  # noqa: E402
from core.audio.key_transform import note_to_index  # noqa: E402
from core.config import TranspositionConfig  # noqa: E402
from ingestion.audio_engine import AudioAnalysisEngine, TranspositionPipeline  # noqa: E402
from ingestion.ffmpeg import FFmpegTransposer, FFprobeProber  # noqa: E402
from ingestion.key_estimators import create_key_estimator  # noqa: E402

logger = logging.getLogger("transpose_file")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Pitch-shift an audio file without changing its tempo")
    p.add_argument("input", help="Path to the input audio file")
    p.add_argument(
        "--semitones",
        type=int,
        default=None,
        help="Signed shift in semitones, -12..12 (required unless --analyze)",
    )
    p.add_argument("--key", default=None, help="Original key root, e.g. 'A' or 'Bb'")
    p.add_argument(
        "--mode",
        choices=[m.value for m in Mode],
        default=None,
        help="Original mode (required with --key)",
    )
    p.add_argument(
        "--output",
        metavar="PATH",
        default=None,
        help="Output file (default: generated name next to the input)",
    )
    p.add_argument(
        "--analyze",
        action="store_true",
        help="Analyze instead of transposing",
    )
    p.add_argument(
        "--timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Abort the shift after this many seconds (default: TRANSPOSER_TIMEOUT_SEC)",
    )
    p.add_argument("--verbose", action="store_true", help="Log pipeline progress to stderr")
    return p.parse_args(argv)


def _known_key(args: argparse.Namespace) -> KeyEstimate | None:
    if args.key is None and args.mode is None:
        return None
    if args.key is None or args.mode is None:
        raise ValueError("--key and --mode must be given together")
    return KeyEstimate(
        pitch_class=PITCH_CLASSES[note_to_index(args.key)],
        mode=Mode(args.mode),
        confidence=1.0,
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = TranspositionConfig.from_env()
    except ValueError as exc:
        print(f"ERROR: invalid configuration: {exc}", file=sys.stderr)
        return 2

    prober = FFprobeProber(config)

    if args.analyze:
        engine = AudioAnalysisEngine(prober, create_key_estimator(config, prober))
        try:
            report = engine.analyze(args.input)
        except MissingInput as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 2
        except TranspositionError as exc:
            print(f"ERROR ({exc.kind}): {exc}", file=sys.stderr)
            return 1
        print(json.dumps(asdict(report), indent=2, default=str))
        return 0

    if args.semitones is None:
        print("ERROR: --semitones is required unless --analyze is given", file=sys.stderr)
        return 2

    try:
        known_key = _known_key(args)
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    pipeline = TranspositionPipeline(prober, FFmpegTransposer(config, prober=prober), config=config)
    try:
        result = pipeline.transpose(
            args.input,
            args.semitones,
            known_key,
            output_path=Path(args.output) if args.output else None,
            timeout=args.timeout,
        )
    except (MissingInput, InvalidShiftRange) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    except TranspositionError as exc:
        print(f"ERROR ({exc.kind}): {exc}", file=sys.stderr)
        return 1

    print(json.dumps(asdict(result), indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
