"""
FastAPI dependency providers.

The only process-wide object is the immutable ``TranspositionConfig``;
probers, transposers and pipelines are cheap and built per request from
it, so no mutable state is shared between concurrent requests.
Tests override ``get_config`` (temporary upload dir) or the pipeline
providers (in-memory fakes) via ``app.dependency_overrides``.
"""

from fastapi import Depends

from core.audio.base import MetadataProber
from core.config import TranspositionConfig
from ingestion.audio_engine import AudioAnalysisEngine, TranspositionPipeline
from ingestion.ffmpeg import FFmpegTransposer, FFprobeProber
from ingestion.key_estimators import create_key_estimator

_config: TranspositionConfig | None = None


def get_config() -> TranspositionConfig:
    """
    Return the process-wide ``TranspositionConfig``.

    Read from ``TRANSPOSER_*`` environment variables on first call and
    reused thereafter. The upload directory is created if missing.
    """
    global _config  # noqa: PLW0603
    if _config is None:
        _config = TranspositionConfig.from_env()
        _config.upload_dir.mkdir(parents=True, exist_ok=True)
    return _config


def get_prober(config: TranspositionConfig = Depends(get_config)) -> MetadataProber:
    """Return an ffprobe-backed prober."""
    return FFprobeProber(config)


def get_transposer(
    config: TranspositionConfig = Depends(get_config),
    prober: MetadataProber = Depends(get_prober),
) -> FFmpegTransposer:
    """Return an ffmpeg-backed transposer."""
    return FFmpegTransposer(config, prober=prober)


def get_pipeline(
    config: TranspositionConfig = Depends(get_config),
    prober: MetadataProber = Depends(get_prober),
    transposer: FFmpegTransposer = Depends(get_transposer),
) -> TranspositionPipeline:
    """Return a pipeline writing outputs into the upload directory."""
    return TranspositionPipeline(
        prober,
        transposer,
        config=config,
        output_dir=config.upload_dir,
    )


def get_analysis_engine(
    config: TranspositionConfig = Depends(get_config),
    prober: MetadataProber = Depends(get_prober),
) -> AudioAnalysisEngine:
    """Return an analysis engine with the configured key estimator."""
    return AudioAnalysisEngine(prober, create_key_estimator(config, prober))
