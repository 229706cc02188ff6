"""Builds a ready-to-play game from configuration."""

from __future__ import annotations

import logging
from typing import Optional

from staring_contest.camera import CameraSource
from staring_contest.config import GameConfig
from staring_contest.detector import DetectorInitError, FaceMeshDetector, HandDetector
from staring_contest.game import StaringContest
from staring_contest.metrics import MetricsCollector
from staring_contest.pipeline import PipelineKind, PipelineManager

logger = logging.getLogger("staring_contest.session")


def create_game(
    config: Optional[GameConfig] = None,
    metrics: Optional[MetricsCollector] = None,
) -> StaringContest:
    """Construct detectors, cameras and the pipeline manager once per session.

    A detector that fails to initialize disables only its own pipeline: the
    game still builds, and starting that pipeline reports the error.
    """
    config = config or GameConfig()
    metrics = metrics or MetricsCollector()
    manager = PipelineManager(frame_interval=config.frame_interval, metrics=metrics)

    factories = {
        PipelineKind.FACE: lambda: FaceMeshDetector(config.face, refine_landmarks=config.refine_landmarks),
        PipelineKind.HAND: lambda: HandDetector(config.hand),
    }

    for kind, factory in factories.items():
        camera = CameraSource(config.camera_index, config.camera_width, config.camera_height)
        try:
            detector = factory()
        except DetectorInitError as e:
            logger.error("%s detector unavailable: %s", kind.value, e)
            manager.register(kind, camera, detector=None, init_error=str(e))
            continue
        manager.register(kind, camera, detector=detector)

    return StaringContest(manager, config=config, metrics=metrics)
