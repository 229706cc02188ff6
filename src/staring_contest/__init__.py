"""Staring Contest - blink detection game driven by face and hand landmarks."""

__version__ = "0.1.0"

from staring_contest.estimator import (
    LEFT_EYE,
    RIGHT_EYE,
    DegenerateEyeContour,
    InsufficientLandmarks,
    eye_aspect_ratio,
    openness,
)
from staring_contest.blink import BlinkClassifier
from staring_contest.gestures import FingerState, StopGestureClassifier
from staring_contest.config import DetectorConfig, GameConfig, load_config
from staring_contest.camera import AcquisitionError, CameraSource, CameraStream
from staring_contest.detector import DetectionResult, DetectorInitError, LandmarkDetector
from staring_contest.timer import RoundTimer, Ticker
from staring_contest.metrics import MetricsCollector
from staring_contest.pipeline import PipelineKind, PipelineManager, PipelineStats, PipelineStatus
from staring_contest.game import GameEvent, GameSnapshot, GameState, StaringContest
