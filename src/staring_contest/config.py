"""Game configuration: dataclass defaults with optional YAML overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from staring_contest.estimator import LEFT_EYE, RIGHT_EYE

logger = logging.getLogger("staring_contest.config")

CONFIG_ENV_VAR = "STARING_CONTEST_CONFIG"


@dataclass
class DetectorConfig:
    """Options handed to a landmark detector when it is constructed."""
    max_subjects: int = 1
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5

    def __post_init__(self):
        if self.max_subjects < 1:
            raise ValueError(f"max_subjects must be >= 1, got {self.max_subjects}")
        for name in ("min_detection_confidence", "min_tracking_confidence"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")


@dataclass
class GameConfig:
    # Blink / countdown
    blink_threshold: float = 0.25
    countdown_from: int = 3
    tick_seconds: float = 1.0

    # Camera
    frame_interval: float = 1 / 30
    camera_index: int = 0
    camera_width: int = 640
    camera_height: int = 480

    # Detectors
    left_eye: tuple[int, ...] = LEFT_EYE
    right_eye: tuple[int, ...] = RIGHT_EYE
    refine_landmarks: bool = True
    face: DetectorConfig = field(default_factory=lambda: DetectorConfig(1, 0.5, 0.5))
    hand: DetectorConfig = field(default_factory=lambda: DetectorConfig(2, 0.7, 0.5))

    # Server
    host: str = "0.0.0.0"
    port: int = 8765
    log_level: str = "info"

    def __post_init__(self):
        if not 0.0 < self.blink_threshold < 1.0:
            raise ValueError(f"blink_threshold must be in (0, 1), got {self.blink_threshold}")
        if self.countdown_from < 0:
            raise ValueError(f"countdown_from must be >= 0, got {self.countdown_from}")
        if self.tick_seconds <= 0 or self.frame_interval <= 0:
            raise ValueError("tick_seconds and frame_interval must be positive")
        self.left_eye = tuple(int(i) for i in self.left_eye)
        self.right_eye = tuple(int(i) for i in self.right_eye)
        for name in ("left_eye", "right_eye"):
            if len(getattr(self, name)) != 6:
                raise ValueError(f"{name} must list exactly 6 landmark indices")

    def to_dict(self) -> dict:
        data = asdict(self)
        data["left_eye"] = list(self.left_eye)
        data["right_eye"] = list(self.right_eye)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> GameConfig:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))

        kwargs = {k: v for k, v in data.items() if k in known}
        for key in ("face", "hand"):
            if isinstance(kwargs.get(key), dict):
                kwargs[key] = DetectorConfig(**kwargs[key])
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: str | Path) -> GameConfig:
        """Load a config from a YAML file. Missing keys keep their defaults."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        return cls.from_dict(data)

    def to_yaml(self, path: str | Path):
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


def load_config(path: Optional[str | Path] = None) -> GameConfig:
    """Resolve config from an explicit path, then $STARING_CONTEST_CONFIG, then defaults."""
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return GameConfig()

    logger.info("Loading config from %s", path)
    return GameConfig.from_yaml(path)
