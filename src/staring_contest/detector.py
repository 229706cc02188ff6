"""Face and hand landmark extraction using MediaPipe."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import numpy as np

try:
    import mediapipe as mp
except ImportError:
    mp = None

try:
    import cv2
except ImportError:
    cv2 = None

from staring_contest.config import DetectorConfig

logger = logging.getLogger("staring_contest.detector")


class DetectorInitError(RuntimeError):
    """A landmark detector could not be constructed."""


@dataclass
class DetectionResult:
    """Landmarks for every subject found in one frame.

    `subjects` holds one (N, 3) float32 array per face or hand, in the
    detector's order; it is empty when nothing was detected. `frame` is the
    frame that was submitted, for redraw.
    """
    subjects: list[np.ndarray]
    frame: Any = None


ResultCallback = Callable[[DetectionResult], Any]


class LandmarkDetector:
    """Frame-in, landmarks-out detector with result callbacks.

    Subclasses implement `_process(frame)`, returning the subject list.
    `submit_frame` awaits it and hands the result to every registered
    callback (sync or async) on the event loop.
    """

    def __init__(self, config: DetectorConfig):
        self.config = config
        self._callbacks: list[ResultCallback] = []
        self._closed = False

    def on_result(self, callback: ResultCallback):
        """Register a callback for detection results."""
        self._callbacks.append(callback)

    async def submit_frame(self, frame) -> DetectionResult:
        subjects = await self._process(frame)
        result = DetectionResult(subjects=subjects, frame=frame)
        for cb in self._callbacks:
            out = cb(result)
            if inspect.isawaitable(out):
                await out
        return result

    async def _process(self, frame) -> list[np.ndarray]:
        raise NotImplementedError

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        """Release detector resources. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._release()

    def _release(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def _require_mediapipe(what: str):
    if mp is None:
        raise DetectorInitError(
            f"mediapipe is required for {what}. Install with: pip install mediapipe"
        )
    if not hasattr(mp, "solutions"):
        raise DetectorInitError(
            f"the installed mediapipe build does not provide mp.solutions, needed for {what}"
        )
    if cv2 is None:
        raise DetectorInitError("opencv-python is required to convert camera frames")


def _to_array(landmark_list) -> np.ndarray:
    return np.array(
        [[lm.x, lm.y, lm.z] for lm in landmark_list.landmark],
        dtype=np.float32,
    )


class _MediaPipeDetector(LandmarkDetector):
    """Runs a MediaPipe solution off-loop on BGR frames."""

    _results_attr = ""

    def __init__(self, config: DetectorConfig, solution):
        super().__init__(config)
        self._solution = solution

    def _detect(self, frame_bgr: np.ndarray) -> list[np.ndarray]:
        frame_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        results = self._solution.process(frame_rgb)
        found = getattr(results, self._results_attr, None)
        if not found:
            return []
        return [_to_array(subject) for subject in found]

    async def _process(self, frame) -> list[np.ndarray]:
        return await asyncio.to_thread(self._detect, frame)

    def _release(self):
        self._solution.close()


class FaceMeshDetector(_MediaPipeDetector):
    """468 face landmarks per face (478 with iris refinement)."""

    _results_attr = "multi_face_landmarks"

    def __init__(self, config: Optional[DetectorConfig] = None, refine_landmarks: bool = True):
        config = config or DetectorConfig(max_subjects=1)
        _require_mediapipe("face tracking")
        try:
            solution = mp.solutions.face_mesh.FaceMesh(
                static_image_mode=False,
                max_num_faces=config.max_subjects,
                refine_landmarks=refine_landmarks,
                min_detection_confidence=config.min_detection_confidence,
                min_tracking_confidence=config.min_tracking_confidence,
            )
        except Exception as e:
            raise DetectorInitError(f"Could not initialize MediaPipe Face Mesh: {e}") from e
        super().__init__(config, solution)


class HandDetector(_MediaPipeDetector):
    """21 hand landmarks per hand, (x, y, z) normalized to the image."""

    _results_attr = "multi_hand_landmarks"

    def __init__(self, config: Optional[DetectorConfig] = None):
        config = config or DetectorConfig(max_subjects=2, min_detection_confidence=0.7)
        _require_mediapipe("hand tracking")
        try:
            solution = mp.solutions.hands.Hands(
                static_image_mode=False,
                max_num_hands=config.max_subjects,
                min_detection_confidence=config.min_detection_confidence,
                min_tracking_confidence=config.min_tracking_confidence,
            )
        except Exception as e:
            raise DetectorInitError(f"Could not initialize MediaPipe Hands: {e}") from e
        super().__init__(config, solution)
