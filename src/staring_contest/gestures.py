"""Open-palm ("stop") gesture detection from hand landmarks."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence

import numpy as np

NUM_HAND_LANDMARKS = 21


class FingerState(Enum):
    """Binary finger state based on landmark positions."""
    EXTENDED = "extended"
    CURLED = "curled"


class StopGestureClassifier:
    """Detects an upright open palm facing the camera.

    Fingers are judged in image coordinates (y grows downwards):
    - index/middle/ring/pinky are extended when the tip sits above its PIP
      joint (tip.y < pip.y);
    - the thumb is extended when its tip is left of its IP joint
      (tip.x < ip.x), which holds for a right hand in an unflipped image.

    This is orientation-sensitive on purpose: a rotated or mirrored hand
    will not match.
    """

    # MediaPipe hand landmark indices
    THUMB_IP, THUMB_TIP = 3, 4
    _FINGER_TIPS = [8, 12, 16, 20]
    _FINGER_PIPS = [6, 10, 14, 18]

    def finger_states(self, landmarks: np.ndarray) -> list[FingerState]:
        """Extension state of (thumb, index, middle, ring, pinky)."""
        lm = np.asarray(landmarks, dtype=np.float64)

        if lm[self.THUMB_TIP, 0] < lm[self.THUMB_IP, 0]:
            states = [FingerState.EXTENDED]
        else:
            states = [FingerState.CURLED]

        for tip_idx, pip_idx in zip(self._FINGER_TIPS, self._FINGER_PIPS):
            if lm[tip_idx, 1] < lm[pip_idx, 1]:
                states.append(FingerState.EXTENDED)
            else:
                states.append(FingerState.CURLED)

        return states

    def classify(self, landmarks) -> bool:
        """True if `landmarks` is an open palm. Malformed input yields False."""
        try:
            lm = np.asarray(landmarks, dtype=np.float64)
        except (TypeError, ValueError):
            return False

        if lm.ndim != 2 or lm.shape[0] != NUM_HAND_LANDMARKS or lm.shape[1] < 2:
            return False

        return all(s is FingerState.EXTENDED for s in self.finger_states(lm))

    def first_match(self, hands: Sequence) -> Optional[int]:
        """Index of the first hand showing the gesture, in detector order."""
        for i, landmarks in enumerate(hands):
            if self.classify(landmarks):
                return i
        return None
