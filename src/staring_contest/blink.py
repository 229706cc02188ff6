"""Edge-triggered blink classification over the openness score."""

from __future__ import annotations

BLINK_THRESHOLD = 0.25


class BlinkClassifier:
    """Turns per-frame openness scores into discrete blink events.

    The caller owns the one-bit latch and passes it back in each frame. A
    blink fires on the open→closed edge only; the latch stays set while the
    score is below the threshold and clears once it is back at or above the
    same threshold. No smoothing across frames: one closed frame is enough.
    """

    def __init__(self, threshold: float = BLINK_THRESHOLD):
        if not 0.0 < threshold < 1.0:
            raise ValueError(f"threshold must be in (0, 1), got {threshold}")
        self.threshold = threshold

    def is_closed(self, score: float) -> bool:
        return score < self.threshold

    def classify(self, score: float, blink_flag: bool) -> tuple[bool, bool]:
        """Returns (is_blink, new_blink_flag)."""
        closed = self.is_closed(score)
        return closed and not blink_flag, closed
