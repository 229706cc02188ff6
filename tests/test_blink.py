"""Tests for the edge-triggered blink classifier."""

import pytest

from staring_contest.blink import BLINK_THRESHOLD, BlinkClassifier


class TestBlinkClassifier:
    def test_default_threshold(self):
        assert BlinkClassifier().threshold == BLINK_THRESHOLD == 0.25

    def test_open_eye(self):
        assert BlinkClassifier().classify(0.3, False) == (False, False)

    def test_closing_edge_fires(self):
        assert BlinkClassifier().classify(0.1, False) == (True, True)

    def test_held_closed_does_not_refire(self):
        assert BlinkClassifier().classify(0.1, True) == (False, True)

    def test_reopening_clears_latch(self):
        assert BlinkClassifier().classify(0.3, True) == (False, False)

    def test_threshold_counts_as_open(self):
        c = BlinkClassifier()
        assert not c.is_closed(0.25)
        assert c.is_closed(0.2499)

    def test_one_blink_per_closure(self):
        c = BlinkClassifier()
        flag = False
        blinks = 0
        for score in [0.3, 0.3, 0.1, 0.05, 0.1, 0.3, 0.3, 0.2, 0.3]:
            is_blink, flag = c.classify(score, flag)
            blinks += is_blink
        assert blinks == 2

    def test_wide_open_never_blinks(self):
        c = BlinkClassifier()
        flag = False
        for _ in range(100):
            is_blink, flag = c.classify(1.0, flag)
            assert not is_blink

    @pytest.mark.parametrize("threshold", [0.0, 1.0, -0.1, 2.0])
    def test_threshold_range(self, threshold):
        with pytest.raises(ValueError):
            BlinkClassifier(threshold)
