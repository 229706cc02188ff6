"""Prometheus-compatible metrics for the staring contest.

Exposes /metrics in Prometheus text exposition format.
The text format is generated directly; no client library is needed.

Tracked metrics:
- staring_contest_rounds_total (counter)
- staring_contest_blinks_total (counter)
- staring_contest_gestures_total (counter)
- staring_contest_acquisition_errors_total (counter)
- staring_contest_frames_total (counter, by pipeline)
- staring_contest_frames_skipped_total (counter, by pipeline)
- staring_contest_stale_results_total (counter, by pipeline)
- staring_contest_frame_latency_seconds (histogram)
- staring_contest_round_duration_seconds (histogram)
- staring_contest_state (gauge, 1 for the current state)
- staring_contest_active_connections (gauge)
"""

from __future__ import annotations

import threading
import time
from collections import Counter
from typing import Optional


class _Histogram:
    """Simple histogram with configurable buckets."""

    def __init__(self, buckets: list[float]):
        self.buckets = sorted(buckets)
        self.bucket_counts = [0] * len(self.buckets)
        self.count = 0
        self.sum = 0.0
        self._lock = threading.Lock()

    def observe(self, value: float):
        with self._lock:
            self.count += 1
            self.sum += value
            for i, b in enumerate(self.buckets):
                if value <= b:
                    self.bucket_counts[i] += 1
                    break

    def render(self, name: str, help_text: str) -> str:
        lines = [
            f"# HELP {name} {help_text}",
            f"# TYPE {name} histogram",
        ]
        with self._lock:
            cumulative = 0
            for i, b in enumerate(self.buckets):
                cumulative += self.bucket_counts[i]
                lines.append(f'{name}_bucket{{le="{b}"}} {cumulative}')
            lines.append(f'{name}_bucket{{le="+Inf"}} {self.count}')
            lines.append(f"{name}_sum {self.sum:.6f}")
            lines.append(f"{name}_count {self.count}")
        return "\n".join(lines)


class MetricsCollector:
    """Collects and exposes Prometheus metrics for a game session."""

    PREFIX = "staring_contest"

    def __init__(self):
        self._frames: Counter = Counter()
        self._skipped: Counter = Counter()
        self._stale: Counter = Counter()
        self._rounds_total = 0
        self._blinks_total = 0
        self._gestures_total = 0
        self._acquisition_errors = 0
        self._state: Optional[str] = None
        self._active_connections = 0
        self._lock = threading.Lock()

        # Detector latency: 5ms to 250ms
        self._latency = _Histogram([0.005, 0.010, 0.020, 0.033, 0.050, 0.100, 0.250])
        # Seconds survived per round
        self._round_duration = _Histogram([1, 2, 5, 10, 20, 30, 60, 120, 300])

        self._start_time = time.time()

    def record_round(self):
        with self._lock:
            self._rounds_total += 1

    def record_blink(self, round_seconds: float):
        with self._lock:
            self._blinks_total += 1
        self._round_duration.observe(round_seconds)

    def record_gesture(self):
        with self._lock:
            self._gestures_total += 1

    def record_acquisition_error(self):
        with self._lock:
            self._acquisition_errors += 1

    def record_frame(self, pipeline: str, latency_seconds: float):
        with self._lock:
            self._frames[pipeline] += 1
        self._latency.observe(latency_seconds)

    def record_skip(self, pipeline: str):
        with self._lock:
            self._skipped[pipeline] += 1

    def record_stale(self, pipeline: str):
        with self._lock:
            self._stale[pipeline] += 1

    def set_state(self, state: str):
        self._state = state

    def set_connections(self, count: int):
        self._active_connections = count

    def _counter(self, lines: list[str], name: str, help_text: str, value: int):
        full = f"{self.PREFIX}_{name}"
        lines.append(f"# HELP {full} {help_text}")
        lines.append(f"# TYPE {full} counter")
        lines.append(f"{full} {value}")
        lines.append("")

    def _labeled(self, lines: list[str], name: str, help_text: str, counts: Counter):
        full = f"{self.PREFIX}_{name}"
        lines.append(f"# HELP {full} {help_text}")
        lines.append(f"# TYPE {full} counter")
        with self._lock:
            for label, count in sorted(counts.items()):
                lines.append(f'{full}{{pipeline="{label}"}} {count}')
        lines.append("")

    def render(self, states: Optional[list[str]] = None) -> str:
        """Render all metrics in Prometheus text exposition format.

        `states` lists every state name so the gauge reports zeros for the
        inactive ones.
        """
        lines: list[str] = []

        uptime = time.time() - self._start_time
        lines.append(f"# HELP {self.PREFIX}_uptime_seconds Time since session start")
        lines.append(f"# TYPE {self.PREFIX}_uptime_seconds gauge")
        lines.append(f"{self.PREFIX}_uptime_seconds {uptime:.1f}")
        lines.append("")

        self._counter(lines, "rounds_total", "Rounds that reached the active state", self._rounds_total)
        self._counter(lines, "blinks_total", "Rounds lost to a blink", self._blinks_total)
        self._counter(lines, "gestures_total", "Penalties dismissed by a stop gesture", self._gestures_total)
        self._counter(
            lines, "acquisition_errors_total", "Camera acquisition failures", self._acquisition_errors
        )

        self._labeled(lines, "frames_total", "Frames processed by a detector", self._frames)
        self._labeled(lines, "frames_skipped_total", "Frames skipped while the detector was busy", self._skipped)
        self._labeled(lines, "stale_results_total", "Results discarded after a pipeline stop", self._stale)

        lines.append(self._latency.render(
            f"{self.PREFIX}_frame_latency_seconds",
            "Detector latency per frame in seconds",
        ))
        lines.append("")
        lines.append(self._round_duration.render(
            f"{self.PREFIX}_round_duration_seconds",
            "Seconds survived before blinking",
        ))
        lines.append("")

        lines.append(f"# HELP {self.PREFIX}_state Current game state (1 = active)")
        lines.append(f"# TYPE {self.PREFIX}_state gauge")
        for name in states or ([self._state] if self._state else []):
            value = 1 if name == self._state else 0
            lines.append(f'{self.PREFIX}_state{{state="{name}"}} {value}')
        lines.append("")

        lines.append(f"# HELP {self.PREFIX}_active_connections Current WebSocket connections")
        lines.append(f"# TYPE {self.PREFIX}_active_connections gauge")
        lines.append(f"{self.PREFIX}_active_connections {self._active_connections}")
        lines.append("")

        return "\n".join(lines) + "\n"

    @property
    def frame_counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._frames)

    @property
    def blinks_total(self) -> int:
        return self._blinks_total

    @property
    def rounds_total(self) -> int:
        return self._rounds_total
