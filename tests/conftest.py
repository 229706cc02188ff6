"""Camera, detector and clock fakes so no test needs a webcam or MediaPipe."""

import asyncio

import numpy as np
import pytest

from staring_contest.camera import AcquisitionError
from staring_contest.config import DetectorConfig, GameConfig
from staring_contest.detector import LandmarkDetector
from staring_contest.estimator import LEFT_EYE, RIGHT_EYE
from staring_contest.game import StaringContest
from staring_contest.metrics import MetricsCollector
from staring_contest.pipeline import PipelineKind, PipelineManager

NUM_FACE_LANDMARKS = 478


def make_face(ear=0.3):
    """Face landmarks whose eyes both have the given aspect ratio."""
    lm = np.full((NUM_FACE_LANDMARKS, 3), 0.5, dtype=np.float32)
    for contour, cx in ((LEFT_EYE, 0.35), (RIGHT_EYE, 0.65)):
        half_width = 0.05
        half_height = ear * half_width  # vertical pair distance = 2 * half_height
        p0, p1, p2, p3, p4, p5 = contour
        lm[p0] = [cx - half_width, 0.4, 0]
        lm[p3] = [cx + half_width, 0.4, 0]
        lm[p1] = [cx - 0.02, 0.4 - half_height, 0]
        lm[p5] = [cx - 0.02, 0.4 + half_height, 0]
        lm[p2] = [cx + 0.02, 0.4 - half_height, 0]
        lm[p4] = [cx + 0.02, 0.4 + half_height, 0]
    return lm


def make_open_palm():
    """Upright right hand, all fingers up, thumb out to the left."""
    lm = np.zeros((21, 3), dtype=np.float32)
    lm[0] = [0.5, 0.9, 0]  # wrist
    lm[1], lm[2], lm[3], lm[4] = [0.45, 0.85, 0], [0.40, 0.80, 0], [0.35, 0.75, 0], [0.30, 0.70, 0]
    for i, (mcp, pip, dip, tip) in enumerate([(5, 6, 7, 8), (9, 10, 11, 12), (13, 14, 15, 16), (17, 18, 19, 20)]):
        x = 0.45 + i * 0.05
        lm[mcp] = [x, 0.70, 0]
        lm[pip] = [x, 0.60, 0]
        lm[dip] = [x, 0.50, 0]
        lm[tip] = [x, 0.40, 0]
    return lm


def make_fist():
    """Fingertips folded below their PIP joints, thumb tucked right."""
    lm = make_open_palm()
    for tip, pip in zip([8, 12, 16, 20], [6, 10, 14, 18]):
        lm[tip][1] = lm[pip][1] + 0.05
    lm[4][0] = lm[3][0] + 0.05
    return lm


async def settle(rounds=20):
    """Let every ready task run until the loop goes quiet."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualClock:
    """Injectable sleep: sleepers wake only when the test calls advance()."""

    def __init__(self):
        self._waiters = []

    @property
    def sleepers(self):
        return sum(1 for f in self._waiters if not f.done())

    async def sleep(self, delay):
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        await fut

    async def advance(self):
        waiters, self._waiters = self._waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_result(None)
        await settle()


class FakeStream:
    def __init__(self, index=0):
        self.index = index
        self.active = True
        self.reads = 0

    def read(self):
        if not self.active:
            return None
        self.reads += 1
        return np.zeros((4, 4, 3), dtype=np.uint8)

    def stop(self):
        self.active = False


class FakeCamera:
    """Camera source that counts acquisitions and can be told to fail."""

    def __init__(self, error=None):
        self.error = error
        self.acquired = []
        self.released = []
        self.gate = None  # asyncio.Event; acquire blocks on it when set

    @property
    def open_streams(self):
        return [s for s in self.acquired if s.active]

    async def acquire(self):
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise AcquisitionError(self.error)
        stream = FakeStream()
        self.acquired.append(stream)
        return stream

    def release(self, stream):
        stream.stop()
        self.released.append(stream)


class FakeDetector(LandmarkDetector):
    """Returns `subjects` for every frame; blocks on `gate` when one is set."""

    def __init__(self, subjects=None):
        super().__init__(DetectorConfig())
        self.subjects = subjects or []
        self.submitted = 0
        self.gate = None
        self.release_count = 0

    async def _process(self, frame):
        self.submitted += 1
        if self.gate is not None:
            await self.gate.wait()
        return list(self.subjects)

    def _release(self):
        self.release_count += 1


class Rig:
    """A game wired to fakes, plus handles to every fake."""

    def __init__(self, face_subjects=None, hand_subjects=None, countdown_from=3):
        self.clock = ManualClock()
        self.frames = ManualClock()
        self.metrics = MetricsCollector()
        self.face_camera = FakeCamera()
        self.hand_camera = FakeCamera()
        self.face_detector = FakeDetector([make_face(0.3)] if face_subjects is None else face_subjects)
        self.hand_detector = FakeDetector(hand_subjects or [])

        self.manager = PipelineManager(sleep=self.frames.sleep, metrics=self.metrics)
        self.manager.register(PipelineKind.FACE, self.face_camera, self.face_detector)
        self.manager.register(PipelineKind.HAND, self.hand_camera, self.hand_detector)

        self.game = StaringContest(
            self.manager,
            config=GameConfig(countdown_from=countdown_from),
            sleep=self.clock.sleep,
        )
        self.events = []
        self.game.on_event(self.events.append)

    def history(self):
        """(state, countdown) for every state event, in order."""
        return [
            (e.snapshot.state, e.snapshot.countdown)
            for e in self.events if e.type == "state"
        ]

    async def run_countdown(self):
        """start_game() then tick until the round is active."""
        await self.game.start_game()
        await settle()
        for _ in range(self.game.config.countdown_from):
            await self.clock.advance()


@pytest.fixture
def rig():
    return Rig()
