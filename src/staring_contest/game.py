"""Staring contest game state machine."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from staring_contest.blink import BlinkClassifier
from staring_contest.camera import AcquisitionError
from staring_contest.config import GameConfig
from staring_contest.detector import DetectionResult, DetectorInitError
from staring_contest.estimator import InsufficientLandmarks, openness
from staring_contest.gestures import StopGestureClassifier
from staring_contest.metrics import MetricsCollector
from staring_contest.pipeline import PipelineKind, PipelineManager
from staring_contest.timer import RoundTimer, Sleep, Ticker

logger = logging.getLogger("staring_contest.game")

STATUS_READY = "Click Start to begin the staring contest"
STATUS_WARMING_UP = "Getting webcam ready..."
STATUS_COUNTDOWN = "Get ready..."
STATUS_ACTIVE = "Starting game... Keep your eyes open!"
STATUS_LOST = "Blink detected! You lose!"
STATUS_PENALTY = "Blink detected! You lose! Show an open palm to continue."
STATUS_DISMISSED = "Penalty cleared. Click Start to play again"


class GameState(Enum):
    IDLE = "idle"
    AWAITING_CAMERA = "awaiting_camera"
    COUNTDOWN = "countdown"
    ACTIVE = "active"
    LOST = "lost"
    PENALTY_AWAITING_GESTURE = "penalty_awaiting_gesture"


@dataclass(frozen=True)
class GameSnapshot:
    """Immutable view of the game. Every UI flag derives from `state`."""
    state: GameState
    countdown: int = 0
    elapsed: int = 0
    status: str = STATUS_READY

    @property
    def blink_detected(self) -> bool:
        return self.state in (GameState.LOST, GameState.PENALTY_AWAITING_GESTURE)

    @property
    def start_enabled(self) -> bool:
        return self.state is GameState.IDLE

    @property
    def show_countdown(self) -> bool:
        return self.state is GameState.COUNTDOWN and self.countdown > 0

    @property
    def show_penalty(self) -> bool:
        return self.blink_detected

    @property
    def video_visible(self) -> bool:
        return self.state in (
            GameState.COUNTDOWN,
            GameState.ACTIVE,
            GameState.PENALTY_AWAITING_GESTURE,
        )

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "countdown": self.countdown,
            "elapsed": self.elapsed,
            "status": self.status,
            "blink_detected": self.blink_detected,
            "start_enabled": self.start_enabled,
            "show_countdown": self.show_countdown,
            "show_penalty": self.show_penalty,
            "video_visible": self.video_visible,
        }


@dataclass
class GameEvent:
    """Notification for the presentation layer."""
    type: str  # "state", "countdown", "tick", "blink", "gesture", "error"
    snapshot: GameSnapshot
    data: dict = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "state": self.snapshot.to_dict(),
            "data": self.data,
            "timestamp": self.timestamp,
        }


class StaringContest:
    """Orchestrates one player's staring contest.

    IDLE ─start→ AWAITING_CAMERA ─ready→ COUNTDOWN(3..0) → ACTIVE
    ACTIVE ─blink→ LOST → PENALTY_AWAITING_GESTURE ─open palm→ IDLE
    any ─restart→ IDLE

    The face pipeline runs only in ACTIVE and the hand pipeline only in
    PENALTY_AWAITING_GESTURE. A camera or detector failure sends the game
    back to IDLE with the error as status. Every suspension point re-checks
    an epoch counter so a restart that lands mid-transition wins.
    """

    def __init__(
        self,
        pipelines: PipelineManager,
        config: Optional[GameConfig] = None,
        sleep: Optional[Sleep] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or GameConfig()
        self.pipelines = pipelines
        self.metrics = metrics or pipelines.metrics

        self.blink_classifier = BlinkClassifier(self.config.blink_threshold)
        self.gesture_classifier = StopGestureClassifier()
        self.timer = RoundTimer(self.config.tick_seconds, sleep=sleep)
        self.timer.on_tick(self._on_timer_tick)
        self._countdown_ticker = Ticker(
            self.config.tick_seconds, self._on_countdown_tick, sleep=sleep, name="countdown",
        )

        self._state = GameState.IDLE
        self._countdown = 0
        self._status = STATUS_READY
        self._blink_latch = False
        self._epoch = 0
        self._listeners: list[Callable[[GameEvent], Any]] = []

        pipelines.on_frame(PipelineKind.FACE, self._on_face_result)
        pipelines.on_frame(PipelineKind.HAND, self._on_hand_result)
        self.metrics.set_state(self._state.value)

    # --- Observation ---

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def snapshot(self) -> GameSnapshot:
        return GameSnapshot(
            state=self._state,
            countdown=self._countdown,
            elapsed=self.timer.elapsed,
            status=self._status,
        )

    def on_event(self, callback: Callable[[GameEvent], Any]):
        """Register a presentation callback for game events."""
        self._listeners.append(callback)

    def _emit(self, event_type: str, **data):
        event = GameEvent(type=event_type, snapshot=self.snapshot, data=data)
        for cb in self._listeners:
            try:
                cb(event)
            except Exception:
                logger.exception("Game event listener failed")

    def _set_state(self, state: GameState, status: Optional[str] = None, countdown: int = 0):
        self._state = state
        self._countdown = countdown
        if status is not None:
            self._status = status
        self.metrics.set_state(state.value)
        if state is GameState.COUNTDOWN:
            logger.info("State → countdown(%d)", countdown)
        else:
            logger.info("State → %s", state.value)
        self._emit("state")

    # --- User commands ---

    async def start_game(self) -> bool:
        """Begin a round. Accepted only from IDLE; returns False otherwise."""
        if self._state is not GameState.IDLE:
            logger.debug("start_game ignored in state %s", self._state.value)
            return False

        self._epoch += 1
        epoch = self._epoch
        self._blink_latch = False
        self.timer.reset()
        self._set_state(GameState.AWAITING_CAMERA, STATUS_WARMING_UP)

        try:
            stream = await self.pipelines.acquire(PipelineKind.FACE)
        except AcquisitionError as e:
            if epoch == self._epoch:
                self._fail(f"Error accessing webcam: {e}")
            return False

        if epoch != self._epoch or stream is None:
            return False

        self._set_state(GameState.COUNTDOWN, STATUS_COUNTDOWN, countdown=self.config.countdown_from)
        self._emit("countdown", value=self._countdown)
        if self._countdown == 0:
            await self._enter_active(epoch)
        else:
            self._countdown_ticker.start()
        return True

    def restart_game(self):
        """Return to IDLE from anywhere, releasing everything. Idempotent."""
        self._epoch += 1
        self._countdown_ticker.stop()
        self.timer.reset()
        self.pipelines.stop_all()
        self._blink_latch = False
        if self._state is not GameState.IDLE or self._status != STATUS_READY:
            self._set_state(GameState.IDLE, STATUS_READY)

    def close(self):
        """Session teardown: stop everything and close the detectors."""
        self.restart_game()
        self.pipelines.close()

    # --- Timers ---

    async def _on_countdown_tick(self):
        if self._state is not GameState.COUNTDOWN:
            self._countdown_ticker.stop()
            return

        epoch = self._epoch
        self._set_state(GameState.COUNTDOWN, countdown=max(0, self._countdown - 1))
        self._emit("countdown", value=self._countdown)
        if self._countdown == 0:
            self._countdown_ticker.stop()
            await self._enter_active(epoch)

    def _on_timer_tick(self, elapsed: int):
        self._emit("tick", elapsed=elapsed)

    # --- Transitions ---

    async def _enter_active(self, epoch: int):
        try:
            await self.pipelines.start(PipelineKind.FACE)
        except (AcquisitionError, DetectorInitError) as e:
            if epoch == self._epoch:
                self._fail(f"Error starting face tracking: {e}")
            return

        if epoch != self._epoch:
            return

        self.timer.start()
        self.metrics.record_round()
        self._set_state(GameState.ACTIVE, STATUS_ACTIVE)

    async def _enter_penalty(self):
        epoch = self._epoch
        self.timer.stop()
        self.pipelines.stop(PipelineKind.FACE)
        self.metrics.record_blink(self.timer.elapsed)
        self._set_state(GameState.LOST, STATUS_LOST)
        self._emit("blink", elapsed=self.timer.elapsed)

        # Stay LOST until the hand pipeline is live
        try:
            await self.pipelines.start(PipelineKind.HAND)
        except (AcquisitionError, DetectorInitError) as e:
            if epoch == self._epoch:
                self._fail(f"Error starting hand tracking: {e}")
            return

        if epoch != self._epoch or not self.pipelines.is_live(PipelineKind.HAND):
            return
        self._set_state(GameState.PENALTY_AWAITING_GESTURE, STATUS_PENALTY)

    def _fail(self, message: str):
        logger.warning(message)
        self._countdown_ticker.stop()
        self.timer.stop()
        self.pipelines.stop_all()
        self._blink_latch = False
        self._set_state(GameState.IDLE, message)
        self._emit("error", message=message)

    # --- Frame callbacks ---

    async def _on_face_result(self, result: DetectionResult):
        if self._state is not GameState.ACTIVE or not result.subjects:
            return

        try:
            score = openness(result.subjects[0], self.config.left_eye, self.config.right_eye)
        except InsufficientLandmarks as e:
            logger.debug("No openness score this frame: %s", e)
            return

        is_blink, self._blink_latch = self.blink_classifier.classify(score, self._blink_latch)
        if is_blink:
            logger.info("Blink detected (EAR %.3f) after %ds", score, self.timer.elapsed)
            await self._enter_penalty()

    def _on_hand_result(self, result: DetectionResult):
        if self._state is not GameState.PENALTY_AWAITING_GESTURE:
            return

        hand_index = self.gesture_classifier.first_match(result.subjects)
        if hand_index is None:
            return

        self.pipelines.stop(PipelineKind.HAND)
        self._blink_latch = False
        self.metrics.record_gesture()
        self._set_state(GameState.IDLE, STATUS_DISMISSED)
        self._emit("gesture", hand_index=hand_index)
