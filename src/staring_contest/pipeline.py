"""Lifecycle management for the camera → detector → callback pipelines."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, Optional

from staring_contest.camera import AcquisitionError, CameraStream
from staring_contest.detector import DetectionResult, DetectorInitError, LandmarkDetector
from staring_contest.metrics import MetricsCollector
from staring_contest.timer import Sleep

logger = logging.getLogger("staring_contest.pipeline")


class PipelineKind(Enum):
    FACE = "face"
    HAND = "hand"


class PipelineStatus(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


@dataclass
class PipelineStats:
    """Counters for one pipeline over the whole session."""
    status: str
    has_stream: bool
    starts: int = 0
    stops: int = 0
    frames_submitted: int = 0
    frames_skipped: int = 0
    results_delivered: int = 0
    stale_results: int = 0
    callback_errors: int = 0


@dataclass
class _Pipeline:
    kind: PipelineKind
    camera: Any
    detector: Optional[LandmarkDetector] = None
    init_error: Optional[str] = None
    callback: Optional[Callable[[DetectionResult], Any]] = None
    status: PipelineStatus = PipelineStatus.STOPPED
    stream: Optional[CameraStream] = None
    task: Optional[asyncio.Task] = None
    inflight: Optional[asyncio.Future] = None
    busy: bool = False
    # Bumped on every start/stop; results from an older generation are stale.
    generation: int = 0
    pending_generation: int = -1
    counters: dict[str, int] = field(default_factory=lambda: {
        "starts": 0,
        "stops": 0,
        "frames_submitted": 0,
        "frames_skipped": 0,
        "results_delivered": 0,
        "stale_results": 0,
        "callback_errors": 0,
    })


class PipelineManager:
    """Owns the face and hand pipelines and their camera streams.

    Each pipeline is a camera stream, a long-lived detector, and a dispatch
    loop that submits the latest frame every `frame_interval`. Per pipeline:
    - at most one submission is outstanding; frames arriving meanwhile are
      skipped, not queued
    - `start()` and `stop()` are idempotent
    - `stop()` releases the camera stream; it is the only release path
    - results landing after a stop are dropped before any callback runs

    Detectors outlive start/stop cycles and are closed once by `close()`.
    Nothing here stops both pipelines from running at once; that rule
    belongs to the caller.
    """

    def __init__(
        self,
        frame_interval: float = 1 / 30,
        sleep: Optional[Sleep] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.frame_interval = frame_interval
        self._sleep = sleep or asyncio.sleep
        self.metrics = metrics or MetricsCollector()
        self._pipelines: dict[PipelineKind, _Pipeline] = {}
        self._observers: list[Callable[[PipelineKind, DetectionResult], Any]] = []

    # --- Registration ---

    def register(
        self,
        kind: PipelineKind,
        camera,
        detector: Optional[LandmarkDetector] = None,
        init_error: Optional[str] = None,
    ):
        """Bind a camera source and detector to a pipeline kind.

        Pass `detector=None` with `init_error` when the detector failed to
        construct; starting that pipeline then raises DetectorInitError.
        """
        if kind in self._pipelines:
            raise ValueError(f"{kind.value} pipeline already registered")

        self._pipelines[kind] = _Pipeline(
            kind=kind, camera=camera, detector=detector, init_error=init_error,
        )
        if detector is not None:
            detector.on_result(partial(self._on_result, kind))

    def on_frame(self, kind: PipelineKind, callback: Callable[[DetectionResult], Any]):
        """Set the classifier callback for live results of `kind`."""
        self._get(kind).callback = callback

    def add_observer(self, callback: Callable[[PipelineKind, DetectionResult], Any]):
        """Register a presentation hook called with every live result."""
        self._observers.append(callback)

    def _get(self, kind: PipelineKind) -> _Pipeline:
        try:
            return self._pipelines[kind]
        except KeyError:
            raise KeyError(f"{kind.value} pipeline is not registered") from None

    # --- Queries ---

    def status(self, kind: PipelineKind) -> PipelineStatus:
        return self._get(kind).status

    def is_live(self, kind: PipelineKind) -> bool:
        return self._get(kind).status is PipelineStatus.RUNNING

    def has_stream(self, kind: PipelineKind) -> bool:
        return self._get(kind).stream is not None

    def stats(self, kind: PipelineKind) -> PipelineStats:
        p = self._get(kind)
        return PipelineStats(status=p.status.value, has_stream=p.stream is not None, **p.counters)

    @property
    def kinds(self) -> list[PipelineKind]:
        return list(self._pipelines)

    # --- Lifecycle ---

    async def acquire(self, kind: PipelineKind) -> Optional[CameraStream]:
        """Open the pipeline's camera stream without starting detection.

        Returns the stream, or None if a stop() landed while the device was
        opening (the late stream is released immediately).
        """
        p = self._get(kind)
        if p.stream is not None:
            return p.stream

        generation = p.generation
        try:
            stream = await p.camera.acquire()
        except AcquisitionError:
            self.metrics.record_acquisition_error()
            raise

        if p.generation != generation or p.stream is not None:
            p.camera.release(stream)
            return p.stream if p.generation == generation else None

        p.stream = stream
        return stream

    async def start(self, kind: PipelineKind):
        """Start the dispatch loop for `kind`. No-op if already started.

        Raises:
            DetectorInitError: the pipeline has no usable detector.
            AcquisitionError: the camera could not be opened; the pipeline
                stays STOPPED.
        """
        p = self._get(kind)
        if p.status is not PipelineStatus.STOPPED:
            return
        if p.detector is None:
            raise DetectorInitError(p.init_error or f"no {kind.value} detector available")

        p.generation += 1
        generation = p.generation
        p.status = PipelineStatus.STARTING

        if p.stream is None:
            try:
                stream = await p.camera.acquire()
            except AcquisitionError:
                if p.generation == generation:
                    p.status = PipelineStatus.STOPPED
                self.metrics.record_acquisition_error()
                raise

            if p.generation != generation:
                # stop() won the race; this stream is nobody's
                p.camera.release(stream)
                return
            p.stream = stream

        p.status = PipelineStatus.RUNNING
        p.counters["starts"] += 1
        p.task = asyncio.get_running_loop().create_task(
            self._dispatch_loop(p, generation), name=f"{kind.value}-dispatch",
        )
        logger.info("%s pipeline running", kind.value)

    def stop(self, kind: PipelineKind):
        """Halt the dispatch loop and release the camera stream. Idempotent.

        Safe during teardown even if the detector never initialized. An
        in-flight detector call is left to finish; its result is discarded.
        """
        p = self._get(kind)
        p.generation += 1

        if p.status is PipelineStatus.STOPPED and p.stream is None:
            return

        was_running = p.status is PipelineStatus.RUNNING
        p.status = PipelineStatus.STOPPED

        task, p.task = p.task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

        stream, p.stream = p.stream, None
        if stream is not None:
            p.camera.release(stream)

        if was_running:
            p.counters["stops"] += 1
            logger.info("%s pipeline stopped", kind.value)

    def stop_all(self):
        for kind in self._pipelines:
            self.stop(kind)

    def close(self):
        """Stop every pipeline, then close each detector exactly once."""
        self.stop_all()
        for p in self._pipelines.values():
            if p.detector is not None and not p.detector.closed:
                try:
                    p.detector.close()
                except Exception:
                    logger.exception("Closing %s detector failed", p.kind.value)

    # --- Frame dispatch ---

    async def _dispatch_loop(self, p: _Pipeline, generation: int):
        while p.generation == generation:
            if p.busy:
                p.counters["frames_skipped"] += 1
                self.metrics.record_skip(p.kind.value)
                logger.debug("%s detector busy, skipping frame", p.kind.value)
            else:
                frame = p.stream.read() if p.stream is not None else None
                if frame is not None:
                    p.busy = True
                    p.counters["frames_submitted"] += 1
                    p.inflight = asyncio.ensure_future(self._submit(p, frame, generation))
            await self._sleep(self.frame_interval)

    async def _submit(self, p: _Pipeline, frame, generation: int):
        p.pending_generation = generation
        t0 = time.monotonic()
        try:
            await p.detector.submit_frame(frame)
        except Exception:
            logger.exception("%s detector failed on a frame; skipping it", p.kind.value)
        finally:
            p.busy = False
            self.metrics.record_frame(p.kind.value, time.monotonic() - t0)

    async def _on_result(self, kind: PipelineKind, result: DetectionResult):
        p = self._pipelines[kind]
        if p.status is not PipelineStatus.RUNNING or p.pending_generation != p.generation:
            p.counters["stale_results"] += 1
            self.metrics.record_stale(kind.value)
            logger.debug("Discarding stale %s result", kind.value)
            return

        p.counters["results_delivered"] += 1

        if p.callback is not None:
            try:
                out = p.callback(result)
                if inspect.isawaitable(out):
                    await out
            except Exception:
                p.counters["callback_errors"] += 1
                logger.exception("%s frame callback failed; skipping frame", kind.value)

        # The callback may have stopped this pipeline
        if p.pending_generation != p.generation:
            return

        for observer in self._observers:
            try:
                observer(kind, result)
            except Exception:
                logger.exception("Frame observer failed")
