"""Staring contest CLI — the main entry point.

Usage:
    staring-contest serve   — Start the WebSocket/REST game server
    staring-contest play    — Play locally in an OpenCV window
    staring-contest probe   — Print live eye openness to check the blink threshold
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

try:
    import typer
except ImportError:
    raise ImportError("typer is required for CLI. Install with: pip install typer")

from staring_contest.config import GameConfig, load_config

app = typer.Typer(
    name="staring-contest",
    help="👁  Blink and you lose: a webcam staring contest.",
    add_completion=False,
)


def _setup(config_path: Optional[str], log_level: Optional[str]) -> GameConfig:
    try:
        config = load_config(config_path)
    except (OSError, ValueError) as e:
        typer.echo(f"❌ Invalid config: {e}", err=True)
        raise typer.Exit(1)

    if log_level:
        config.log_level = log_level
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    return config


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Port"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
):
    """Start the game server on this machine's webcam."""
    import uvicorn
    from staring_contest.server import app as fastapi_app, state

    cfg = _setup(config, log_level)
    state.config = cfg
    host = host or cfg.host
    port = port or cfg.port

    typer.echo(f"🚀 Starting staring contest server on {host}:{port}")
    typer.echo(f"   Open http://{host}:{port} to play")
    uvicorn.run(fastapi_app, host=host, port=port, log_level=cfg.log_level)


def draw_overlay(frame, snapshot):
    """Draw status, timer and countdown on a BGR frame."""
    import cv2

    h, w = frame.shape[:2]
    color = (0, 0, 255) if snapshot.blink_detected else (0, 255, 0)
    cv2.putText(frame, snapshot.status, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2)
    cv2.putText(
        frame, f"Time: {snapshot.elapsed} seconds", (10, h - 20),
        cv2.FONT_HERSHEY_SIMPLEX, 0.7, (255, 255, 255), 2,
    )
    if snapshot.show_countdown:
        cv2.putText(
            frame, str(snapshot.countdown), (w // 2 - 30, h // 2),
            cv2.FONT_HERSHEY_SIMPLEX, 4.0, (0, 0, 255), 8,
        )
    return frame


async def _play(cfg: GameConfig):
    import cv2
    import numpy as np
    from staring_contest.session import create_game

    game = create_game(cfg)
    latest: dict = {}
    pending: set = set()

    def on_event(event):
        if event.type in ("state", "error"):
            typer.echo(f"   [{event.type}] {event.snapshot.status}")

    game.pipelines.add_observer(lambda kind, result: latest.update(frame=result.frame))
    game.on_event(on_event)

    try:
        while True:
            snapshot = game.snapshot
            frame = latest.get("frame") if snapshot.video_visible else None
            if frame is not None:
                canvas = frame.copy()
            else:
                canvas = np.zeros((cfg.camera_height, cfg.camera_width, 3), dtype=np.uint8)

            cv2.imshow("Staring Contest", draw_overlay(canvas, snapshot))
            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            if key == ord("s"):
                task = asyncio.ensure_future(game.start_game())
                pending.add(task)
                task.add_done_callback(pending.discard)
            elif key == ord("r"):
                game.restart_game()

            await asyncio.sleep(1 / 60)
    finally:
        game.close()
        cv2.destroyAllWindows()


@app.command()
def play(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
):
    """Play in a local window. Keys: s = start, r = restart, q = quit."""
    cfg = _setup(config, log_level)
    typer.echo("👁  Press 's' to start, 'r' to restart, 'q' to quit")
    try:
        asyncio.run(_play(cfg))
    except KeyboardInterrupt:
        pass


async def _probe(cfg: GameConfig, duration: float):
    from staring_contest.blink import BlinkClassifier
    from staring_contest.camera import AcquisitionError, CameraSource
    from staring_contest.detector import DetectionResult, FaceMeshDetector
    from staring_contest.estimator import InsufficientLandmarks, openness

    classifier = BlinkClassifier(cfg.blink_threshold)
    latch = False
    blinks = 0

    def on_result(result: DetectionResult):
        nonlocal latch, blinks
        if not result.subjects:
            typer.echo("\r   no face                          ", nl=False)
            return
        try:
            score = openness(result.subjects[0], cfg.left_eye, cfg.right_eye)
        except InsufficientLandmarks as e:
            typer.echo(f"\r   skipped frame: {e}", nl=False)
            return
        is_blink, latch = classifier.classify(score, latch)
        if is_blink:
            blinks += 1
        state = "CLOSED" if latch else "open  "
        typer.echo(f"\r   EAR {score:.3f}  {state}  blinks: {blinks}", nl=False)

    camera = CameraSource(cfg.camera_index, cfg.camera_width, cfg.camera_height)
    try:
        stream = await camera.acquire()
    except AcquisitionError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    try:
        with FaceMeshDetector(cfg.face, refine_landmarks=cfg.refine_landmarks) as detector:
            detector.on_result(on_result)
            start = time.monotonic()
            while duration <= 0 or time.monotonic() - start < duration:
                frame = stream.read()
                if frame is not None:
                    await detector.submit_frame(frame)
                await asyncio.sleep(cfg.frame_interval)
    finally:
        camera.release(stream)

    typer.echo(f"\n\n✅ {blinks} blink(s) at threshold {cfg.blink_threshold}")


@app.command()
def probe(
    duration: float = typer.Option(10.0, help="Seconds to run (0 = until Ctrl+C)"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
):
    """Print live eye openness and blink decisions from the camera."""
    from staring_contest.detector import DetectorInitError

    cfg = _setup(config, log_level)
    typer.echo(f"🎥 Probing camera {cfg.camera_index} (threshold {cfg.blink_threshold})...")
    try:
        asyncio.run(_probe(cfg, duration))
    except DetectorInitError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        pass


def main():
    app()


if __name__ == "__main__":
    main()
