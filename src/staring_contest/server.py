"""WebSocket/REST command surface for the staring contest.

Owns one game session on the server's webcam. Clients send the two player
commands (start, restart) and receive every game event as JSON.

Endpoints:
- GET  /             minimal status page
- GET  /api/state    current snapshot plus pipeline stats
- POST /api/start    start a round
- POST /api/restart  abandon the round and reset
- GET  /metrics      Prometheus text format
- WS   /ws           event stream; accepts {"type": "start" | "restart" | "ping"}

Usage:
    staring-contest serve
    # or
    uvicorn staring_contest.server:app --host 0.0.0.0 --port 8765
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import asdict
from typing import Optional

try:
    from fastapi import FastAPI, WebSocket, WebSocketDisconnect
    from fastapi.responses import HTMLResponse, PlainTextResponse
    _HAS_FASTAPI = True
except ImportError:
    _HAS_FASTAPI = False

if not _HAS_FASTAPI:
    raise ImportError("FastAPI required. Install with: pip install fastapi uvicorn")

from staring_contest import __version__
from staring_contest.config import GameConfig, load_config
from staring_contest.game import GameEvent, GameState, StaringContest
from staring_contest.session import create_game

logger = logging.getLogger("staring_contest.server")

app = FastAPI(title="Staring Contest", version=__version__)


# --- State ---

class ServerState:
    def __init__(self):
        self.clients: set[WebSocket] = set()
        self.game: Optional[StaringContest] = None
        self.config: Optional[GameConfig] = None
        self.owns_game = False
        self.pending: set[asyncio.Task] = set()

state = ServerState()


def _spawn(coro):
    """Run a coroutine in the background, keeping a reference until it ends."""
    task = asyncio.ensure_future(coro)
    state.pending.add(task)
    task.add_done_callback(state.pending.discard)
    return task


def _on_game_event(event: GameEvent):
    if state.clients:
        _spawn(broadcast(event.to_dict()))


def attach_game(game: StaringContest, owned: bool = False):
    """Serve `game`. Owned games are torn down on shutdown."""
    state.game = game
    state.owns_game = owned
    game.on_event(_on_game_event)


def _game() -> StaringContest:
    if state.game is None:
        raise RuntimeError("No game session attached")
    return state.game


def _describe() -> dict:
    game = _game()
    return {
        **game.snapshot.to_dict(),
        "pipelines": {
            kind.value: asdict(game.pipelines.stats(kind))
            for kind in game.pipelines.kinds
        },
        "clients": len(state.clients),
    }


# --- Pages ---

_INDEX_HTML = """<!doctype html>
<html><head><title>Staring Contest</title></head>
<body style="font-family: sans-serif; text-align: center">
<h1>Staring Contest</h1>
<h2 id="status">connecting...</h2>
<h3 id="time"></h3>
<button onclick="send('start')">Start</button>
<button onclick="send('restart')">Restart</button>
<script>
const ws = new WebSocket(`ws://${location.host}/ws`);
function send(type) { ws.send(JSON.stringify({type})); }
ws.onmessage = (msg) => {
  const data = JSON.parse(msg.data);
  if (!data.state) return;
  const s = data.state;
  document.getElementById("status").textContent = s.show_countdown ? s.countdown : s.status;
  document.getElementById("time").textContent = `Time: ${s.elapsed} seconds`;
};
</script>
</body></html>
"""


@app.get("/")
async def index():
    return HTMLResponse(_INDEX_HTML)


# --- API endpoints ---

@app.get("/api/state")
async def api_state():
    return _describe()


@app.post("/api/start")
async def api_start():
    accepted = await _game().start_game()
    return {"accepted": accepted, **_describe()}


@app.post("/api/restart")
async def api_restart():
    _game().restart_game()
    return {"accepted": True, **_describe()}


# --- Prometheus metrics ---

@app.get("/metrics")
async def metrics():
    game = _game()
    game.metrics.set_connections(len(state.clients))
    return PlainTextResponse(
        game.metrics.render(states=[s.value for s in GameState]),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


# --- WebSocket ---

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    state.clients.add(ws)
    logger.info(f"Client connected ({len(state.clients)} total)")

    try:
        await ws.send_json({"type": "connected", "state": _game().snapshot.to_dict()})

        while True:
            try:
                msg = await asyncio.wait_for(ws.receive_text(), timeout=30)
            except asyncio.TimeoutError:
                await ws.send_json({"type": "ping"})
                continue

            try:
                data = json.loads(msg)
            except json.JSONDecodeError:
                await ws.send_json({"type": "error", "data": {"message": "invalid JSON"}})
                continue

            kind = data.get("type")
            if kind == "ping":
                await ws.send_json({"type": "pong", "server_time": time.time()})
            elif kind == "start":
                _spawn(_game().start_game())
            elif kind == "restart":
                _game().restart_game()
            else:
                await ws.send_json({"type": "error", "data": {"message": f"unknown command: {kind}"}})
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.debug(f"WebSocket error: {e}")
    finally:
        state.clients.discard(ws)
        logger.info(f"Client disconnected ({len(state.clients)} total)")


async def broadcast(message: dict):
    """Send message to all connected clients."""
    if not state.clients:
        return
    dead = set()
    payload = json.dumps(message)
    for ws in list(state.clients):
        try:
            await ws.send_text(payload)
        except Exception:
            dead.add(ws)
    state.clients -= dead


# --- Lifecycle ---

@app.on_event("startup")
async def startup():
    if state.game is not None:
        return
    config = state.config or load_config()
    attach_game(create_game(config), owned=True)
    logger.info("Game session ready")


@app.on_event("shutdown")
async def shutdown():
    if state.game is not None and state.owns_game:
        state.game.close()
        state.game = None
        state.owns_game = False
    logger.info("Game session closed")
