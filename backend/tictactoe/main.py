"""
Сервер крестиков-ноликов: API и WebSocket.
"""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress

import uvicorn
from fastapi import FastAPI, Query, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from .config import get_config
from .pairing import room_count
from .ws_handlers import run_reaper, ws_loop
from .ws_manager import manager

config = get_config()

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    reaper = asyncio.create_task(run_reaper(config.reap_interval_seconds))
    try:
        yield
    finally:
        reaper.cancel()
        with suppress(asyncio.CancelledError):
            await reaper


app = FastAPI(title="Tic-Tac-Toe Server", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    return {"status": "ok", "rooms": room_count(), "connections": manager.connection_count()}


@app.websocket("/ws")
async def websocket_endpoint(
    ws: WebSocket,
    room_id: str | None = Query(default=None, alias="roomId"),
    player_id: str | None = Query(default=None, alias="playerId"),
):
    logger.info("WS: connection attempt from %s", ws.client)
    await ws_loop(ws, room_id, player_id)


def run() -> None:
    logger.info("WebSocket server running on port %s", config.port)
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    run()
