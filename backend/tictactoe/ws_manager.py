"""
Менеджер WebSocket: контексты подключений, отправка и рассылка по комнате.
"""
import logging
import uuid
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Connection:
    """
    Контекст одного подключения. Комнату сюда записывает только
    обработчик соединения; логика комнаты лишь читает её.
    """

    def __init__(self, ws: WebSocket, player_id: str | None = None):
        self.ws = ws
        self.conn_id = uuid.uuid4().hex
        self.player_id = player_id or str(uuid.uuid4())
        self.room = None

    def __repr__(self) -> str:
        return f"Connection({self.conn_id[:8]}, player_id={self.player_id})"


class WSManager:
    def __init__(self):
        self._by_id: dict[str, Connection] = {}

    def connect(self, ws: WebSocket, player_id: str | None = None) -> Connection:
        conn = Connection(ws, player_id)
        self._by_id[conn.conn_id] = conn
        return conn

    def disconnect(self, conn: Connection) -> None:
        self._by_id.pop(conn.conn_id, None)

    def connection_count(self) -> int:
        return len(self._by_id)

    async def send(self, conn: Connection, payload: dict[str, Any]) -> bool:
        try:
            await conn.ws.send_json(payload)
            return True
        except Exception as e:
            logger.warning("send to %s failed: %s", conn, e)
            return False

    async def broadcast(self, room, payload: dict[str, Any]) -> None:
        """Отправить всем участникам комнаты; ошибка одному не мешает остальным."""
        for conn in room.participants:
            await self.send(conn, payload)

    async def close(self, conn: Connection, code: int = 1000) -> None:
        try:
            await conn.ws.close(code=code)
        except Exception as e:
            logger.warning("close %s failed: %s", conn, e)


manager = WSManager()
