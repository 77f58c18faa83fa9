"""
Обработка сообщений WebSocket: join, move, rematch, leave, stats.
Каждое изменение комнаты и рассылка его результата идут под room.lock.
Здесь же периодическая очистка неактивных комнат.
"""
import asyncio
import logging
import time
from typing import assert_never

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from .config import get_config
from .constants import CLOSE_ROOM_EXPIRED, MAX_PLAYERS
from .events import (
    JoinEvent,
    LeaveEvent,
    MalformedEvent,
    MoveEvent,
    RematchEvent,
    StatsEvent,
    parse_event,
)
from .pairing import (
    Room,
    apply_move,
    collect_idle_rooms,
    find_or_create_room,
    get_or_create_room,
    is_idle,
    join_room,
    joined_payload,
    leave_room,
    rematch_payload,
    remove_room,
    request_rematch,
    spectator_payload,
    start_payload,
    stats_payload,
)
from .ws_manager import Connection, manager

logger = logging.getLogger(__name__)


def _active_room(conn: Connection) -> Room | None:
    room = conn.room
    if room is None or room.closed:
        return None
    return room


async def handle_join(conn: Connection, room_id: str | None = None, player_id: str | None = None) -> None:
    """
    Посадить соединение в комнату: по коду room_id или в первую свободную.
    Игнорируется, пока соединение уже в открытой комнате.
    """
    if _active_room(conn) is not None:
        logger.debug("WS: %s already in room %s, join ignored", conn, conn.room.id)
        return
    if player_id:
        conn.player_id = player_id
    while True:
        room = get_or_create_room(room_id) if room_id else find_or_create_room()
        async with room.lock:
            # Пока ждали lock, комнату могли удалить или занять последнее место
            if room.closed:
                continue
            if room_id is None and len(room.players) >= MAX_PLAYERS:
                continue
            player = join_room(room, conn)
            conn.room = room
            if player is None:
                await manager.send(conn, spectator_payload(room))
                return
            await manager.send(conn, joined_payload(room, player))
            if len(room.players) < MAX_PLAYERS:
                await manager.send(conn, {"type": "waiting"})
            else:
                await manager.broadcast(room, start_payload(room))
            return


async def handle_move(conn: Connection, index) -> None:
    room = _active_room(conn)
    if room is None:
        return
    async with room.lock:
        update = apply_move(room, conn, index)
        if update is None:
            logger.debug("WS: move %r from %s ignored", index, conn)
            return
        await manager.broadcast(room, update)


async def handle_rematch(conn: Connection) -> None:
    room = _active_room(conn)
    if room is None:
        return
    async with room.lock:
        started = request_rematch(room, conn)
        if started is None:
            return
        if not started:
            await manager.send(conn, {"type": "waiting_rematch"})
            return
        for participant in room.participants:
            player = room.player_for(participant)
            symbol = player.symbol if player else None
            await manager.send(participant, rematch_payload(room, symbol))


async def handle_leave(conn: Connection) -> None:
    """Выход из комнаты. Повторный вызов ничего не делает."""
    room = conn.room
    if room is None:
        return
    conn.room = None
    async with room.lock:
        was_open = not room.closed
        if leave_room(room, conn):
            await manager.broadcast(room, {"type": "opponent_left"})
        elif was_open and room.closed:
            # Игроков не осталось: зрителей отключаем, как при очистке
            for spectator in room.spectators:
                await manager.close(spectator, code=CLOSE_ROOM_EXPIRED)


async def handle_ws_message(conn: Connection, raw: str) -> None:
    """Обрабатывает одно сообщение клиента. Битые сообщения пропускаются."""
    try:
        event = parse_event(raw)
    except MalformedEvent as e:
        logger.warning("WS: malformed message from %s: %s", conn, e)
        return
    logger.debug("WS: %s from %s", type(event).__name__, conn)
    room = _active_room(conn)
    # Активность комнаты продлевают только игроки, не зрители
    if room is not None and room.player_for(conn) is not None:
        room.touch()
    match event:
        case JoinEvent(room_id=room_id, player_id=player_id):
            await handle_join(conn, room_id, player_id)
        case MoveEvent(index=index):
            await handle_move(conn, index)
        case RematchEvent():
            await handle_rematch(conn)
        case LeaveEvent():
            await handle_leave(conn)
        case StatsEvent(player_id=player_id):
            await manager.send(conn, stats_payload(player_id or conn.player_id))
        case _:
            assert_never(event)


async def ws_loop(ws: WebSocket, room_id: str | None = None, player_id: str | None = None) -> None:
    """
    Принять соединение, сразу посадить его в комнату, дальше цикл приёма сообщений.
    При закрытии соединения выполняется leave.
    """
    await ws.accept()
    conn = manager.connect(ws, player_id)
    logger.info("WS: accepted %s", conn)
    try:
        await handle_join(conn, room_id)
        while True:
            msg = await ws.receive_text()
            await handle_ws_message(conn, msg)
    except WebSocketDisconnect as e:
        logger.info("WS: client disconnected code=%s %s", e.code, conn)
    except Exception as e:
        logger.exception("WS: error %s: %s", conn, e)
    finally:
        await handle_leave(conn)
        manager.disconnect(conn)
        logger.info("WS: disconnected %s", conn)


async def reap_idle_rooms(now: float | None = None, stale_after: float | None = None) -> list[str]:
    """
    Удалить пустые комнаты и комнаты с одним игроком, простаивающие дольше
    stale_after. Оставшиеся участники отключаются. Возвращает id удалённых комнат.
    """
    if now is None:
        now = time.monotonic()
    if stale_after is None:
        stale_after = get_config().stale_room_seconds
    reaped = []
    for room in collect_idle_rooms(now, stale_after):
        async with room.lock:
            if room.closed or not is_idle(room, now, stale_after):
                continue
            logger.info("Removing stale room %s", room.id)
            remove_room(room.id)
            for conn in room.participants:
                await manager.close(conn, code=CLOSE_ROOM_EXPIRED)
            reaped.append(room.id)
    return reaped


async def run_reaper(interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await reap_idle_rooms()
        except Exception:
            logger.exception("Idle room reaper failed")
