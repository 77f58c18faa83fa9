"""
Комнаты, подбор пар и логика партии (in-memory).
Все функции синхронные и вызываются под room.lock: между чтением и записью
состояния нет await, поэтому каждое изменение атомарно в event loop.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .constants import BOARD_SIZE, MAX_PLAYERS, X, Symbol
from .game import Cell, empty_board, evaluate, is_full, other_symbol

logger = logging.getLogger(__name__)


class RoomState(str, Enum):
    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


@dataclass
class Player:
    conn: Any
    symbol: Symbol
    player_id: str | None = None


@dataclass
class PlayerStats:
    wins: int = 0
    losses: int = 0
    draws: int = 0


@dataclass(eq=False)
class Room:
    id: str
    players: list[Player] = field(default_factory=list)
    spectators: list[Any] = field(default_factory=list)
    board: list[Cell] = field(default_factory=empty_board)
    current_player: Symbol = X
    game_over: bool = False
    winner: Symbol | None = None
    rematch_requests: set[Any] = field(default_factory=set)
    last_activity: float = field(default_factory=time.monotonic)
    closed: bool = False  # удалена из реестра
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def state(self) -> RoomState:
        if len(self.players) < MAX_PLAYERS:
            return RoomState.WAITING
        if self.game_over:
            return RoomState.FINISHED
        return RoomState.IN_PROGRESS

    @property
    def participants(self) -> list[Any]:
        """Все, кому уходят рассылки комнаты: игроки, затем зрители."""
        return [p.conn for p in self.players] + list(self.spectators)

    def player_for(self, conn: Any) -> Player | None:
        for p in self.players:
            if p.conn is conn:
                return p
        return None

    def touch(self, now: float | None = None) -> None:
        self.last_activity = time.monotonic() if now is None else now

    def _reset(self) -> None:
        self.board = empty_board()
        self.current_player = X
        self.game_over = False
        self.winner = None
        self.rematch_requests.clear()


# Глобальное состояние (in-memory)
_rooms: dict[str, Room] = {}
_stats: dict[str, PlayerStats] = {}


def _create_room(room_id: str | None = None) -> Room:
    room = Room(id=room_id or str(uuid.uuid4()))
    _rooms[room.id] = room
    logger.info("Created room %s. Total rooms: %d", room.id, len(_rooms))
    return room


def find_or_create_room() -> Room:
    """
    Первая (в порядке создания) открытая комната со свободным местом,
    иначе новая пустая комната.
    """
    for room in _rooms.values():
        if not room.closed and len(room.players) < MAX_PLAYERS:
            return room
    return _create_room()


def get_or_create_room(room_id: str) -> Room:
    """Комната по коду; создаётся, если такой ещё нет."""
    room = _rooms.get(room_id)
    if room is None:
        room = _create_room(room_id)
    return room


def get_room(room_id: str) -> Room | None:
    return _rooms.get(room_id)


def room_count() -> int:
    return len(_rooms)


def remove_room(room_id: str) -> None:
    """Удалить комнату из реестра. Повторный вызов ничего не делает."""
    room = _rooms.pop(room_id, None)
    if room is None:
        return
    room.closed = True
    logger.info("Removed room %s. Total rooms: %d", room_id, len(_rooms))


def join_room(room: Room, conn: Any) -> Player | None:
    """
    Посадить соединение в комнату.
    Возвращает Player, если досталось место, иначе None (соединение стало зрителем).
    Первый игрок получает X, второй получает свободный символ. Со вторым игроком
    начинается новая партия.
    """
    if len(room.players) >= MAX_PLAYERS:
        room.spectators.append(conn)
        logger.info("Room %s: spectator joined (%d watching)", room.id, len(room.spectators))
        return None
    room.touch()
    symbol = other_symbol(room.players[0].symbol) if room.players else X
    player = Player(conn=conn, symbol=symbol, player_id=getattr(conn, "player_id", None))
    room.players.append(player)
    if len(room.players) == MAX_PLAYERS:
        room._reset()
    logger.info("Room %s: player %s seated as %s", room.id, player.player_id, symbol)
    return player


def _record_result(room: Room) -> None:
    """Обновить счётчики побед/поражений/ничьих участников партии."""
    for p in room.players:
        if not p.player_id:
            continue
        stats = _stats.setdefault(p.player_id, PlayerStats())
        if room.winner is None:
            stats.draws += 1
        elif p.symbol == room.winner:
            stats.wins += 1
        else:
            stats.losses += 1


def apply_move(room: Room, conn: Any, index: Any) -> dict | None:
    """
    Применить ход. Возвращает payload update для рассылки или None,
    если ход недопустим (чужой ход, занятая клетка, индекс вне доски,
    партия не идёт).
    """
    if room.closed or room.state is not RoomState.IN_PROGRESS:
        return None
    player = room.player_for(conn)
    if player is None or player.symbol != room.current_player:
        return None
    # 4.0 из JSON считается целым индексом
    if isinstance(index, float) and index.is_integer():
        index = int(index)
    if not isinstance(index, int) or isinstance(index, bool):
        return None
    if not 0 <= index < BOARD_SIZE or room.board[index] is not None:
        return None
    room.touch()
    room.board[index] = player.symbol
    room.current_player = other_symbol(room.current_player)
    room.winner = evaluate(room.board)
    if room.winner is not None or is_full(room.board):
        room.game_over = True
        _record_result(room)
        logger.info("Room %s: game over, winner=%s", room.id, room.winner)
    return update_payload(room)


def request_rematch(room: Room, conn: Any) -> bool | None:
    """
    Запрос реванша: партия начинается заново, только когда его попросили
    оба игрока. Возвращает True при сбросе доски, False если ждём второго
    игрока, None если запрос не от игрока комнаты.
    """
    if room.closed or room.player_for(conn) is None:
        return None
    room.touch()
    room.rematch_requests.add(conn)
    seated = {p.conn for p in room.players}
    if len(seated) < MAX_PLAYERS or not seated <= room.rematch_requests:
        return False
    room._reset()
    logger.info("Room %s: rematch started", room.id)
    return True


def leave_room(room: Room, conn: Any) -> bool:
    """
    Убрать соединение из комнаты.
    Возвращает True, если ушёл игрок и оставшихся нужно известить (opponent_left).
    Комната без игроков удаляется из реестра, даже если в ней остались зрители.
    """
    if room.closed:
        return False
    room.rematch_requests.discard(conn)
    if conn in room.spectators:
        room.spectators.remove(conn)
        return False
    player = room.player_for(conn)
    if player is None:
        return False
    room.players.remove(player)
    room.touch()
    if not room.players:
        logger.info("Room %s is empty", room.id)
        remove_room(room.id)
        return False
    # Партия прервана; место освобождается для следующего игрока
    room.game_over = True
    logger.info("Room %s: player %s left, %d player remains", room.id, player.player_id, len(room.players))
    return True


def is_idle(room: Room, now: float, stale_after: float) -> bool:
    if not room.players:
        return True
    return len(room.players) < MAX_PLAYERS and now - room.last_activity > stale_after


def collect_idle_rooms(now: float | None = None, stale_after: float = 600.0) -> list[Room]:
    """Комнаты без игроков или с одним игроком, простаивающие дольше stale_after секунд."""
    if now is None:
        now = time.monotonic()
    return [room for room in _rooms.values() if is_idle(room, now, stale_after)]


def get_stats(player_id: str | None) -> PlayerStats:
    if not player_id:
        return PlayerStats()
    return _stats.get(player_id) or PlayerStats()


# Сборка payload для клиентов

def joined_payload(room: Room, player: Player) -> dict:
    return {
        "type": "joined",
        "playerSymbol": player.symbol,
        "playerId": player.player_id,
        "gameState": list(room.board),
        "currentPlayer": room.current_player,
        "roomId": room.id,
    }


def spectator_payload(room: Room) -> dict:
    return {
        "type": "spectator",
        "gameState": list(room.board),
        "currentPlayer": room.current_player,
        "roomId": room.id,
    }


def start_payload(room: Room) -> dict:
    return {
        "type": "start",
        "currentPlayer": room.current_player,
        "gameState": list(room.board),
    }


def update_payload(room: Room) -> dict:
    return {
        "type": "update",
        "gameState": list(room.board),
        "currentPlayer": room.current_player,
        "gameOver": room.game_over,
        "winner": room.winner,
    }


def rematch_payload(room: Room, symbol: Symbol | None = None) -> dict:
    payload = {
        "type": "rematch",
        "gameState": list(room.board),
        "currentPlayer": room.current_player,
    }
    if symbol is not None:
        payload["playerSymbol"] = symbol
    return payload


def stats_payload(player_id: str | None) -> dict:
    stats = get_stats(player_id)
    return {
        "type": "stats",
        "playerId": player_id,
        "wins": stats.wins,
        "losses": stats.losses,
        "draws": stats.draws,
    }
