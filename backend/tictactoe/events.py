"""
Входящие сообщения клиента как закрытый набор типов событий.
"""
import json
from dataclasses import dataclass
from typing import Any


class MalformedEvent(ValueError):
    """Сообщение не удалось разобрать в событие."""


@dataclass(frozen=True)
class JoinEvent:
    room_id: str | None = None
    player_id: str | None = None


@dataclass(frozen=True)
class MoveEvent:
    index: Any


@dataclass(frozen=True)
class RematchEvent:
    pass


@dataclass(frozen=True)
class LeaveEvent:
    pass


@dataclass(frozen=True)
class StatsEvent:
    player_id: str | None = None


Event = JoinEvent | MoveEvent | RematchEvent | LeaveEvent | StatsEvent


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise MalformedEvent(f"{key} must be a string")
    return value


def parse_event(raw: str | bytes) -> Event:
    """
    Разбирает JSON-сообщение {"type": ..., ...} в событие.
    Бросает MalformedEvent, если это не JSON-объект, тип неизвестен
    или у move нет index. Допустимость самого хода здесь не проверяется.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedEvent(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedEvent("message is not an object")
    t = data.get("type")
    if t == "join":
        return JoinEvent(
            room_id=_optional_str(data, "roomId"),
            player_id=_optional_str(data, "playerId"),
        )
    if t == "move":
        if "index" not in data:
            raise MalformedEvent("move without index")
        return MoveEvent(index=data["index"])
    if t == "rematch":
        return RematchEvent()
    if t == "leave":
        return LeaveEvent()
    if t == "stats":
        return StatsEvent(player_id=_optional_str(data, "playerId"))
    raise MalformedEvent(f"unknown message type {t!r}")
