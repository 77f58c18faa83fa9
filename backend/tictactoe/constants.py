"""Константы игры: символы, линии победы, коды закрытия соединения."""
from typing import Literal

Symbol = Literal["X", "O"]

X: Symbol = "X"
O: Symbol = "O"

BOARD_SIZE = 9

# Строки, столбцы, диагонали; порядок проверки фиксирован
WIN_LINES: list[tuple[int, int, int]] = [
    (0, 1, 2), (3, 4, 5), (6, 7, 8),
    (0, 3, 6), (1, 4, 7), (2, 5, 8),
    (0, 4, 8), (2, 4, 6),
]

MAX_PLAYERS = 2

# Комната удалена: простой или ушли все игроки
CLOSE_ROOM_EXPIRED = 4002
