"""
Оценка доски 3x3: победитель, заполненность, ничья.
Чистые функции без состояния.
"""
from collections.abc import Sequence

from .constants import BOARD_SIZE, O, WIN_LINES, X, Symbol

Cell = Symbol | None


def empty_board() -> list[Cell]:
    return [None] * BOARD_SIZE


def other_symbol(symbol: Symbol) -> Symbol:
    return O if symbol == X else X


def evaluate(board: Sequence[Cell]) -> Symbol | None:
    """
    Возвращает символ первой заполненной линии (строки, столбцы, диагонали)
    или None, если ни одна линия не собрана.
    """
    for a, b, c in WIN_LINES:
        if board[a] and board[a] == board[b] == board[c]:
            return board[a]
    return None


def is_full(board: Sequence[Cell]) -> bool:
    return all(cell is not None for cell in board)


def is_draw(board: Sequence[Cell]) -> bool:
    """Ничья: доска заполнена, победителя нет."""
    return is_full(board) and evaluate(board) is None
