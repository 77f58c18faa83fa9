"""Tests for the room registry and the per-room state machine."""

import pytest

from tictactoe import pairing
from tictactoe.pairing import (
    RoomState,
    apply_move,
    collect_idle_rooms,
    find_or_create_room,
    get_or_create_room,
    get_room,
    get_stats,
    join_room,
    leave_room,
    remove_room,
    request_rematch,
)


class FakeConn:
    def __init__(self, player_id=None):
        self.player_id = player_id
        self.room = None

    def __repr__(self):
        return f"FakeConn({self.player_id})"


@pytest.fixture
def full_room():
    """Комната с двумя игроками: x ходит первым."""
    room = find_or_create_room()
    x, o = FakeConn("px"), FakeConn("po")
    join_room(room, x)
    join_room(room, o)
    return room, x, o


def _play(room, moves):
    update = None
    for conn, index in moves:
        update = apply_move(room, conn, index)
        assert update is not None
    return update


# ------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------

class TestRegistry:
    def test_creates_room_when_none_open(self):
        room = find_or_create_room()
        assert get_room(room.id) is room
        assert room.board == [None] * 9
        assert room.current_player == "X"
        assert room.players == [] and room.spectators == []

    def test_reuses_room_with_free_seat(self):
        room = find_or_create_room()
        join_room(room, FakeConn())
        assert find_or_create_room() is room

    def test_full_room_is_skipped(self, full_room):
        room, _, _ = full_room
        other = find_or_create_room()
        assert other is not room
        assert len(pairing._rooms) == 2

    def test_first_open_room_in_creation_order(self):
        first = get_or_create_room("a")
        get_or_create_room("b")
        assert find_or_create_room() is first

    def test_get_or_create_by_code(self):
        room = get_or_create_room("code42")
        assert room.id == "code42"
        assert get_or_create_room("code42") is room

    def test_remove_room_is_idempotent(self):
        room = find_or_create_room()
        remove_room(room.id)
        remove_room(room.id)
        assert get_room(room.id) is None
        assert room.closed


# ------------------------------------------------------------------
# Join
# ------------------------------------------------------------------

class TestJoin:
    def test_first_is_x_second_is_o(self):
        room = find_or_create_room()
        first = join_room(room, FakeConn())
        assert first.symbol == "X"
        assert room.state is RoomState.WAITING
        second = join_room(room, FakeConn())
        assert second.symbol == "O"
        assert room.state is RoomState.IN_PROGRESS

    def test_third_becomes_spectator(self, full_room):
        room, _, _ = full_room
        watcher = FakeConn()
        assert join_room(room, watcher) is None
        assert room.spectators == [watcher]
        assert len(room.players) == 2

    def test_departed_symbol_goes_to_next_joiner(self, full_room):
        room, x, o = full_room
        leave_room(room, x)
        newcomer = join_room(room, FakeConn("new"))
        assert newcomer.symbol == "X"
        assert [p.symbol for p in room.players] == ["O", "X"]

    def test_new_opponent_starts_fresh_game(self, full_room):
        room, x, o = full_room
        apply_move(room, x, 0)
        leave_room(room, o)
        join_room(room, FakeConn())
        assert room.board == [None] * 9
        assert room.current_player == "X"
        assert room.state is RoomState.IN_PROGRESS


# ------------------------------------------------------------------
# Moves
# ------------------------------------------------------------------

class TestMove:
    def test_valid_move_updates_and_flips_turn(self, full_room):
        room, x, _ = full_room
        update = apply_move(room, x, 4)
        assert update == {
            "type": "update",
            "gameState": [None, None, None, None, "X", None, None, None, None],
            "currentPlayer": "O",
            "gameOver": False,
            "winner": None,
        }

    def test_wrong_turn_ignored(self, full_room):
        room, _, o = full_room
        assert apply_move(room, o, 0) is None
        assert room.board == [None] * 9
        assert room.current_player == "X"

    def test_occupied_cell_ignored(self, full_room):
        room, x, o = full_room
        apply_move(room, x, 0)
        assert apply_move(room, o, 0) is None
        assert room.board[0] == "X"
        assert room.current_player == "O"

    @pytest.mark.parametrize("index", [-1, 9, 100, 1.5, "3", None, True])
    def test_bad_index_ignored(self, full_room, index):
        room, x, _ = full_room
        assert apply_move(room, x, index) is None
        assert room.board == [None] * 9

    def test_integral_float_index_accepted(self, full_room):
        room, x, _ = full_room
        update = apply_move(room, x, 4.0)
        assert update is not None
        assert room.board[4] == "X"
        assert room.current_player == "O"

    def test_spectator_cannot_move(self, full_room):
        room, _, _ = full_room
        watcher = FakeConn()
        join_room(room, watcher)
        assert apply_move(room, watcher, 0) is None

    def test_waiting_room_rejects_moves(self):
        room = find_or_create_room()
        x = FakeConn()
        join_room(room, x)
        assert apply_move(room, x, 0) is None

    def test_win(self, full_room):
        room, x, o = full_room
        update = _play(room, [(x, 0), (o, 3), (x, 1), (o, 4), (x, 2)])
        assert update["gameOver"] is True
        assert update["winner"] == "X"
        assert update["gameState"][:3] == ["X", "X", "X"]
        assert room.state is RoomState.FINISHED

    def test_no_moves_after_game_over(self, full_room):
        room, x, o = full_room
        _play(room, [(x, 0), (o, 3), (x, 1), (o, 4), (x, 2)])
        assert apply_move(room, o, 5) is None

    def test_draw(self, full_room):
        room, x, o = full_room
        # X O X / X O O / O X X
        update = _play(room, [
            (x, 0), (o, 1), (x, 2), (o, 4), (x, 3),
            (o, 5), (x, 7), (o, 6), (x, 8),
        ])
        assert update["gameOver"] is True
        assert update["winner"] is None


# ------------------------------------------------------------------
# Stats
# ------------------------------------------------------------------

class TestStats:
    def test_win_and_loss_recorded(self, full_room):
        room, x, o = full_room
        _play(room, [(x, 0), (o, 3), (x, 1), (o, 4), (x, 2)])
        assert get_stats("px").wins == 1
        assert get_stats("po").losses == 1

    def test_draw_recorded_for_both(self, full_room):
        room, x, o = full_room
        _play(room, [
            (x, 0), (o, 1), (x, 2), (o, 4), (x, 3),
            (o, 5), (x, 7), (o, 6), (x, 8),
        ])
        assert get_stats("px").draws == 1
        assert get_stats("po").draws == 1

    def test_unknown_player_has_zero_stats(self):
        stats = get_stats("nobody")
        assert (stats.wins, stats.losses, stats.draws) == (0, 0, 0)


# ------------------------------------------------------------------
# Rematch (both players must ask)
# ------------------------------------------------------------------

class TestRematch:
    def test_single_request_waits(self, full_room):
        room, x, o = full_room
        _play(room, [(x, 0), (o, 3), (x, 1), (o, 4), (x, 2)])
        assert request_rematch(room, x) is False
        assert room.board[0] == "X"
        assert room.game_over

    def test_repeated_request_from_same_player_still_waits(self, full_room):
        room, x, _ = full_room
        assert request_rematch(room, x) is False
        assert request_rematch(room, x) is False

    def test_both_requests_reset(self, full_room):
        room, x, o = full_room
        _play(room, [(x, 0), (o, 3), (x, 1), (o, 4), (x, 2)])
        request_rematch(room, o)
        assert request_rematch(room, x) is True
        assert room.board == [None] * 9
        assert room.current_player == "X"
        assert room.state is RoomState.IN_PROGRESS
        assert room.rematch_requests == set()

    def test_spectator_request_ignored(self, full_room):
        room, _, _ = full_room
        watcher = FakeConn()
        join_room(room, watcher)
        assert request_rematch(room, watcher) is None

    def test_request_from_departed_player_forgotten(self, full_room):
        room, x, o = full_room
        request_rematch(room, o)
        leave_room(room, o)
        newcomer = FakeConn()
        join_room(room, newcomer)
        assert request_rematch(room, x) is False


# ------------------------------------------------------------------
# Leave
# ------------------------------------------------------------------

class TestLeave:
    def test_opponent_left_keeps_room(self, full_room):
        room, x, o = full_room
        assert leave_room(room, o) is True
        assert get_room(room.id) is room
        assert room.state is RoomState.WAITING
        assert room.game_over

    def test_last_player_removes_room(self, full_room):
        room, x, o = full_room
        leave_room(room, o)
        assert leave_room(room, x) is False
        assert get_room(room.id) is None
        assert room.closed

    def test_room_removed_even_with_spectators(self):
        room = find_or_create_room()
        x = FakeConn()
        join_room(room, x)
        join_room(room, FakeConn())
        watcher = FakeConn()
        join_room(room, watcher)
        leave_room(room, room.players[1].conn)
        leave_room(room, x)
        assert get_room(room.id) is None

    def test_spectator_leaving_is_silent(self, full_room):
        room, _, _ = full_room
        watcher = FakeConn()
        join_room(room, watcher)
        assert leave_room(room, watcher) is False
        assert room.spectators == []

    def test_leave_twice_is_noop(self, full_room):
        room, x, o = full_room
        assert leave_room(room, o) is True
        assert leave_room(room, o) is False


# ------------------------------------------------------------------
# Idle rooms
# ------------------------------------------------------------------

class TestIdleRooms:
    def test_stale_single_player_room_collected(self):
        room = find_or_create_room()
        join_room(room, FakeConn())
        room.touch(now=0.0)
        assert collect_idle_rooms(now=1000.0, stale_after=600.0) == [room]

    def test_fresh_single_player_room_kept(self):
        room = find_or_create_room()
        join_room(room, FakeConn())
        room.touch(now=900.0)
        assert collect_idle_rooms(now=1000.0, stale_after=600.0) == []

    def test_full_room_never_collected(self, full_room):
        room, _, _ = full_room
        room.touch(now=0.0)
        assert collect_idle_rooms(now=10**9, stale_after=600.0) == []

    def test_empty_room_collected(self):
        room = get_or_create_room("empty")
        assert collect_idle_rooms(stale_after=600.0) == [room]
