import pytest
from fastapi.testclient import TestClient

from tictactoe import pairing
from tictactoe.main import app


@pytest.fixture(autouse=True)
def clear_state():
    pairing._rooms.clear()
    pairing._stats.clear()
    yield
    pairing._rooms.clear()
    pairing._stats.clear()


@pytest.fixture
def client():
    # Один event loop на все сессии, как у реального сервера
    with TestClient(app) as c:
        yield c
