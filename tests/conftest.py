from datetime import datetime, timezone
from typing import Callable, List

import pytest

import apps.pos.app.main as pos  # type: ignore[import]
from apps.pos.app.config import storage_keys  # type: ignore[import]
from apps.pos.app.storage import MemoryStore, SqlStore  # type: ignore[import]

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def keys():
    return storage_keys("@test")


@pytest.fixture()
def memory_store():
    return MemoryStore()


@pytest.fixture()
def sql_store():
    """
    Isolated in-memory SQLite store; nothing touches the on-device file.
    """
    return SqlStore("sqlite+pysqlite:///:memory:")


@pytest.fixture()
def events() -> List[dict]:
    return []


@pytest.fixture()
def app(memory_store, keys, events):
    """
    Started POS app on a memory store with the sample menu and the demo
    accounts (admin, cashier, kitchen). Nobody is logged in.
    """
    a = pos.PosApp(memory_store, keys=keys, clock=lambda: NOW)
    a.events.subscribe(events.append)
    return a.start()


@pytest.fixture()
def login_as(app) -> Callable[[str], pos.PosApp]:
    def _login(role: str) -> pos.PosApp:
        assert app.login(f"{role}@hmpos.com", "irrelevant")
        return app

    return _login


@pytest.fixture()
def placed_order(app, login_as):
    """
    Order for table 5: two Wet Salads (3000) and one Cold Drink (1000).
    Leaves the cashier logged in.
    """
    login_as("cashier")
    return app.add_order(
        {
            "tableNumber": "5",
            "lines": [
                {"menuItemId": "1", "quantity": 2},
                {"menuItemId": "4", "quantity": 1},
            ],
        }
    )
