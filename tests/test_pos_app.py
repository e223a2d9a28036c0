from datetime import datetime, timezone

import pytest

import apps.pos.app.main as pos  # type: ignore[import]
from apps.pos.app.auth import hash_password  # type: ignore[import]
from apps.pos.app.config import PosConfig  # type: ignore[import]
from apps.pos.app.errors import (  # type: ignore[import]
    InvalidTransition,
    NotFound,
    PermissionDenied,
    StorageError,
    ValidationError,
)
from apps.pos.app.models import (  # type: ignore[import]
    Account,
    Language,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Role,
    User,
)
from apps.pos.app.storage import MemoryStore  # type: ignore[import]

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _types(events):
    return [e["type"] for e in events]


def test_start_seeds_sample_menu_once(app, memory_store, keys):
    assert len(app.menu_items) == 8
    assert app.current_user is None
    assert app.menu_categories() == ["salad", "main course", "beverages"]
    again = pos.PosApp(memory_store, keys=keys, clock=lambda: NOW).start()
    assert [m.id for m in again.menu_items] == [m.id for m in app.menu_items]


def test_login_and_logout(app, memory_store, keys, events):
    assert app.login("nobody@hmpos.com", "x") is False
    assert app.current_user is None

    assert app.login("  Admin@HMPOS.com ", "anything") is True
    assert app.current_user.role == Role.ADMIN
    assert memory_store.get(keys.current_user)["id"] == "admin-1"

    app.logout()
    assert app.current_user is None
    assert memory_store.get(keys.current_user) is None
    assert _types(events) == ["session_changed", "session_changed"]


def test_session_is_restored_on_start(app, memory_store, keys):
    app.login("kitchen@hmpos.com", "")
    restarted = pos.PosApp(memory_store, keys=keys, clock=lambda: NOW).start()
    assert restarted.current_user is not None
    assert restarted.current_user.id == "kitchen-1"


def test_stale_session_is_dropped(memory_store, keys):
    ghost = User(id="ghost-1", email="ghost@hmpos.com", name="Ghost", role=Role.ADMIN)
    memory_store.set(keys.current_user, ghost.to_json())
    a = pos.PosApp(memory_store, keys=keys, clock=lambda: NOW).start()
    assert a.current_user is None
    assert memory_store.get(keys.current_user) is None


def test_password_is_checked_when_account_has_one(memory_store, keys):
    owner = User(id="owner-1", email="owner@hmpos.com", name="Owner", role=Role.ADMIN)
    accounts = [Account(user=owner, password_hash=hash_password("s3cret", iterations=1000))]
    a = pos.PosApp(memory_store, keys=keys, accounts=accounts).start()
    assert a.login("owner@hmpos.com", "wrong") is False
    assert a.current_user is None
    assert a.login("owner@hmpos.com", "s3cret") is True


def test_non_admin_cannot_add_menu_item(app, login_as, memory_store, keys):
    login_as("cashier")
    before = memory_store.get(keys.menu_items)
    with pytest.raises(PermissionDenied) as excinfo:
        app.add_menu_item({"name": "Tea Leaf Salad", "price": 2500, "category": "Salad"})
    assert excinfo.value.status_code == 403
    assert memory_store.get(keys.menu_items) == before
    assert len(app.menu_items) == 8


def test_logged_out_user_cannot_mutate(app):
    with pytest.raises(PermissionDenied):
        app.add_order({"tableNumber": "1", "lines": [{"menuItemId": "1"}]})
    with pytest.raises(PermissionDenied):
        app.update_order("whatever", {"status": "preparing"})
    with pytest.raises(PermissionDenied):
        app.sales_report()


def test_admin_manages_menu(app, login_as, memory_store, keys, events):
    login_as("admin")
    item = app.add_menu_item({"name": " Tea Leaf Salad ", "nameMM": "လက်ဖက်သုပ်", "price": 2500, "category": " Salad "})
    assert item.name == "Tea Leaf Salad"
    assert item.category == "salad"
    assert item.created_at == NOW
    stored = memory_store.get(keys.menu_items)
    assert stored[-1]["id"] == item.id
    assert stored[-1]["nameMM"] == "လက်ဖက်သုပ်"

    updated = app.update_menu_item(item.id, {"price": 2800, "available": False})
    assert updated.price == 2800
    assert updated.available is False
    assert updated.name == "Tea Leaf Salad"
    assert item.id not in [m.id for m in app.available_menu("salad")]

    app.delete_menu_item(item.id)
    assert item.id not in [m["id"] for m in memory_store.get(keys.menu_items)]
    assert _types(events).count("menu_changed") == 3


def test_menu_errors(app, login_as):
    login_as("admin")
    with pytest.raises(NotFound) as excinfo:
        app.update_menu_item("nope", {"price": 10})
    assert excinfo.value.status_code == 404
    with pytest.raises(NotFound):
        app.delete_menu_item("nope")
    with pytest.raises(ValidationError) as excinfo:
        app.add_menu_item({"name": "Free", "price": 0, "category": "misc"})
    assert excinfo.value.status_code == 400
    with pytest.raises(ValidationError):
        app.add_menu_item({"name": "  ", "price": 100, "category": "misc"})
    with pytest.raises(ValidationError):
        app.update_menu_item("1", {"colour": "red"})


def test_add_order_prices_from_menu(placed_order, app, memory_store, keys, events):
    od = placed_order
    assert od.total == 7000
    assert od.table_number == "5"
    assert od.order_number == "#0001"
    assert od.created_by == "cashier-1"
    assert od.status == OrderStatus.PENDING
    assert od.payment_status == PaymentStatus.UNPAID
    assert [(it.name, it.quantity, it.price) for it in od.items] == [("Wet Salad", 2, 3000), ("Cold Drink", 1, 1000)]
    assert memory_store.get(keys.orders) == [od.id]
    assert app.orders == [od]
    assert app.pending_alert_count() == 1
    assert "orders_changed" in _types(events)


def test_add_order_rejects_bad_requests(app, login_as):
    login_as("cashier")
    with pytest.raises(ValidationError):
        app.add_order({"tableNumber": " ", "lines": [{"menuItemId": "1"}]})
    with pytest.raises(ValidationError):
        app.add_order({"tableNumber": "2", "lines": []})
    with pytest.raises(NotFound):
        app.add_order({"tableNumber": "2", "lines": [{"menuItemId": "404"}]})
    assert app.orders == []


def test_kitchen_cannot_create_orders(app, login_as):
    login_as("kitchen")
    with pytest.raises(PermissionDenied):
        app.add_order({"tableNumber": "2", "lines": [{"menuItemId": "1"}]})


def test_order_snapshot_survives_menu_edit(placed_order, app, login_as):
    app.logout()
    login_as("admin")
    app.update_menu_item("1", {"price": 3500, "name": "Wet Salad XL"})
    od = app.order_repo.get(placed_order.id)
    assert od.total == 7000
    assert od.items[0].price == 3000
    assert od.items[0].menu_item.name == "Wet Salad"


def test_cashier_pays_kitchen_cannot(placed_order, app, login_as, memory_store, keys):
    app.logout()
    login_as("kitchen")
    with pytest.raises(PermissionDenied) as excinfo:
        app.complete_payment(placed_order.id, "cash")
    assert excinfo.value.status_code == 403
    assert memory_store.get(keys.order_key(placed_order.id))["paymentStatus"] == "unpaid"

    app.logout()
    login_as("cashier")
    paid = app.complete_payment(placed_order.id, PaymentMethod.CASH)
    assert paid.payment_status == PaymentStatus.PAID
    assert paid.payment_method == PaymentMethod.CASH
    assert paid.status == OrderStatus.PENDING
    assert paid.total == 7000
    assert paid.updated_at == NOW
    assert app.order_repo.get(placed_order.id) == paid


def test_kitchen_moves_order_forward_only(placed_order, app, login_as):
    app.logout()
    login_as("kitchen")
    for st in ("preparing", "ready", "completed"):
        od = app.update_order_status(placed_order.id, st)
    assert od.status == OrderStatus.COMPLETED
    assert od.completed_at == NOW

    with pytest.raises(InvalidTransition) as excinfo:
        app.update_order_status(placed_order.id, OrderStatus.PREPARING)
    assert excinfo.value.status_code == 409
    assert app.order_repo.get(placed_order.id).status == OrderStatus.COMPLETED

    with pytest.raises(PermissionDenied):
        app.update_order(placed_order.id, {"items": [{"menuItemId": "1", "price": 1, "quantity": 1}]})


def test_cancel_and_refund(placed_order, app):
    app.complete_payment(placed_order.id, "kbzpay")
    refunded = app.refund_payment(placed_order.id)
    assert refunded.payment_status == PaymentStatus.REFUNDED
    assert refunded.payment_method == PaymentMethod.KBZPAY
    cancelled = app.cancel_order(placed_order.id)
    assert cancelled.status == OrderStatus.CANCELLED
    with pytest.raises(InvalidTransition):
        app.update_order_status(placed_order.id, "preparing")


def test_update_order_edge_cases(placed_order, app, events):
    with pytest.raises(NotFound):
        app.update_order("missing", {"status": "preparing"})
    with pytest.raises(ValidationError):
        app.update_order(placed_order.id, {})
    with pytest.raises(ValidationError):
        app.update_order(placed_order.id, {"tableNumber": "9"})

    seen = len(events)
    same = app.update_order(placed_order.id, {"status": "pending"})
    assert same == placed_order
    assert len(events) == seen


def test_cashier_replaces_items_while_pending(placed_order, app):
    od = app.update_order(
        placed_order.id,
        {"items": [{"menuItemId": "7", "name": "Tea", "price": 800, "quantity": 3}]},
    )
    assert od.total == 2400
    assert len(od.items) == 1


def test_active_tables_and_reports(placed_order, app, login_as):
    tables = app.active_tables()
    assert [(t.table_number, t.total_unpaid, t.is_paid) for t in tables] == [("5", 7000, False)]

    app.complete_payment(placed_order.id, "wavepay")
    rep = app.sales_report("daily", now=NOW)
    assert rep.total_orders == 1
    assert rep.total_revenue == 7000
    assert rep.payment_breakdown[0].method == PaymentMethod.WAVEPAY

    with pytest.raises(ValidationError):
        app.sales_report("yearly", now=NOW)

    dash = app.dashboard(NOW)
    assert dash.today_orders == 1
    assert dash.today_revenue == 7000
    assert app.kitchen_queue() == app.orders
    assert app.orders_by_status(OrderStatus.READY) == []


def test_settings_permissions(app, login_as, memory_store, keys):
    login_as("kitchen")
    assert app.set_language("mm").language == Language.MM
    with pytest.raises(PermissionDenied):
        app.update_settings({"taxRate": 5})

    app.logout()
    login_as("admin")
    s = app.update_settings({"taxRate": 5, "currencySymbol": "K"})
    assert s.tax_rate == 5
    assert s.language == Language.MM
    assert memory_store.get(keys.settings)["currencySymbol"] == "K"
    with pytest.raises(ValidationError):
        app.update_settings({"theme": "neon"})


def test_clear_all_data_is_admin_only(placed_order, app, login_as, memory_store, events):
    with pytest.raises(PermissionDenied):
        app.clear_all_data()
    assert memory_store.keys()

    app.logout()
    login_as("admin")
    app.clear_all_data()
    assert memory_store.keys() == []
    assert app.current_user is None
    assert app.orders == []
    assert app.menu_items == []
    assert _types(events)[-1] == "data_cleared"


def test_listener_failure_does_not_break_mutation(placed_order, app):
    def boom(_event):
        raise RuntimeError("view crashed")

    app.events.subscribe(boom)
    assert app.update_order_status(placed_order.id, "preparing").status == OrderStatus.PREPARING


def test_create_app_from_config():
    cfg = PosConfig(store="memory", key_prefix="@cfg")
    a = pos.create_app(cfg, configure_logging=False)
    assert len(a.menu_items) == 8
    assert a.store.get("@cfg_menu_items")

    bare = pos.create_app(PosConfig(store="memory", seed_sample_data=False), configure_logging=False)
    assert bare.menu_items == []


def test_add_order_accepts_priced_items(app, login_as):
    login_as("cashier")
    od = app.add_order(
        {
            "tableNumber": "5",
            "items": [
                {"menuItemId": "7", "name": "Tea", "price": 800, "quantity": 2},
                {"menuItemId": "8", "name": "Coffee", "price": 1200, "quantity": 1},
            ],
        }
    )
    assert od.total == 2800
    assert [(it.menu_item_id, it.quantity) for it in od.items] == [("7", 2), ("8", 1)]
    assert app.orders == [od]


def test_add_order_reports_unknown_and_conflicting_fields(app, login_as):
    login_as("cashier")
    with pytest.raises(ValidationError) as excinfo:
        app.add_order({"tableNumber": "5", "dishes": [{"menuItemId": "1"}]})
    assert excinfo.value.status_code == 400
    with pytest.raises(ValidationError):
        app.add_order(
            {
                "tableNumber": "5",
                "lines": [{"menuItemId": "1"}],
                "items": [{"menuItemId": "7", "price": 800, "quantity": 1}],
            }
        )
    assert app.orders == []


def test_prices_are_whole_kyat(app, login_as):
    login_as("admin")
    with pytest.raises(ValidationError):
        app.add_menu_item({"name": "Half Tea", "price": 400.5, "category": "Beverages"})
    assert app.add_menu_item({"name": "Tea", "price": 800.0, "category": "Beverages"}).price == 800


def test_logged_out_user_cannot_change_language(app, memory_store, keys):
    with pytest.raises(PermissionDenied):
        app.set_language("mm")
    assert memory_store.get(keys.settings) is None
    assert app.settings.language == Language.EN


def test_reports_use_configured_currency(placed_order, app, login_as):
    app.logout()
    login_as("admin")
    app.update_settings({"currencySymbol": "K", "taxRate": 10})
    app.complete_payment(placed_order.id, "cash")
    rep = app.sales_report("daily", now=NOW)
    assert rep.revenue_display == "K7,000"
    assert rep.tax_total == 700
    assert app.dashboard(NOW).today_revenue_display == "K7,000"


class _FlakyStore(MemoryStore):
    """Memory store that fails every call once ``down`` is set."""

    def __init__(self):
        super().__init__()
        self.down = False

    def _check(self, key):
        if self.down:
            raise StorageError(f"store unavailable for {key}", key=key)

    def get(self, key):
        self._check(key)
        return super().get(key)

    def set(self, key, value):
        self._check(key)
        super().set(key, value)

    def remove(self, key):
        self._check(key)
        super().remove(key)

    def multi_remove(self, keys):
        self._check("*")
        super().multi_remove(keys)


def test_storage_failure_propagates_from_login_and_add_order(keys):
    store = _FlakyStore()
    a = pos.PosApp(store, keys=keys, clock=lambda: NOW).start()
    assert a.login("cashier@hmpos.com", "") is True
    before = list(a.orders)

    store.down = True
    assert a.login("nobody@hmpos.com", "x") is False
    with pytest.raises(StorageError) as excinfo:
        a.login("admin@hmpos.com", "")
    assert excinfo.value.status_code == 503
    assert a.current_user.id == "cashier-1"

    with pytest.raises(StorageError):
        a.add_order({"tableNumber": "1", "lines": [{"menuItemId": "1"}]})
    assert a.orders == before

    store.down = False
    assert a.order_repo.load_all() == []
