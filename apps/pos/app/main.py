"""Application facade for the restaurant POS.

``PosApp`` is the single entry point a presentation layer talks to. Every
mutation is permission-checked here before any storage access, then handed
to the lifecycle rules and repositories, and finally announced through the
event publisher so views can refresh.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Iterable, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from pos_shared import bind_session_id, clear_session_id, setup_json_logging

from . import lifecycle, permissions, reports
from .auth import find_account, verify_password
from .config import PosConfig, StorageKeys, load_config, storage_keys
from .errors import NotFound, PermissionDenied, ValidationError
from .events import EventPublisher
from .models import (
    Account,
    AppSettings,
    Language,
    MenuItem,
    MenuItemCreate,
    MenuItemUpdate,
    Order,
    OrderCreate,
    OrderPatch,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    User,
    utc_now,
)
from .repository import (
    MenuRepository,
    OrderRepository,
    SessionRepository,
    SettingsRepository,
    clear_all_data,
)
from .seed import sample_accounts, sample_menu
from .settings import merge_settings
from .storage import KeyValueStore, MemoryStore, SqlStore

log = logging.getLogger("pos.app")
_auth_logger = logging.getLogger("pos.auth")
_audit_logger = logging.getLogger("pos.audit")

M = TypeVar("M", bound=BaseModel)
Rule = Callable[[Optional[User]], bool]


def _parse(model: Type[M], data: Union[M, Mapping[str, Any]]) -> M:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"invalid {model.__name__}", errors=e.errors(include_url=False)) from e


class PosApp:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        keys: Optional[StorageKeys] = None,
        accounts: Optional[Iterable[Account]] = None,
        seed_sample_data: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
        events: Optional[EventPublisher] = None,
    ):
        self.store = store
        self.keys = keys or storage_keys("@hmpos")
        self.order_repo = OrderRepository(store, self.keys)
        self.menu_repo = MenuRepository(store, self.keys)
        self.session_repo = SessionRepository(store, self.keys)
        self.settings_repo = SettingsRepository(store, self.keys)
        self.accounts: List[Account] = list(accounts) if accounts is not None else sample_accounts()
        self.seed_sample_data = seed_sample_data
        self.events = events or EventPublisher()
        self._clock = clock or utc_now
        self._menu_lock = threading.RLock()

        self.current_user: Optional[User] = None
        self.menu_items: List[MenuItem] = []
        self.orders: List[Order] = []
        self.settings: AppSettings = AppSettings()

    # --- lifecycle ---
    def start(self) -> "PosApp":
        self.settings = self.settings_repo.load()
        menu = self.menu_repo.load_all()
        if not menu and self.seed_sample_data:
            menu = sample_menu(self._clock())
            self.menu_repo.save_all(menu)
            log.info("seeded %d sample menu items", len(menu))
        self.menu_items = menu
        self.orders = self.order_repo.load_all()

        user = self.session_repo.load()
        if user is not None and self._known(user):
            self.current_user = user
            bind_session_id(user.id)
        elif user is not None:
            _auth_logger.warning("stored session for %s no longer matches an account; clearing", user.id)
            self.session_repo.clear()
        log.info("pos started: %d menu items, %d orders", len(self.menu_items), len(self.orders))
        return self

    def reload(self) -> None:
        self.menu_items = self.menu_repo.load_all()
        self.orders = self.order_repo.load_all()

    def _known(self, user: User) -> bool:
        acc = find_account(self.accounts, user.email)
        return acc is not None and acc.user.id == user.id

    def _require(self, rule: Rule, action: str) -> User:
        user = self.current_user
        if user is None or not rule(user):
            _audit_logger.info(
                {
                    "event": "permission_denied",
                    "action": action,
                    "user_id": user.id if user else None,
                    "role": user.role.value if user else None,
                }
            )
            raise PermissionDenied(f"not allowed to {action}", action=action)
        return user

    def _audit(self, action: str, **fields: Any) -> None:
        payload = {"event": action, "user_id": self.current_user.id if self.current_user else None}
        payload.update(fields)
        _audit_logger.info(payload)

    # --- session ---
    def login(self, email: str, password: str) -> bool:
        acc = find_account(self.accounts, email)
        if acc is None:
            _auth_logger.info("login rejected: unknown email")
            return False
        if acc.password_hash is not None:
            if not verify_password(password, acc.password_hash):
                _auth_logger.info("login rejected: bad password for %s", acc.user.id)
                return False
        else:
            _auth_logger.warning("account %s has no password set; accepting login", acc.user.id)
        self.session_repo.save(acc.user)
        self.current_user = acc.user
        bind_session_id(acc.user.id)
        self._audit("login", role=acc.user.role.value)
        self.events.publish("session_changed", {"user_id": acc.user.id})
        return True

    def logout(self) -> None:
        self.session_repo.clear()
        if self.current_user is not None:
            self._audit("logout")
        self.current_user = None
        clear_session_id()
        self.events.publish("session_changed", {"user_id": None})

    # --- menu ---
    def _menu_index(self, item_id: str) -> int:
        for i, it in enumerate(self.menu_items):
            if it.id == item_id:
                return i
        raise NotFound(f"menu item {item_id} not found", menu_item_id=item_id)

    def add_menu_item(self, data: Union[MenuItemCreate, Mapping[str, Any]]) -> MenuItem:
        self._require(permissions.can_add_menu_item, "add menu items")
        req = _parse(MenuItemCreate, data)
        now = self._clock()
        item = MenuItem(id=str(uuid.uuid4()), created_at=now, updated_at=now, **req.model_dump())
        with self._menu_lock:
            items = self.menu_repo.load_all() + [item]
            self.menu_repo.save_all(items)
            self.menu_items = items
        self._audit("menu_item_added", menu_item_id=item.id)
        self.events.publish("menu_changed", {"menu_item_id": item.id})
        return item

    def update_menu_item(self, item_id: str, data: Union[MenuItemUpdate, Mapping[str, Any]]) -> MenuItem:
        self._require(permissions.can_update_menu_item, "edit the menu")
        req = _parse(MenuItemUpdate, data)
        with self._menu_lock:
            self.menu_items = self.menu_repo.load_all()
            idx = self._menu_index(item_id)
            current = self.menu_items[idx]
            merged = current.model_dump()
            merged.update(req.model_dump(exclude_unset=True))
            merged["updated_at"] = self._clock()
            updated = _parse(MenuItem, merged)
            items = list(self.menu_items)
            items[idx] = updated
            self.menu_repo.save_all(items)
            self.menu_items = items
        self._audit("menu_item_updated", menu_item_id=item_id)
        self.events.publish("menu_changed", {"menu_item_id": item_id})
        return updated

    def delete_menu_item(self, item_id: str) -> None:
        self._require(permissions.can_delete_menu, "delete menu items")
        with self._menu_lock:
            self.menu_items = self.menu_repo.load_all()
            idx = self._menu_index(item_id)
            items = self.menu_items[:idx] + self.menu_items[idx + 1 :]
            self.menu_repo.save_all(items)
            self.menu_items = items
        self._audit("menu_item_deleted", menu_item_id=item_id)
        self.events.publish("menu_changed", {"menu_item_id": item_id})

    # --- orders ---
    def add_order(self, data: Union[OrderCreate, Mapping[str, Any]]) -> Order:
        user = self._require(permissions.can_create_order, "create orders")
        req = _parse(OrderCreate, data)
        if req.items is not None and req.lines:
            raise ValidationError("order takes either menu lines or priced items, not both")
        with self.order_repo.lock:
            if req.items is not None:
                lines = req.items
            else:
                lines = lifecycle.build_lines(req.lines, self.menu_repo.load_all())
            od = lifecycle.create_order(
                req.table_number,
                lines,
                created_by=user.id,
                order_number=lifecycle.format_order_number(self.order_repo.count() + 1),
                now=self._clock(),
            )
            self.order_repo.append(od)
            self.orders = self.order_repo.load_all()
        self._audit("order_created", order_id=od.id, table=od.table_number, total=od.total)
        self.events.publish("orders_changed", {"order_id": od.id})
        return od

    def _check_patch_permissions(self, patch: OrderPatch) -> None:
        if not patch.model_fields_set:
            raise ValidationError("order update is empty")
        if patch.touches_status():
            self._require(permissions.can_update_order_status, "update order status")
        if patch.touches_payment():
            self._require(permissions.can_process_payment, "process payments")
        if patch.touches_items():
            self._require(permissions.can_create_order, "change order items")

    def update_order(self, order_id: str, data: Union[OrderPatch, Mapping[str, Any]]) -> Order:
        if self.current_user is None:
            self._require(permissions.can_update_order_status, "update orders")
        patch = _parse(OrderPatch, data)
        self._check_patch_permissions(patch)
        with self.order_repo.lock:
            current = self.order_repo.get(order_id)
            updated = lifecycle.apply_patch(current, patch, now=self._clock())
            if updated is not current:
                self.order_repo.save(updated)
            self.orders = self.order_repo.load_all()
        if updated is not current:
            self._audit(
                "order_updated",
                order_id=order_id,
                fields=sorted(patch.model_fields_set),
                status=updated.status.value,
                payment_status=updated.payment_status.value,
            )
            self.events.publish("orders_changed", {"order_id": order_id})
        return updated

    def update_order_status(self, order_id: str, status: Union[OrderStatus, str]) -> Order:
        return self.update_order(order_id, OrderPatch(status=OrderStatus(status)))

    def cancel_order(self, order_id: str) -> Order:
        return self.update_order_status(order_id, OrderStatus.CANCELLED)

    def complete_payment(self, order_id: str, method: Union[PaymentMethod, str]) -> Order:
        patch = OrderPatch(payment_status=PaymentStatus.PAID, payment_method=PaymentMethod(method))
        return self.update_order(order_id, patch)

    def refund_payment(self, order_id: str) -> Order:
        return self.update_order(order_id, OrderPatch(payment_status=PaymentStatus.REFUNDED))

    # --- settings ---
    def update_settings(self, updates: Mapping[str, Any]) -> AppSettings:
        self._require(permissions.can_manage_settings, "manage settings")
        return self._apply_settings(updates)

    def set_language(self, language: Union[Language, str]) -> AppSettings:
        self._require(permissions.can_change_language, "change the language")
        return self._apply_settings({"language": language})

    def _apply_settings(self, updates: Mapping[str, Any]) -> AppSettings:
        merged = merge_settings(self.settings_repo.load(), updates)
        self.settings_repo.save(merged)
        self.settings = merged
        self._audit("settings_updated", fields=sorted(updates))
        self.events.publish("settings_changed", {"fields": sorted(updates)})
        return merged

    def clear_all_data(self) -> None:
        self._require(permissions.is_admin, "clear all data")
        self._audit("data_cleared")
        with self.order_repo.lock, self._menu_lock:
            clear_all_data(self.store, self.keys, self.order_repo)
        self.current_user = None
        clear_session_id()
        self.menu_items = []
        self.orders = []
        self.settings = AppSettings()
        self.events.publish("data_cleared", {})

    # --- read side ---
    def active_tables(self) -> List[reports.TableSummary]:
        return reports.active_tables(self.orders)

    def pending_alert_count(self) -> int:
        return reports.pending_alert_count(self.orders)

    def kitchen_queue(self, include_all: bool = False) -> List[Order]:
        return reports.kitchen_queue(self.orders, include_all)

    def orders_by_status(self, status: Optional[OrderStatus] = None) -> List[Order]:
        return reports.filter_orders(self.orders, status)

    def dashboard(self, now: Optional[datetime] = None) -> reports.DashboardSummary:
        return reports.dashboard_summary(self.orders, self.menu_items, now, self.settings)

    def sales_report(
        self,
        period: Union[reports.ReportPeriod, str] = reports.ReportPeriod.DAILY,
        now: Optional[datetime] = None,
    ) -> reports.SalesReport:
        self._require(permissions.can_view_reports, "view reports")
        try:
            period = reports.ReportPeriod(period)
        except ValueError as e:
            raise ValidationError(f"unknown report period {period!r}") from e
        return reports.sales_report(self.orders, period, now, self.settings)

    def available_menu(self, category: Optional[str] = None) -> List[MenuItem]:
        return reports.available_menu(self.menu_items, category)

    def menu_categories(self) -> List[str]:
        return reports.menu_categories(self.menu_items)


def create_store(config: PosConfig) -> KeyValueStore:
    if config.store == "memory":
        return MemoryStore()
    return SqlStore(config.db_url)


def create_app(config: Optional[PosConfig] = None, *, configure_logging: bool = True, **kwargs: Any) -> PosApp:
    config = config or load_config()
    if configure_logging:
        setup_json_logging(config.log_level)
    app = PosApp(
        create_store(config),
        keys=config.keys,
        seed_sample_data=config.seed_sample_data,
        **kwargs,
    )
    return app.start()
