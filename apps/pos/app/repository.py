"""Persistence of POS collections on top of a key-value store.

Orders are stored as one record per order plus an id index (newest first), so
a status or payment update rewrites a single record instead of the whole
collection. All order mutations go through one lock.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, List, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .config import StorageKeys
from .errors import NotFound
from .models import AppSettings, MenuItem, Order, User
from .storage import KeyValueStore

log = logging.getLogger("pos.storage")

_ids = TypeAdapter(List[str])
_orders = TypeAdapter(List[Order])
_menu = TypeAdapter(List[MenuItem])


class OrderRepository:
    def __init__(self, store: KeyValueStore, keys: StorageKeys):
        self.store = store
        self.keys = keys
        self.lock = threading.RLock()

    # --- index ---
    def _load_index(self) -> List[str]:
        raw = self.store.get(self.keys.orders)
        if raw is None:
            return []
        try:
            return _ids.validate_python(raw)
        except PydanticValidationError:
            pass
        # whole-collection blob written by older app builds
        try:
            legacy = _orders.validate_python(raw)
        except PydanticValidationError:
            log.warning("order index under %s is malformed; resetting", self.keys.orders)
            return []
        log.info("migrating %d orders to keyed records", len(legacy))
        self._write_all(legacy)
        return [o.id for o in legacy]

    def _load_record(self, order_id: str) -> Optional[Order]:
        raw = self.store.get(self.keys.order_key(order_id))
        if raw is None:
            return None
        try:
            return Order.model_validate(raw)
        except PydanticValidationError:
            log.warning("order record %s is malformed; skipping", order_id)
            return None

    def _write_all(self, orders: List[Order]) -> None:
        for od in orders:
            self.store.set(self.keys.order_key(od.id), od.to_json())
        self.store.set(self.keys.orders, [od.id for od in orders])

    # --- public ---
    def load_all(self) -> List[Order]:
        with self.lock:
            out: List[Order] = []
            for oid in self._load_index():
                od = self._load_record(oid)
                if od is not None:
                    out.append(od)
            return out

    def get(self, order_id: str) -> Order:
        with self.lock:
            od = self._load_record(order_id) if order_id in self._load_index() else None
        if od is None:
            raise NotFound(f"order {order_id} not found", order_id=order_id)
        return od

    def append(self, order: Order) -> None:
        with self.lock:
            index = [oid for oid in self._load_index() if oid != order.id]
            self.store.set(self.keys.order_key(order.id), order.to_json())
            self.store.set(self.keys.orders, [order.id] + index)

    def save(self, order: Order) -> None:
        with self.lock:
            if order.id not in self._load_index():
                raise NotFound(f"order {order.id} not found", order_id=order.id)
            self.store.set(self.keys.order_key(order.id), order.to_json())

    def save_all(self, orders: Iterable[Order]) -> None:
        orders = list(orders)
        with self.lock:
            stale = set(self._load_index()) - {od.id for od in orders}
            self._write_all(orders)
            self.store.multi_remove(self.keys.order_key(oid) for oid in stale)

    def count(self) -> int:
        with self.lock:
            return len(self._load_index())

    def record_keys(self) -> List[str]:
        with self.lock:
            return [self.keys.order_key(oid) for oid in self._load_index()]

    def clear(self) -> None:
        with self.lock:
            self.store.multi_remove(self.record_keys() + [self.keys.orders])


class MenuRepository:
    def __init__(self, store: KeyValueStore, keys: StorageKeys):
        self.store = store
        self.keys = keys

    def load_all(self) -> List[MenuItem]:
        raw = self.store.get(self.keys.menu_items)
        if raw is None:
            return []
        try:
            return _menu.validate_python(raw)
        except PydanticValidationError:
            log.warning("menu blob under %s is malformed; resetting", self.keys.menu_items)
            return []

    def save_all(self, items: Iterable[MenuItem]) -> None:
        self.store.set(self.keys.menu_items, [it.to_json() for it in items])


class SessionRepository:
    def __init__(self, store: KeyValueStore, keys: StorageKeys):
        self.store = store
        self.keys = keys

    def load(self) -> Optional[User]:
        raw = self.store.get(self.keys.current_user)
        if raw is None:
            return None
        try:
            return User.model_validate(raw)
        except PydanticValidationError:
            log.warning("stored session is malformed; ignoring")
            return None

    def save(self, user: User) -> None:
        self.store.set(self.keys.current_user, user.to_json())

    def clear(self) -> None:
        self.store.remove(self.keys.current_user)


class SettingsRepository:
    def __init__(self, store: KeyValueStore, keys: StorageKeys):
        self.store = store
        self.keys = keys

    def load(self) -> AppSettings:
        raw: Any = self.store.get(self.keys.settings)
        if raw is None:
            return AppSettings()
        try:
            return AppSettings.model_validate(raw)
        except PydanticValidationError:
            log.warning("settings blob is malformed; using defaults")
            return AppSettings()

    def save(self, settings: AppSettings) -> None:
        self.store.set(self.keys.settings, settings.to_json())


def clear_all_data(store: KeyValueStore, keys: StorageKeys, orders: OrderRepository) -> None:
    store.multi_remove(orders.record_keys() + keys.fixed())
