from __future__ import annotations

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field


def _env_or(env: Mapping[str, str], key: str, default: str) -> str:
    v = env.get(key)
    return v if v is not None else default


def _env_flag(env: Mapping[str, str], key: str, default: str) -> bool:
    return _env_or(env, key, default).strip().lower() in ("1", "true", "yes", "on")


class StorageKeys(BaseModel):
    menu_items: str
    orders: str
    order_record: str
    current_user: str
    settings: str

    def order_key(self, order_id: str) -> str:
        return f"{self.order_record}{order_id}"

    def fixed(self) -> list[str]:
        return [self.menu_items, self.orders, self.current_user, self.settings]


def storage_keys(prefix: str) -> StorageKeys:
    return StorageKeys(
        menu_items=f"{prefix}_menu_items",
        orders=f"{prefix}_orders",
        order_record=f"{prefix}_order:",
        current_user=f"{prefix}_current_user",
        settings=f"{prefix}_settings",
    )


class PosConfig(BaseModel):
    env: str = "dev"
    db_url: str = "sqlite+pysqlite:///pos.db"
    store: str = Field(default="sql", pattern="^(sql|memory)$")
    key_prefix: str = Field(default="@hmpos", min_length=1)
    seed_sample_data: bool = True
    log_level: str = "INFO"

    @property
    def keys(self) -> StorageKeys:
        return storage_keys(self.key_prefix)


def load_config(env: Optional[Mapping[str, str]] = None) -> PosConfig:
    src = os.environ if env is None else env
    return PosConfig(
        env=_env_or(src, "ENV", "dev"),
        db_url=_env_or(src, "POS_DB_URL", "sqlite+pysqlite:///pos.db"),
        store=_env_or(src, "POS_STORE", "sql").strip().lower(),
        key_prefix=_env_or(src, "POS_KEY_PREFIX", "@hmpos"),
        seed_sample_data=_env_flag(src, "POS_SEED_SAMPLE_DATA", "true"),
        log_level=_env_or(src, "LOG_LEVEL", "INFO"),
    )
