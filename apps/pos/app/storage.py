"""Key-value stores holding JSON blobs by string key.

``MemoryStore`` backs tests and ephemeral sessions; ``SqlStore`` persists to
any SQLAlchemy database (an on-device SQLite file by default).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Protocol

from sqlalchemy import DateTime, String, Text, create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from .errors import StorageError

log = logging.getLogger("pos.storage")


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...

    def multi_remove(self, keys: Iterable[str]) -> None: ...


def _dumps(key: str, value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise StorageError(f"value for {key} is not JSON serialisable", key=key) from e


def _loads(key: str, raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        log.warning("discarding unparseable blob for key %s", key)
        return None


class MemoryStore:
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        for k, v in (initial or {}).items():
            self.set(k, v)

    def get(self, key: str) -> Any:
        return _loads(key, self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = _dumps(key, value)

    def set_raw(self, key: str, raw: str) -> None:
        self._data[key] = raw

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def multi_remove(self, keys: Iterable[str]) -> None:
        for k in list(keys):
            self._data.pop(k, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class Base(DeclarativeBase):
    pass


class KVEntry(Base):
    __tablename__ = "kv_entries"
    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    value: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class SqlStore:
    def __init__(self, url_or_engine: "str | Engine"):
        if isinstance(url_or_engine, str):
            kwargs: Dict[str, Any] = {"future": True}
            if url_or_engine.startswith("sqlite"):
                kwargs["connect_args"] = {"check_same_thread": False}
            self.engine = create_engine(url_or_engine, **kwargs)
        else:
            self.engine = url_or_engine
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError("key-value table could not be created") from e

    def get(self, key: str) -> Any:
        try:
            with Session(self.engine) as s:
                row = s.get(KVEntry, key)
                raw = row.value if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"read failed for {key}", key=key) from e
        return _loads(key, raw)

    def set(self, key: str, value: Any) -> None:
        raw = _dumps(key, value)
        try:
            with Session(self.engine) as s:
                row = s.get(KVEntry, key)
                now = datetime.now(timezone.utc)
                if row is None:
                    s.add(KVEntry(key=key, value=raw, updated_at=now))
                else:
                    row.value = raw
                    row.updated_at = now
                s.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"write failed for {key}", key=key) from e

    def remove(self, key: str) -> None:
        self.multi_remove([key])

    def multi_remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        try:
            with Session(self.engine) as s:
                s.execute(delete(KVEntry).where(KVEntry.key.in_(keys)))
                s.commit()
        except SQLAlchemyError as e:
            raise StorageError("delete failed", keys=keys) from e

    def keys(self) -> list[str]:
        try:
            with Session(self.engine) as s:
                return list(s.execute(select(KVEntry.key).order_by(KVEntry.key)).scalars().all())
        except SQLAlchemyError as e:
            raise StorageError("key listing failed") from e
