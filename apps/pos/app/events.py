from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List

_log = logging.getLogger("pos.events")

Listener = Callable[[Dict[str, Any]], None]


class EventPublisher:
    """
    In-process publisher for POS change notifications.

    A presentation layer subscribes to refresh its views after a mutation.
    Listener failures are logged and never break the mutation that emitted
    the event.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        data = {
            "type": event_type,
            "ts_ms": int(time.time() * 1000),
            "payload": payload,
        }
        _log.debug("event %s", event_type, extra={"event": data})
        for listener in list(self._listeners):
            try:
                listener(data)
            except Exception:
                _log.exception("events: listener failed for %s", event_type)
