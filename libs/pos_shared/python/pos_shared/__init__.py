from .session_context import bind_session_id, clear_session_id, get_session_id
from .logging import JsonFormatter, setup_json_logging

__all__ = [
    "bind_session_id",
    "clear_session_id",
    "get_session_id",
    "JsonFormatter",
    "setup_json_logging",
]
