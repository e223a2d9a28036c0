from contextvars import ContextVar

_sid_ctx: ContextVar[str] = ContextVar("session_id", default="")


def get_session_id() -> str:
    return _sid_ctx.get()


def bind_session_id(session_id: str) -> None:
    _sid_ctx.set(session_id or "")


def clear_session_id() -> None:
    _sid_ctx.set("")
