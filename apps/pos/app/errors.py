"""Error taxonomy raised by the POS core.

Each error carries an HTTP-like ``status_code`` and a ``detail`` message so a
presentation layer can map it to a user-visible message without inspecting
the exception type.
"""

from __future__ import annotations

from typing import Any


class PosError(Exception):
    status_code = 500

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context


class PermissionDenied(PosError):
    status_code = 403


class ValidationError(PosError):
    status_code = 400


class InvalidTransition(PosError):
    status_code = 409


class NotFound(PosError):
    status_code = 404


class StorageError(PosError):
    status_code = 503
