from __future__ import annotations

from typing import Any, Dict, Mapping

from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import AppSettings


def _field_names() -> Dict[str, str]:
    names: Dict[str, str] = {}
    for name, info in AppSettings.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names


def merge_settings(current: AppSettings, updates: Mapping[str, Any]) -> AppSettings:
    """Apply a partial update to ``current`` and return validated settings.

    Keys may use either the Python or the stored camelCase names. Unknown keys
    and invalid values raise ``ValidationError``. ``payment_qr`` is merged per
    provider so updating one wallet's QR code keeps the other.
    """
    names = _field_names()
    unknown = sorted(k for k in updates if k not in names)
    if unknown:
        raise ValidationError(f"unknown settings: {', '.join(unknown)}", fields=unknown)

    data = current.model_dump()
    for key, value in updates.items():
        field = names[key]
        if field == "payment_qr" and isinstance(value, Mapping) and data.get("payment_qr"):
            merged = dict(data["payment_qr"])
            merged.update(value)
            value = merged
        data[field] = value
    try:
        return AppSettings.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("invalid settings", errors=e.errors(include_url=False)) from e


def format_money(amount: float, settings: AppSettings) -> str:
    text = f"{amount:,.0f}" if float(amount).is_integer() else f"{amount:,.2f}"
    if settings.currency_symbol:
        return f"{settings.currency_symbol}{text}"
    return f"{text} {settings.currency}"


def tax_for(amount: float, settings: AppSettings) -> float:
    return amount * settings.tax_rate / 100.0 if settings.tax_rate > 0 else 0.0
