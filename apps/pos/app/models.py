from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _Model(BaseModel):
    # stored blobs use the mobile app's camelCase keys
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Role(str, Enum):
    ADMIN = "admin"
    CASHIER = "cashier"
    KITCHEN = "kitchen"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CASH = "cash"
    KBZPAY = "kbzpay"
    WAVEPAY = "wavepay"


class Language(str, Enum):
    EN = "en"
    MM = "mm"


def _clean_name(v: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError("name must not be empty")
    return v


def _clean_category(v: str) -> str:
    v = (v or "").strip().lower()
    if not v:
        raise ValueError("category must not be empty")
    return v


Name = Annotated[str, AfterValidator(_clean_name)]
Category = Annotated[str, AfterValidator(_clean_category)]


# --- Users ---
class User(_Model):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    role: Role
    created_at: datetime = Field(default_factory=utc_now)


class Account(BaseModel):
    """User directory entry. ``password_hash`` is ``None`` for demo accounts."""

    user: User
    password_hash: Optional[str] = None


# --- Menu ---
class MenuItem(_Model):
    id: str
    name: Name
    name_mm: Optional[str] = Field(default=None, alias="nameMM")
    price: int = Field(gt=0)  # whole kyat
    category: Category
    available: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MenuItemCreate(_Model):
    model_config = ConfigDict(extra="forbid")

    name: Name
    name_mm: Optional[str] = Field(default=None, alias="nameMM")
    price: int = Field(gt=0)
    category: Category
    available: bool = True


class MenuItemUpdate(_Model):
    model_config = ConfigDict(extra="forbid")

    name: Optional[Name] = None
    name_mm: Optional[str] = Field(default=None, alias="nameMM")
    price: Optional[int] = Field(default=None, gt=0)
    category: Optional[Category] = None
    available: Optional[bool] = None


# --- Orders ---
class OrderItem(_Model):
    menu_item_id: str
    menu_item: Optional[MenuItem] = None
    name: str = ""
    quantity: int = Field(ge=1)
    price: int = Field(ge=0)

    @property
    def line_total(self) -> int:
        return self.price * self.quantity


class Order(_Model):
    id: str
    order_number: Optional[str] = None
    table_number: str
    items: List[OrderItem]
    total: int
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    payment_method: Optional[PaymentMethod] = None
    created_by: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator("payment_status", mode="before")
    @classmethod
    def _legacy_payment_status(cls, v):
        # older app builds stored unpaid orders as "pending"
        return PaymentStatus.UNPAID if v == "pending" else v


class OrderLineIn(_Model):
    menu_item_id: str
    quantity: int = Field(default=1, ge=1)


class OrderCreate(_Model):
    """New order. Either ``lines`` priced from the menu or pre-priced ``items``."""

    model_config = ConfigDict(extra="forbid")

    table_number: str = ""
    lines: List[OrderLineIn] = Field(default_factory=list)
    items: Optional[List[OrderItem]] = None


class OrderPatch(_Model):
    model_config = ConfigDict(extra="forbid")

    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[PaymentMethod] = None
    items: Optional[List[OrderItem]] = None

    def touches_status(self) -> bool:
        return "status" in self.model_fields_set

    def touches_payment(self) -> bool:
        return bool({"payment_status", "payment_method"} & self.model_fields_set)

    def touches_items(self) -> bool:
        return "items" in self.model_fields_set


# --- Settings ---
class PaymentQR(_Model):
    qr_code_uri: Optional[str] = None
    phone_number: Optional[str] = None


class PaymentQRSettings(_Model):
    kbzpay: Optional[PaymentQR] = None
    wavepay: Optional[PaymentQR] = None


class AppSettings(_Model):
    language: Language = Language.EN
    tax_rate: float = Field(default=0.0, ge=0)
    currency: str = "MMK"
    currency_symbol: Optional[str] = None
    notifications: bool = True
    auto_print: bool = False
    dark_mode: bool = False
    payment_qr: Optional[PaymentQRSettings] = Field(default=None, alias="paymentQR")
