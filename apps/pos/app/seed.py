from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from .models import Account, MenuItem, Role, User, utc_now

# (id, name, Myanmar name, price, category)
_SAMPLE_MENU = [
    ("1", "Wet Salad", "ဝက်ဆလပ်", 3000, "Salad"),
    ("2", "Mala Shan Kaut", "မာလာရှမ်းကော", 4500, "Main Course"),
    ("3", "Mala Mok Chauk", "မာလာမောက်ချိုက်", 4000, "Main Course"),
    ("4", "Cold Drink", "အအေးဖျော်ရည်", 1000, "Beverages"),
    ("5", "Purified Water", "သန့်ရှင်းသောရေ", 500, "Beverages"),
    ("6", "Shan Noodles", "ရှမ်းခေါက်ဆွဲ", 3500, "Main Course"),
    ("7", "Tea", "လက်ဖက်ရည်", 800, "Beverages"),
    ("8", "Coffee", "ကော်ဖီ", 1200, "Beverages"),
]

_SAMPLE_USERS = [
    ("admin-1", "admin@hmpos.com", "Admin User", Role.ADMIN),
    ("cashier-1", "cashier@hmpos.com", "Cashier User", Role.CASHIER),
    ("kitchen-1", "kitchen@hmpos.com", "Kitchen Staff", Role.KITCHEN),
]


def sample_menu(now: Optional[datetime] = None) -> List[MenuItem]:
    ts = now or utc_now()
    return [
        MenuItem(
            id=mid,
            name=name,
            name_mm=name_mm,
            price=price,
            category=category,
            available=True,
            created_at=ts,
            updated_at=ts,
        )
        for mid, name, name_mm, price, category in _SAMPLE_MENU
    ]


def sample_accounts(now: Optional[datetime] = None) -> List[Account]:
    """Demo accounts without passwords; login accepts any password for them."""
    ts = now or utc_now()
    return [
        Account(user=User(id=uid, email=email, name=name, role=role, created_at=ts))
        for uid, email, name, role in _SAMPLE_USERS
    ]
