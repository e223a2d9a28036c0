"""Role-based permission rules.

Every rule takes the current user (``None`` when logged out) and answers a
yes/no question. The rules form a closed set without inheritance; the
application facade is the only place that enforces them.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional

from .models import Language, Role, User


def _has_role(user: Optional[User], *roles: Role) -> bool:
    return user is not None and user.role in roles


def is_admin(user: Optional[User]) -> bool:
    return _has_role(user, Role.ADMIN)


def can_edit_menu(user: Optional[User]) -> bool:
    return is_admin(user)


def can_delete_menu(user: Optional[User]) -> bool:
    return is_admin(user)


def can_add_menu_item(user: Optional[User]) -> bool:
    return is_admin(user)


def can_update_menu_item(user: Optional[User]) -> bool:
    return is_admin(user)


def can_manage_settings(user: Optional[User]) -> bool:
    return is_admin(user)


def can_view_reports(user: Optional[User]) -> bool:
    return True


def can_change_language(user: Optional[User]) -> bool:
    return user is not None


def can_create_order(user: Optional[User]) -> bool:
    return _has_role(user, Role.ADMIN, Role.CASHIER)


def can_update_order_status(user: Optional[User]) -> bool:
    return _has_role(user, Role.ADMIN, Role.CASHIER, Role.KITCHEN)


def can_process_payment(user: Optional[User]) -> bool:
    return _has_role(user, Role.ADMIN, Role.CASHIER)


RULES: Dict[str, Callable[[Optional[User]], bool]] = {
    "can_create_order": can_create_order,
    "can_update_order_status": can_update_order_status,
    "can_process_payment": can_process_payment,
    "can_view_reports": can_view_reports,
    "can_edit_menu": can_edit_menu,
    "can_delete_menu": can_delete_menu,
    "can_add_menu_item": can_add_menu_item,
    "can_manage_settings": can_manage_settings,
}


def role_permissions(role: Role) -> Dict[str, bool]:
    """Full action matrix for ``role``, as shown on the permission screen."""
    sample = User(id=f"sample-{role.value}", email="", name="", role=role)
    return {action: rule(sample) for action, rule in RULES.items()}


_ROLE_NAMES = {
    Language.EN: {
        Role.ADMIN: "Administrator",
        Role.CASHIER: "Cashier",
        Role.KITCHEN: "Kitchen Staff",
    },
    Language.MM: {
        Role.ADMIN: "စီမံခန့်ခွဲသူ",
        Role.CASHIER: "ငွေကိုင်",
        Role.KITCHEN: "မီးဖိုမှူး",
    },
}


def role_display_name(role: Role, language: Language = Language.EN) -> str:
    return _ROLE_NAMES.get(Language(language), _ROLE_NAMES[Language.EN]).get(Role(role), Role(role).value)
