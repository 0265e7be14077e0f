"""
services/access.py
─────────────────────────────────────────────────────────────────────
بررسی نقش‌محور (RBAC) در لایه سرویس
"""

from __future__ import annotations

from ..errors import UnauthorizedError
from ..models import CustomUser, Role

ROLE_FLAGS = {
    Role.COACH:  "is_coach",
    Role.PLAYER: "is_player",
    Role.ADMIN:  "is_platform_admin",
}


def has_role(user: CustomUser, role: str) -> bool:
    if user is None or not user.is_active:
        return False
    if role == Role.ADMIN and user.is_superuser:
        return True
    return bool(getattr(user, ROLE_FLAGS[Role(role)], False))


def require_role(user: CustomUser, role: str) -> None:
    """UnauthorizedError اگر کاربر نقش خواسته‌شده را نداشته باشد."""
    if not has_role(user, role):
        raise UnauthorizedError(f"این عملیات فقط برای نقش «{Role(role).label}» مجاز است.")
