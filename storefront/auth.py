"""Authenticated principal resolution for request handlers and services."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import g

from storefront.errors import Forbidden, Unauthorized
from storefront.models import User, UserRole


@dataclass(frozen=True)
class Principal:
    id: int
    role: str = UserRole.USER.value
    name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(id=user.userID, role=(user.role or UserRole.USER.value).lower(), name=user.name or "")


def current_principal() -> Optional[Principal]:
    user = getattr(g, "current_user", None)
    if user is None:
        return None
    return Principal.from_user(user)


def require_principal() -> Principal:
    principal = current_principal()
    if principal is None:
        raise Unauthorized("Not authenticated")
    return principal


def require_admin() -> Principal:
    principal = require_principal()
    if not principal.is_admin:
        raise Forbidden("Admin access required")
    return principal
