from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from storefront.config import Config
from storefront.errors import Conflict, NotFound, Unauthorized
from storefront.models import User, UserRole


class UserService:
    """Account registration, password login and profile edits."""

    def __init__(self, db_session: Session, config: type[Config] = Config) -> None:
        self.db = db_session
        self.config = config
        self.logger = logging.getLogger(__name__)

    def register(
        self,
        name: str,
        email: str,
        password: str,
        phone: Optional[str] = None,
        address: Optional[Dict[str, str]] = None,
    ) -> User:
        email = email.strip().lower()
        if self.db.query(User).filter_by(email=email).first():
            raise Conflict("User already exists with this email")

        user = User(
            name=name,
            email=email,
            passwordHash=generate_password_hash(password),
            phone=phone,
            address=address,
            role=UserRole.USER.value,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict("User already exists with this email") from exc
        self.logger.info("Registered user %s", user.userID)
        return user

    def authenticate(self, email: str, password: str) -> User:
        user = self.db.query(User).filter_by(email=email.strip().lower()).first()
        if user is None or not check_password_hash(user.passwordHash, password):
            raise Unauthorized("Invalid credentials")
        return user

    def get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def update_profile(self, user_id: int, data: Dict[str, Any]) -> User:
        user = self.get_user(user_id)
        for field in ("name", "phone", "address"):
            if field in data:
                setattr(user, field, data[field])
        self.db.commit()
        return user

    def ensure_super_admin(self) -> User:
        """Create the configured admin account if no user holds that email yet."""
        email = self.config.SUPER_ADMIN_EMAIL.strip().lower()
        user = self.db.query(User).filter_by(email=email).first()
        if user is not None:
            if not user.is_admin:
                user.role = UserRole.ADMIN.value
                self.db.commit()
                self.logger.warning("Promoted existing account %s to admin", email)
            return user

        user = User(
            name=self.config.SUPER_ADMIN_NAME,
            email=email,
            passwordHash=generate_password_hash(self.config.SUPER_ADMIN_PASSWORD),
            role=UserRole.ADMIN.value,
        )
        self.db.add(user)
        self.db.commit()
        self.logger.info("Bootstrapped super admin %s", email)
        return user
