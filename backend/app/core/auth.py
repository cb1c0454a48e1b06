"""Lightweight authentication helpers shared across CLI and backend."""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import secrets
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from ..db.models import DbSession, DbUser, Role
from ..services.points import utcnow
from .config import settings
from .database import Database
from .errors import InvalidRequest

logger = logging.getLogger(__name__)


@dataclass
class User:
    """Represents an authenticated user profile."""

    id: str
    email: str
    first_name: str
    last_name: str
    department: str | None
    role: str
    is_active: bool = True
    password_hash: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class UserStore:
    """Database-backed user store; balances are owned by the points ledger."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # Public API
    def register_local_user(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        department: str | None = None,
        role: Role = Role.EMPLOYEE,
    ) -> User:
        email = email.strip().lower()
        if not email:
            raise InvalidRequest("Email is required")
        _validate_email(email)
        if not password:
            raise InvalidRequest("Password is required")
        _validate_password_strength(password)
        if not first_name.strip() or not last_name.strip():
            raise InvalidRequest("First and last name are required")
        if self.get_user_by_email(email):
            raise InvalidRequest("User already exists")

        now = utcnow()
        row = DbUser(
            id=uuid.uuid4().hex,
            email=email,
            password_hash=_hash_password(password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            department=(department or "").strip() or None,
            role=Role(role).value,
            points_balance=settings.starting_points_balance,
            monthly_points_allocation=settings.default_monthly_allocation,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.db.session() as session:
                session.add(row)
        except IntegrityError as exc:
            raise InvalidRequest("User already exists") from exc

        logger.info("User registered", extra={"data": {"user_id": row.id, "role": row.role}})
        return _user_from_db(row)

    def authenticate_local(self, email: str, password: str) -> Optional[User]:
        email = email.strip().lower()
        user = self.get_user_by_email(email)

        # Always verify against some hash so unknown emails cost the same time.
        target_hash = user.password_hash if (user and user.password_hash) else _DUMMY_HASH
        is_valid = _verify_password(password, target_hash)

        if user and user.is_active and user.password_hash and is_valid:
            return user
        return None

    def get_user(self, user_id: str) -> Optional[User]:
        with self.db.session() as session:
            user = session.get(DbUser, user_id)
            if not user:
                return None
            return _user_from_db(user)

    def get_user_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        with self.db.session() as session:
            user = session.scalar(select(DbUser).where(DbUser.email == email).limit(1))
            if not user:
                return None
            return _user_from_db(user)


class SessionStore:
    """Persistent session tokens for bearer authentication."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def issue_session(self, user: User, user_agent: str | None = None) -> str:
        token = secrets.token_urlsafe(32)
        now = int(time.time())
        with self.db.session() as session:
            session.merge(
                DbSession(
                    token_hash=_hash_token(token),
                    user_id=user.id,
                    created_at=now,
                    expires_at=now + settings.session_ttl_seconds,
                    user_agent=user_agent,
                )
            )
        return token

    def authenticate(self, token: str) -> Optional[User]:
        if not token:
            return None
        now = int(time.time())
        with self.db.session() as session:
            stmt = (
                select(DbUser)
                .join(DbSession, DbSession.user_id == DbUser.id)
                .where(
                    DbSession.token_hash == _hash_token(token),
                    DbSession.expires_at > now,
                    DbUser.is_active.is_(True),
                )
                .limit(1)
            )
            user = session.scalar(stmt)
            if not user:
                return None
            return _user_from_db(user)

    def revoke(self, token: str) -> None:
        with self.db.session() as session:
            session.execute(delete(DbSession).where(DbSession.token_hash == _hash_token(token)))


def _user_from_db(user: DbUser) -> User:
    return User(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        department=user.department,
        role=user.role,
        is_active=user.is_active,
        password_hash=user.password_hash,
    )


def _hash_password(password: str, salt: str | None = None) -> str:
    salt_bytes = bytes.fromhex(salt) if salt else secrets.token_bytes(16)
    params = {
        "n": 2 ** 14,
        "r": 8,
        "p": 1,
        "dklen": 64,
    }
    digest = hashlib.scrypt(password.encode("utf-8"), salt=salt_bytes, **params)
    return "scrypt${n}${r}${p}${salt}${digest}".format(
        salt=salt_bytes.hex(),
        digest=digest.hex(),
        **params,
    )


_DUMMY_HASH = _hash_password("dummy_password")


def _hash_token(token: str) -> str:
    return hashlib.sha256(f"session:{token}".encode("utf-8")).hexdigest()


def _verify_password(password: str, encoded: str) -> bool:
    if not encoded.startswith("scrypt$"):
        return False
    try:
        _, n, r, p, salt_hex, stored = encoded.split("$", 5)
        expected = bytes.fromhex(stored)
        derived = hashlib.scrypt(
            password.encode("utf-8"),
            salt=bytes.fromhex(salt_hex),
            n=int(n),
            r=int(r),
            p=int(p),
            dklen=len(expected),
        )
        return hmac.compare_digest(derived, expected)
    except Exception as e:
        logger.warning(f"Scrypt verification failed: {e}")
        return False


def _validate_password_strength(password: str) -> None:
    """Enforce a minimum password policy for interactive accounts."""
    if len(password) < 8:
        raise InvalidRequest("Password must be at least 8 characters long")
    has_letter = any(ch.isalpha() for ch in password)
    has_digit = any(ch.isdigit() for ch in password)
    if not (has_letter and has_digit):
        raise InvalidRequest("Password must include both letters and numbers")


def _validate_email(email: str) -> None:
    pattern = r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$"
    if not re.match(pattern, email):
        raise InvalidRequest("Invalid email format")
