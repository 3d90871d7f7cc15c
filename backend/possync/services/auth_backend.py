# Overview: Credential/session backend on the relational store.

"""
SQL-backed credential backend.

The engine only depends on the AuthBackend interface (sign in, sign out,
fetch a live session, refresh). SqlAuthBackend implements it on top of the
same database as the remote store.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Access and refresh tokens are 32 random bytes each (secrets.token_hex)
- Only SHA-256 hashes of tokens are stored
- Sessions carry an absolute expiry and are revocable
"""

from __future__ import annotations

import hashlib
import re
import secrets
from datetime import timedelta

import bcrypt

from ..errors import RemoteRejected
from ..extensions import db
from ..models import AuthSession, AuthUser
from ..time_utils import to_utc_z, utcnow
from ..validation import ValidationError
from .remote_store import run_remote


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one letter and one digit
    """
    if not password or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")
    if not re.search(r'[A-Za-z]', password):
        raise ValidationError("Password must contain at least one letter")
    if not re.search(r'\d', password):
        raise ValidationError("Password must contain at least one digit")


def hash_password(password: str, *, rounds: int = 12) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class AuthBackend:
    """Interface the SessionManager talks to."""

    def sign_in_with_password(self, email: str, password: str) -> dict:
        raise NotImplementedError

    def sign_out(self, access_token: str | None) -> None:
        raise NotImplementedError

    def get_session(self, access_token: str | None) -> dict | None:
        raise NotImplementedError

    def refresh_session(self, refresh_token: str | None) -> dict:
        raise NotImplementedError


class SqlAuthBackend(AuthBackend):
    def __init__(self, session=None, *, ttl: timedelta = timedelta(hours=24), bcrypt_rounds: int = 12):
        self._session = session
        self.ttl = ttl
        self.bcrypt_rounds = bcrypt_rounds

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def create_user(self, email: str, password: str) -> dict:
        email = (email or "").strip().lower()
        if not email:
            raise ValidationError("email is required")
        password_hash = hash_password(password, rounds=self.bcrypt_rounds)

        def _op():
            if self.session.query(AuthUser).filter_by(email=email).first():
                raise ValidationError("A user with that email already exists")
            user = AuthUser(email=email, password_hash=password_hash)
            self.session.add(user)
            self.session.flush()
            return user.to_dict()

        return run_remote(self.session, "user creation", _op, write=True)

    def _issue(self, user: AuthUser) -> dict:
        access_token = generate_token()
        refresh_token = generate_token()
        now = utcnow()
        record = AuthSession(
            user_id=user.id,
            access_token_hash=hash_token(access_token),
            refresh_token_hash=hash_token(refresh_token),
            created_at=now,
            expires_at=now + self.ttl,
        )
        self.session.add(record)
        self.session.flush()
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_at": to_utc_z(record.expires_at),
            "user": {"id": user.id, "email": user.email},
        }

    def sign_in_with_password(self, email: str, password: str) -> dict:
        email = (email or "").strip().lower()

        def _op():
            user = self.session.query(AuthUser).filter_by(email=email).first()
            if not user or not user.is_active or not verify_password(password or "", user.password_hash):
                return None
            return self._issue(user)

        issued = run_remote(self.session, "sign-in", _op, write=True)
        if issued is None:
            raise RemoteRejected("Invalid login credentials")
        return issued

    def sign_out(self, access_token: str | None) -> None:
        if not access_token:
            return

        def _op():
            record = (
                self.session.query(AuthSession)
                .filter_by(access_token_hash=hash_token(access_token))
                .first()
            )
            if record and record.revoked_at is None:
                record.revoked_at = utcnow()

        run_remote(self.session, "sign-out", _op, write=True)

    def get_session(self, access_token: str | None) -> dict | None:
        """Live session for ``access_token``, or None if unknown/expired/revoked."""
        if not access_token:
            return None

        def _op():
            record = (
                self.session.query(AuthSession)
                .filter_by(access_token_hash=hash_token(access_token))
                .first()
            )
            if record is None or not record.is_valid():
                return None
            return {
                "access_token": access_token,
                "token_type": "bearer",
                "expires_at": to_utc_z(record.expires_at),
                "user": {"id": record.user.id, "email": record.user.email},
            }

        return run_remote(self.session, "session fetch", _op)

    def refresh_session(self, refresh_token: str | None) -> dict:
        """Rotate tokens: the old session is revoked and a new one issued."""
        if not refresh_token:
            raise RemoteRejected("Refresh token is required")

        def _op():
            record = (
                self.session.query(AuthSession)
                .filter_by(refresh_token_hash=hash_token(refresh_token))
                .first()
            )
            if record is None or not record.is_valid() or not record.user.is_active:
                return None
            record.revoked_at = utcnow()
            return self._issue(record.user)

        issued = run_remote(self.session, "session refresh", _op, write=True)
        if issued is None:
            raise RemoteRejected("Invalid refresh token")
        return issued
