"""
Auth Service
============

Accounts for the dashboard app: register, log in, reset a forgotten password.

Passwords are hashed with werkzeug. Login tokens and reset tokens are
random strings handed to the user once; only their SHA-256 hash is stored.

Older accounts may still hold a plaintext password. Those log in once with
a plain comparison and get upgraded to a proper hash on the spot.
"""

import hashlib
import hmac
import logging
import secrets
from datetime import timedelta
from typing import Optional
from urllib.parse import quote

from werkzeug.security import check_password_hash, generate_password_hash

from watermonitor.models import AuthResponse, UserRecord
from watermonitor.services.email_service import EmailService
from watermonitor.services.store import TelemetryStore
from watermonitor.utils.clock import utc_now

logger = logging.getLogger(__name__)

HASH_PREFIXES = ("scrypt:", "pbkdf2:")


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def looks_hashed(stored_password: str) -> bool:
    return stored_password.startswith(HASH_PREFIXES)


class AuthService:
    """Account operations on top of the store."""

    def __init__(
        self,
        store: TelemetryStore,
        email_service: EmailService,
        app_base_url: str,
        reset_token_ttl_minutes: int = 30,
        session_token_ttl_days: int = 7,
        clock=utc_now
    ):
        self.store = store
        self.email_service = email_service
        self.app_base_url = app_base_url.rstrip("/")
        self.reset_token_ttl_minutes = reset_token_ttl_minutes
        self.session_token_ttl_days = session_token_ttl_days
        self.clock = clock

    def _issue_session(self, user: UserRecord) -> AuthResponse:
        token = secrets.token_urlsafe(32)
        now = self.clock()
        expires_at = now + timedelta(days=self.session_token_ttl_days)
        self.store.create_session_token(user.id, hash_token(token), expires_at, now=now)
        return AuthResponse(user=user.to_response(), token=token)

    def register(self, full_name: str, email: str, password: str) -> AuthResponse:
        """
        Create an account and log it in.

        Raises:
            DuplicateEmailError: If the email is taken
        """
        user = self.store.create_user(
            full_name=full_name,
            email=email.lower(),
            password_hash=generate_password_hash(password),
        )
        logger.info(f"Registered user {user.id}")
        return self._issue_session(user)

    def login(self, email: str, password: str) -> Optional[AuthResponse]:
        """Returns None for an unknown email or a wrong password."""
        user = self.store.get_user_by_email(email.lower())
        if user is None:
            return None

        stored = user.password_hash or ""
        if looks_hashed(stored):
            valid = check_password_hash(stored, password)
        else:
            valid = hmac.compare_digest(stored.encode("utf-8"), password.encode("utf-8"))
            if valid:
                self.store.update_password(user.id, generate_password_hash(password))
                logger.info(f"Upgraded plaintext password for user {user.id}")

        if not valid:
            return None
        return self._issue_session(user)

    def authenticate(self, token: str) -> Optional[UserRecord]:
        """The user behind a login token, or None if it is unknown or expired."""
        return self.store.get_user_by_session_token(hash_token(token), self.clock())

    def request_password_reset(self, email: str) -> bool:
        """
        Issue a reset token and email the link.

        Unknown emails are silently ignored so callers cannot discover which
        addresses have accounts.

        Returns:
            True if an email went out
        """
        user = self.store.get_user_by_email(email.lower())
        if user is None:
            return False

        now = self.clock()
        self.store.invalidate_reset_tokens(user.id, now)

        token = secrets.token_hex(32)
        expires_at = now + timedelta(minutes=self.reset_token_ttl_minutes)
        self.store.create_reset_token(user.id, hash_token(token), expires_at)

        reset_link = f"{self.app_base_url}/auth/reset-password?token={quote(token)}"
        return self.email_service.send_password_reset(
            to_email=user.email,
            full_name=user.full_name,
            reset_link=reset_link,
            ttl_minutes=self.reset_token_ttl_minutes,
        )

    def reset_password(self, token: str, new_password: str) -> bool:
        """
        Set a new password using a reset token.

        Returns:
            False if the token is unknown, already used or expired
        """
        record = self.store.get_reset_token(hash_token(token))
        now = self.clock()
        if record is None or record.used_at is not None or record.expires_at < now:
            return False

        self.store.update_password(record.user_id, generate_password_hash(new_password))
        self.store.mark_reset_token_used(record.id, now)
        logger.info(f"Password reset for user {record.user_id}")
        return True
