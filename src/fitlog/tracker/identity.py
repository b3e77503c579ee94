"""Identity providers: who is signed in, and how they got there.

``LocalIdentityProvider`` keeps accounts in the ``users`` table of the SQL
gateway database and remembers the signed-in user in a JSON session file.
Email delivery is out of scope: confirmation and magic-link tokens are
returned in the ``AuthResult`` for the caller to hand to the user.
"""

import hashlib
import hmac
import json
import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

from .exceptions import AuthenticationError
from .gateway import SqlGateway
from .models import WeightUnit
from .schema import Profile, UserRecord

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
PBKDF2_ITERATIONS = 200_000

AuthListener = Callable[[Optional["AuthUser"]], None]


@dataclass
class AuthUser:
    id: str
    email: str

    def to_dict(self):
        return {'id': self.id, 'email': self.email}


@dataclass
class AuthResult:
    """Outcome of an authentication call; ``error`` is a user-facing message."""
    user: Optional[AuthUser] = None
    error: Optional[str] = None
    needs_confirmation: bool = False
    token: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self, email: str = None) -> "AuthResult":
        if self.error is not None:
            raise AuthenticationError(self.error, email=email)
        return self


class IdentityProvider(ABC):
    """Issues the signed-in identity and notifies listeners when it changes."""

    def __init__(self):
        self._listeners: List[AuthListener] = []

    @abstractmethod
    def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        """Sign in with email and password."""

    @abstractmethod
    def sign_up(self, email: str, password: str) -> AuthResult:
        """Register an account; the account must be confirmed before sign-in."""

    @abstractmethod
    def sign_in_with_magic_link(self, email: str) -> AuthResult:
        """Issue a one-time sign-in link for an existing account."""

    @abstractmethod
    def verify_magic_link(self, email: str, token: str) -> AuthResult:
        """Complete a magic-link sign-in."""

    @abstractmethod
    def sign_out(self) -> None:
        """Forget the current session."""

    @abstractmethod
    def current_user(self) -> Optional[AuthUser]:
        """The signed-in user, if any."""

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """Call ``listener(user_or_none)`` on sign-in and sign-out; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, user: Optional[AuthUser]):
        for listener in list(self._listeners):
            listener(user)


def hash_password(password: str, salt: str) -> str:
    digest = hashlib.pbkdf2_hmac('sha256', password.encode('utf-8'), bytes.fromhex(salt), PBKDF2_ITERATIONS)
    return digest.hex()


def _valid_email(email: str) -> bool:
    local, _, domain = email.partition('@')
    return bool(local) and '.' in domain


class LocalIdentityProvider(IdentityProvider):
    """Identity provider backed by the gateway database and a session file."""

    def __init__(self, gateway: SqlGateway, session_path: Optional[Union[str, Path]] = None):
        super().__init__()
        self.gateway = gateway
        self.session_path = Path(session_path).expanduser() if session_path else None
        self._user: Optional[AuthUser] = None
        self._restore_session()

    # ========================================================================================
    # SIGN-UP AND CONFIRMATION
    # ========================================================================================

    def sign_up(self, email: str, password: str) -> AuthResult:
        email = email.strip().lower()
        if not _valid_email(email):
            return AuthResult(error="Please enter a valid email address")
        if len(password) < MIN_PASSWORD_LENGTH:
            return AuthResult(error=f"Password should be at least {MIN_PASSWORD_LENGTH} characters")

        with self.gateway.get_session() as session:
            if session.query(UserRecord).filter_by(email=email).first() is not None:
                return AuthResult(error="User already registered")

            salt = secrets.token_hex(16)
            token = secrets.token_urlsafe(24)
            record = UserRecord(
                email=email,
                password_hash=hash_password(password, salt),
                password_salt=salt,
                confirmed=False,
                confirmation_token=token,
            )
            session.add(record)
            session.flush()
            session.add(Profile(id=record.id, email=email, weight_unit=WeightUnit.LB.value))
            user = AuthUser(id=record.id, email=email)

        logger.info(f"Registered {email}, awaiting confirmation")
        return AuthResult(user=user, needs_confirmation=True, token=token)

    def confirm(self, token: str) -> AuthResult:
        """Confirm an account with its confirmation token and sign it in."""
        with self.gateway.get_session() as session:
            record = session.query(UserRecord).filter_by(confirmation_token=token).first() if token else None
            if record is None:
                return AuthResult(error="Invalid or expired confirmation link")
            record.confirmed = True
            record.confirmation_token = None
            user = AuthUser(id=record.id, email=record.email)

        self._sign_in(user)
        return AuthResult(user=user)

    # ========================================================================================
    # SIGN-IN AND SIGN-OUT
    # ========================================================================================

    def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        email = email.strip().lower()
        with self.gateway.get_session() as session:
            record = session.query(UserRecord).filter_by(email=email).first()
            if record is None or not hmac.compare_digest(
                    record.password_hash, hash_password(password, record.password_salt)):
                return AuthResult(error="Invalid login credentials")
            if not record.confirmed:
                return AuthResult(error="Email not confirmed")
            user = AuthUser(id=record.id, email=record.email)

        self._sign_in(user)
        return AuthResult(user=user)

    def sign_in_with_magic_link(self, email: str) -> AuthResult:
        email = email.strip().lower()
        with self.gateway.get_session() as session:
            record = session.query(UserRecord).filter_by(email=email).first()
            if record is None:
                return AuthResult(error="No account found for this email")
            token = secrets.token_urlsafe(24)
            record.magic_link_token = token

        logger.info(f"Issued magic link for {email}")
        return AuthResult(token=token)

    def verify_magic_link(self, email: str, token: str) -> AuthResult:
        email = email.strip().lower()
        with self.gateway.get_session() as session:
            record = session.query(UserRecord).filter_by(email=email).first()
            if record is None or not record.magic_link_token or not hmac.compare_digest(
                    record.magic_link_token, token):
                return AuthResult(error="Invalid or expired link")
            record.magic_link_token = None
            # Following an emailed link proves ownership of the address.
            record.confirmed = True
            record.confirmation_token = None
            user = AuthUser(id=record.id, email=record.email)

        self._sign_in(user)
        return AuthResult(user=user)

    def sign_out(self) -> None:
        if self._user is None:
            return
        logger.info(f"Signing out {self._user.email}")
        self._user = None
        if self.session_path and self.session_path.exists():
            self.session_path.unlink()
        self._emit(None)

    def current_user(self) -> Optional[AuthUser]:
        return self._user

    def require_user(self) -> AuthUser:
        """The signed-in user, raising AuthenticationError when there is none."""
        if self._user is None:
            raise AuthenticationError("Not signed in")
        return self._user

    # ========================================================================================
    # SESSION PERSISTENCE
    # ========================================================================================

    def _sign_in(self, user: AuthUser):
        self._user = user
        self._save_session()
        logger.info(f"Signed in as {user.email}")
        self._emit(user)

    def _save_session(self):
        if not self.session_path or self._user is None:
            return
        self.session_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.session_path, 'w') as f:
            json.dump(self._user.to_dict(), f, indent=2)

    def _restore_session(self):
        if not self.session_path or not self.session_path.exists():
            return
        try:
            with open(self.session_path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable session file {self.session_path}: {e}")
            return
        if not isinstance(data, dict) or not data.get('id'):
            logger.warning(f"Ignoring malformed session file {self.session_path}")
            return

        with self.gateway.get_session() as session:
            record = session.get(UserRecord, data['id'])
            if record is None or not record.confirmed:
                logger.warning("Session refers to an unknown account, ignoring it")
                return
            self._user = AuthUser(id=record.id, email=record.email)
        logger.debug(f"Restored session for {self._user.email}")
