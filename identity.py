"""
Identity session provider.

Wraps password hashing (passlib) and signed session tokens (itsdangerous)
behind one ``IdentityProvider`` object. Routes receive the provider through
FastAPI's dependency injection (``get_identity_provider``) instead of
reaching for module globals, and anything interested in sign-in/out can
subscribe with ``on_session_change``.

The current user is an ``Identity``: the ``User`` row plus its
``UserProfile``. ``is_admin`` comes from the profile role.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Iterable, List, Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer
from passlib.context import CryptContext
from sqlmodel import Session, select

from config import settings
from crud.base import store_call
from errors import AuthError
from models import User, UserProfile, UserRole

logger = logging.getLogger(__name__)

SIGNED_UP = "signed_up"
SIGNED_IN = "signed_in"
SIGNED_OUT = "signed_out"


@dataclass
class Identity:
    user: User
    profile: UserProfile

    @property
    def id(self) -> int:
        return self.user.id

    @property
    def email(self) -> str:
        return self.user.email

    @property
    def name(self) -> str:
        return self.profile.name

    @property
    def role(self) -> UserRole:
        return UserRole(self.profile.role)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


SessionListener = Callable[[str, Identity], None]


class IdentityProvider:
    def __init__(
        self,
        secret_key: str,
        max_age_seconds: int = 60 * 60 * 8,
        admin_emails: Iterable[str] = (),
    ):
        self.serializer = URLSafeTimedSerializer(secret_key, salt="session")
        self.max_age_seconds = max_age_seconds
        self.admin_emails = {email.strip().lower() for email in admin_emails}
        self.pwd_context = CryptContext(
            schemes=["pbkdf2_sha256"],
            deprecated="auto",
        )
        self._listeners: List[SessionListener] = []

    # ------------------------------------------------------------------
    # subscriptions
    # ------------------------------------------------------------------

    def on_session_change(self, callback: SessionListener) -> Callable[[], None]:
        """Register ``callback(event, identity)``; returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, event: str, identity: Identity) -> None:
        for listener in list(self._listeners):
            listener(event, identity)

    # ------------------------------------------------------------------
    # passwords and tokens
    # ------------------------------------------------------------------

    def hash_password(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return self.pwd_context.verify(plain_password, hashed_password)

    def issue_token(self, identity: Identity) -> str:
        return self.serializer.dumps({"user_id": identity.id})

    def read_token(self, token: str) -> Optional[int]:
        """User id stored in a valid token, or None if invalid/expired."""
        try:
            data = self.serializer.loads(token, max_age=self.max_age_seconds)
        except BadSignature:
            return None
        if not isinstance(data, dict) or not isinstance(data.get("user_id"), int):
            return None
        return data["user_id"]

    # ------------------------------------------------------------------
    # sessions
    # ------------------------------------------------------------------

    def sign_up(self, session: Session, email: str, password: str, name: str) -> Identity:
        """
        Create the login and its profile in one transaction.
        Emails listed in ADMIN_EMAILS get the admin role.
        """
        email = email.strip().lower()
        existing = session.exec(select(User).where(User.email == email)).first()
        if existing:
            raise AuthError("Email already registered")

        role = UserRole.ADMIN if email in self.admin_emails else UserRole.USER
        with store_call(session, "create account"):
            user = User(email=email, password_hash=self.hash_password(password))
            session.add(user)
            session.flush()
            profile = UserProfile(id=user.id, email=email, name=name.strip(), role=role)
            session.add(profile)
            session.commit()
            session.refresh(user)
            session.refresh(profile)

        identity = Identity(user=user, profile=profile)
        self._notify(SIGNED_UP, identity)
        return identity

    def sign_in(self, session: Session, email: str, password: str) -> Identity:
        email = email.strip().lower()
        user = session.exec(select(User).where(User.email == email)).first()
        if user is None or not self.verify_password(password, user.password_hash):
            raise AuthError("Invalid email or password")

        identity = self._load(session, user)
        self._notify(SIGNED_IN, identity)
        return identity

    def sign_out(self, identity: Identity) -> None:
        self._notify(SIGNED_OUT, identity)

    def get_session(self, session: Session, token: Optional[str]) -> Optional[Identity]:
        if not token:
            return None
        user_id = self.read_token(token)
        if user_id is None:
            return None
        user = session.get(User, user_id)
        if user is None:
            return None
        return self._load(session, user)

    def _load(self, session: Session, user: User) -> Identity:
        profile = session.get(UserProfile, user.id)
        if profile is None:
            # a login without a profile row gets a minimal one
            with store_call(session, "create profile"):
                profile = UserProfile(id=user.id, email=user.email, name=user.email.split("@")[0])
                session.add(profile)
                session.commit()
                session.refresh(profile)
        return Identity(user=user, profile=profile)


@lru_cache
def get_identity_provider() -> IdentityProvider:
    return IdentityProvider(
        settings.SECRET_KEY,
        max_age_seconds=settings.SESSION_MAX_AGE,
        admin_emails=settings.ADMIN_EMAILS,
    )


def log_session_change(event: str, identity: Identity) -> None:
    logger.info("Session %s: user %s", event, identity.id)
