"""
Session management: login, refresh and logout over a pluggable credential check.

Credentials are verified either against bcrypt hashes in the users table or by
an external identity provider. Either way the clinic issues its own JWT pair
and keeps the current refresh token on the user row; logout clears it.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx
from sqlalchemy.orm import Session as DBSession

from ..core.config import settings
from ..core.errors import AuthError
from ..core.security import (
    create_access_token,
    create_refresh_token,
    decode_access_token,
    verify_password,
)
from ..models.user import User

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid username or password"


class AccountDisabledError(AuthError):
    pass


@dataclass
class Session:
    user_id: str
    username: str
    role: str
    full_name: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class CredentialVerifier(ABC):
    """Decides whether a username/password pair belongs to a known user."""

    @abstractmethod
    def verify(self, db: DBSession, username: str, password: str) -> User:
        """Return the matching user or raise AuthError."""


class HashCredentialVerifier(CredentialVerifier):
    """Checks the password against the bcrypt hash stored on the user."""

    def verify(self, db, username, password):
        user = db.query(User).filter(User.username == username).first()
        if not user or not verify_password(password, user.hashed_password):
            raise AuthError(INVALID_CREDENTIALS)
        return user


class ExternalIdentityVerifier(CredentialVerifier):
    """
    Delegates the password check to an identity provider's /verify endpoint,
    then maps the confirmed username onto the local user row for role lookup.
    Mock mode (accept any known user) must be switched on explicitly; without
    it a missing provider URL rejects every login.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[int] = None,
        mock_mode: Optional[bool] = None,
    ):
        self.base_url = base_url if base_url is not None else settings.IDENTITY_PROVIDER_URL
        self.api_key = api_key if api_key is not None else settings.IDENTITY_PROVIDER_API_KEY
        self.timeout = timeout or settings.IDENTITY_PROVIDER_TIMEOUT
        self.mock_mode = settings.IDENTITY_PROVIDER_MOCK_MODE if mock_mode is None else mock_mode

    def verify(self, db, username, password):
        if self.mock_mode:
            logger.debug("Using mock identity provider")
            confirmed = username if password else None
        elif not self.base_url:
            logger.warning("External auth selected but IDENTITY_PROVIDER_URL is not set")
            raise AuthError("Identity provider is not configured")
        else:
            confirmed = self._remote_verify(username, password)

        if not confirmed:
            raise AuthError(INVALID_CREDENTIALS)
        user = db.query(User).filter(User.username == confirmed).first()
        if not user:
            raise AuthError(INVALID_CREDENTIALS)
        return user

    def _remote_verify(self, username: str, password: str) -> Optional[str]:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(
                    f"{self.base_url}/verify",
                    json={"username": username, "password": password},
                    headers=headers,
                )
                if resp.status_code in (401, 403):
                    return None
                resp.raise_for_status()
                payload = resp.json()
        except httpx.HTTPError as exc:
            logger.warning("Identity provider unavailable: %s", exc)
            raise AuthError("Identity provider unavailable") from exc

        if not payload.get("valid"):
            return None
        return payload.get("username", username)


def get_verifier(backend: Optional[str] = None) -> CredentialVerifier:
    backend = backend or settings.AUTH_BACKEND
    if backend == "hash":
        return HashCredentialVerifier()
    if backend == "external":
        return ExternalIdentityVerifier()
    raise ValueError(f"Unknown AUTH_BACKEND: {backend!r}")


class AuthService:
    """Issues and revokes sessions for one database session."""

    def __init__(self, db: DBSession, verifier: Optional[CredentialVerifier] = None):
        self.db = db
        self.verifier = verifier or get_verifier()

    def login(self, username: str, password: str) -> Session:
        user = self.verifier.verify(self.db, username, password)
        if not user.is_active:
            raise AccountDisabledError("Account is disabled")

        session = self._issue(user)
        user.last_login = datetime.utcnow()
        self.db.commit()
        logger.info("User %s logged in (role=%s)", user.username, user.role)
        return session

    def refresh(self, refresh_token: str) -> Session:
        payload = decode_access_token(refresh_token)
        if payload is None or payload.get("type") != "refresh":
            raise AuthError("Invalid refresh token")

        user = self.db.query(User).filter(User.id == payload.get("sub")).first()
        if not user or user.refresh_token != refresh_token or not user.is_active:
            raise AuthError("Refresh token revoked or invalid")

        session = self._issue(user)
        self.db.commit()
        return session

    def logout(self, user_id: str) -> None:
        """Forget the stored refresh token; outstanding access tokens simply expire."""
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            return
        user.refresh_token = None
        self.db.commit()
        logger.info("User %s logged out", user.username)

    def _issue(self, user: User) -> Session:
        access_token = create_access_token({"sub": user.id, "role": user.role})
        refresh_token = create_refresh_token({"sub": user.id})
        user.refresh_token = refresh_token
        return Session(
            user_id=user.id,
            username=user.username,
            role=user.role,
            full_name=user.display_name,
            access_token=access_token,
            refresh_token=refresh_token,
        )
