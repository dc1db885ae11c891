"""
Identity provider abstraction for Supabase Auth and in-memory testing.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

import httpx
from supabase import AuthError, AuthRetryableError, Client

from taskboard.errors import (
    CredentialRejected,
    IdentityProviderError,
    InvalidCredentials,
    SignupRejected,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Principal resolved from a bearer credential."""

    id: str
    email: Optional[str] = None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class AuthSession:
    """Result of a successful email/password exchange."""

    identity: Identity
    access_token: Optional[str]
    refresh_token: Optional[str]


class IdentityProvider(Protocol):
    """Operations the API needs from the identity provider."""

    def verify_token(self, token: str) -> Identity:
        ...

    def create_user(self, email: str, password: str) -> Identity:
        ...

    def sign_in(self, email: str, password: str) -> AuthSession:
        ...


class InMemoryIdentityProvider:
    """Test double for the identity provider."""

    def __init__(self):
        self.users: dict[str, dict] = {}
        self.tokens: dict[str, str] = {}

    def create_user(self, email: str, password: str) -> Identity:
        if email in self.users:
            raise SignupRejected(
                "A user with this email address has already been registered"
            )
        user_id = str(uuid.uuid4())
        self.users[email] = {"id": user_id, "password": password, "metadata": {}}
        return Identity(id=user_id, email=email)

    def sign_in(self, email: str, password: str) -> AuthSession:
        user = self.users.get(email)
        if not user or user["password"] != password:
            raise InvalidCredentials("Invalid login credentials")
        identity = Identity(
            id=user["id"], email=email, metadata=dict(user["metadata"])
        )
        return AuthSession(
            identity=identity,
            access_token=self.issue_token(user["id"]),
            refresh_token=secrets.token_urlsafe(16),
        )

    def issue_token(self, user_id: str) -> str:
        token = secrets.token_urlsafe(24)
        self.tokens[token] = user_id
        return token

    def revoke_token(self, token: str) -> None:
        self.tokens.pop(token, None)

    def verify_token(self, token: str) -> Identity:
        user_id = self.tokens.get(token)
        if user_id is None:
            raise CredentialRejected("Invalid or expired token")
        for email, user in self.users.items():
            if user["id"] == user_id:
                return Identity(
                    id=user_id, email=email, metadata=dict(user["metadata"])
                )
        raise CredentialRejected("User not found")


def _identity_from_user(user: Any) -> Identity:
    return Identity(
        id=user.id,
        email=getattr(user, "email", None),
        metadata=dict(getattr(user, "user_metadata", None) or {}),
    )


def _is_provider_fault(exc: AuthError) -> bool:
    """True when the provider failed to answer, as opposed to refusing."""
    if isinstance(exc, AuthRetryableError):
        return True
    status = getattr(exc, "status", None)
    return isinstance(status, int) and (status >= 500 or status == 429)


class SupabaseIdentityProvider:
    """
    Supabase Auth backed provider.

    Token introspection and account creation go through the service-role
    client. Password sign-in builds a fresh anon client per call, so the
    session it stores never outlives the request.

    Only 4xx answers count as refusals; a 5xx or 429 from the provider, or a
    transport error, is an ``IdentityProviderError``.
    """

    def __init__(
        self, admin_client: Client, public_client_factory: Callable[[], Client]
    ):
        self._admin = admin_client
        self._new_public_client = public_client_factory

    def verify_token(self, token: str) -> Identity:
        # Single round trip; no retries.
        try:
            response = self._admin.auth.get_user(token)
        except AuthError as exc:
            if _is_provider_fault(exc):
                logger.warning("Identity provider unavailable: %s", exc)
                raise IdentityProviderError(str(exc)) from exc
            raise CredentialRejected(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise IdentityProviderError(str(exc)) from exc

        user = response.user if response else None
        if user is None or not getattr(user, "id", None):
            raise CredentialRejected("No user for token")
        return _identity_from_user(user)

    def create_user(self, email: str, password: str) -> Identity:
        try:
            response = self._admin.auth.admin.create_user(
                {"email": email, "password": password, "email_confirm": True}
            )
        except AuthError as exc:
            if _is_provider_fault(exc):
                raise IdentityProviderError(str(exc)) from exc
            raise SignupRejected(exc.message) from exc
        except httpx.HTTPError as exc:
            raise IdentityProviderError(str(exc)) from exc

        if response is None or response.user is None:
            raise IdentityProviderError("Signup returned no user")
        return _identity_from_user(response.user)

    def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            response = self._new_public_client().auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except AuthError as exc:
            if _is_provider_fault(exc):
                raise IdentityProviderError(str(exc)) from exc
            raise InvalidCredentials(exc.message) from exc
        except httpx.HTTPError as exc:
            raise IdentityProviderError(str(exc)) from exc

        if response is None or response.user is None:
            raise InvalidCredentials("Invalid login credentials")
        session = response.session
        return AuthSession(
            identity=_identity_from_user(response.user),
            access_token=session.access_token if session else None,
            refresh_token=session.refresh_token if session else None,
        )
