"""
Authentication gate for protected routes.

Every protected handler depends on ``require_identity``. The gate extracts
the bearer credential, asks the identity provider to verify it and binds the
resulting identity to ``request.state.identity`` for the rest of the request.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from taskboard.dependencies import get_identity_provider
from taskboard.errors import CredentialRejected, IdentityProviderError
from taskboard.identity import Identity, IdentityProvider

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


class AuthenticationDenied(Exception):
    """The request carries no usable credential."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header value."""
    if authorization is None:
        raise AuthenticationDenied("No token provided")
    if not authorization.lower().startswith(BEARER_PREFIX):
        raise AuthenticationDenied("Missing or invalid Authorization header")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthenticationDenied("Token missing")
    return token


def authenticate(
    authorization: Optional[str], provider: IdentityProvider
) -> Identity:
    """
    Resolve an Authorization header value to an identity.

    Raises ``AuthenticationDenied`` for anything the caller can fix by sending
    a different credential, and ``IdentityProviderError`` when the gate itself
    could not reach a verdict.
    """
    token = extract_bearer_token(authorization)
    try:
        return provider.verify_token(token)
    except CredentialRejected as exc:
        logger.info("Bearer token rejected: %s", exc)
        raise AuthenticationDenied("Invalid or expired token") from exc
    except IdentityProviderError:
        raise
    except Exception as exc:
        raise IdentityProviderError(f"Unexpected verification failure: {exc}") from exc


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_identity(
    request: Request,
    provider: IdentityProvider = Depends(get_identity_provider),
) -> Identity:
    """FastAPI dependency guarding a route behind a verified bearer token."""
    try:
        identity = authenticate(request.headers.get("authorization"), provider)
    except AuthenticationDenied as exc:
        raise _unauthorized(exc.reason) from exc
    except IdentityProviderError as exc:
        logger.exception("Authentication check failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication check failed",
        ) from exc

    request.state.identity = identity
    return identity
