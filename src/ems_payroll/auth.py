"""Session token validation shared by the API and the relay.

Tokens are HS256 JWTs signed with the shared secret. A usable token names
the user (``id`` or ``sub``) and carries ``status == "approved"``. Admin
rights come from ``role == "admin"`` or a truthy ``isAdmin`` claim.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

ALGORITHM = "HS256"


class AuthenticationError(Exception):
    """Raised when a session token is missing, invalid, or not approved."""


@dataclass(frozen=True)
class SessionUser:
    """Identity decoded from a session token."""

    id: str
    email: str | None
    role: str
    status: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def decode_session_token(token: str | None, secret: str) -> SessionUser:
    """Decode and check a session token.

    Raises:
        AuthenticationError: If the token is missing, fails verification, or
            does not carry an approved, identified user.
    """
    if not token:
        raise AuthenticationError("Missing session token")

    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.PyJWTError as e:
        raise AuthenticationError(f"Invalid session token: {e}") from e

    user_id = claims.get("id") or claims.get("sub")
    if not user_id:
        raise AuthenticationError("Session token does not identify a user")

    status = claims.get("status", "pending")
    if status != "approved":
        raise AuthenticationError(f"User {user_id} is not approved (status '{status}')")

    role = claims.get("role")
    if role is None:
        role = "admin" if claims.get("isAdmin") else "employee"

    return SessionUser(
        id=str(user_id),
        email=claims.get("email"),
        role=role,
        status=status,
    )


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer ...`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def issue_session_token(
    secret: str,
    user_id: str,
    *,
    email: str | None = None,
    role: str = "employee",
    status: str = "approved",
    expires_in: timedelta = timedelta(hours=12),
    extra: dict[str, Any] | None = None,
) -> str:
    """Sign a session token (used by tooling and tests)."""
    now = datetime.now(timezone.utc)
    claims: dict[str, Any] = {
        "id": user_id,
        "email": email,
        "role": role,
        "isAdmin": role == "admin",
        "status": status,
        "iat": now,
        "exp": now + expires_in,
    }
    if extra:
        claims.update(extra)
    return jwt.encode(claims, secret, algorithm=ALGORITHM)
