"""
Identity Tokens

The sign-in flow (OAuth provider glue) hands the client a bearer token that
carries the verified user's email, name and avatar. Tokens are Fernet
tokens from the cryptography library: encrypted, authenticated and
timestamped, so the server only needs the shared key to verify them.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from exceptions import AuthenticationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """A verified caller."""

    email: str
    name: Optional[str] = None
    image: Optional[str] = None


def generate_key() -> str:
    """Generate a new base64-encoded Fernet key for AUTH_SECRET_KEY."""
    return Fernet.generate_key().decode("utf-8")


def _get_fernet_instance(key: Optional[str]) -> Fernet:
    """
    Raises:
        AuthenticationError: If the key is missing or malformed
    """
    if not key:
        raise AuthenticationError("Authentication is not configured (AUTH_SECRET_KEY is not set)")

    try:
        return Fernet(key.encode("utf-8"))
    except Exception as e:
        logger.error("Failed to create Fernet instance: %s", e)
        raise AuthenticationError(f"Invalid authentication key format: {e}") from e


def issue_identity_token(identity: Identity, key: Optional[str]) -> str:
    """Encrypt an identity into a bearer token."""
    if not identity.email:
        raise AuthenticationError("Cannot issue a token without an email")

    payload = json.dumps({"email": identity.email, "name": identity.name, "image": identity.image})
    return _get_fernet_instance(key).encrypt(payload.encode("utf-8")).decode("utf-8")


def verify_identity_token(token: Optional[str], key: Optional[str], ttl_seconds: Optional[int] = None) -> Identity:
    """
    Decrypt and validate a bearer token.

    Args:
        token: The token from the Authorization header
        key: The shared Fernet key
        ttl_seconds: Maximum token age; None accepts any age

    Raises:
        AuthenticationError: Missing, expired, tampered or malformed token
    """
    if not token:
        raise AuthenticationError("Unauthorized")

    fernet = _get_fernet_instance(key)
    try:
        payload = fernet.decrypt(token.encode("utf-8"), ttl=ttl_seconds)
    except InvalidToken as e:
        logger.warning("Rejected identity token: invalid signature or expired")
        raise AuthenticationError("Unauthorized") from e

    try:
        data = json.loads(payload.decode("utf-8"))
        email = data["email"]
    except (ValueError, KeyError, TypeError) as e:
        raise AuthenticationError("Unauthorized") from e

    if not email:
        raise AuthenticationError("Unauthorized")
    return Identity(email=email, name=data.get("name"), image=data.get("image"))


def token_from_header(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
