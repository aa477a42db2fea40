"""Token verification and voter identity hashing.

Tokens are issued by the authentication service; this module only verifies
them. Voter identities are hashed before they touch storage so that stored
votes and dedup markers cannot be traced back to a user or session.
"""

import hashlib
import secrets
from typing import Any

from jose import JWTError, jwt

from core.config import settings

# Claims every accepted token must carry
TOKEN_ISSUER = "messagepulse-auth"
TOKEN_AUDIENCE = "messagepulse-client"


def decode_token(token: str, expected_type: str | None = "access") -> dict[str, Any] | None:
    """
    Verify a bearer token's signature, expiry, issuer and audience.

    Args:
        token: Encoded JWT from the Authorization header
        expected_type: Required ``type`` claim; None skips the check

    Returns:
        The claims, or None for any token that fails verification
    """
    try:
        claims = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=TOKEN_ISSUER,
            audience=TOKEN_AUDIENCE,
        )
    except JWTError:
        return None

    if expected_type is not None and claims.get("type") != expected_type:
        return None
    return claims


def generate_identity_hash(identity_key: str, message_id: str, identity_kind: str = "user") -> str:
    """
    Salted hash binding one voter identity to one message.

    The same (kind, identity, message) always yields the same hash, which is
    what dedup relies on. The kind is part of the material, so an anonymous
    session id that happens to equal a user id is still a different voter.
    Hashes for different messages are unrelated, and the SECRET_KEY salt keeps
    known session or user ids from being brute-forced back out of stored
    hashes.

    Args:
        identity_key: Authenticated user id or anonymous session id
        message_id: Message the vote is for
        identity_kind: ``user`` or ``anon``

    Returns:
        Hex SHA-256 digest
    """
    material = f"{identity_kind}:{identity_key}:{message_id}:{settings.SECRET_KEY}"
    return hashlib.sha256(material.encode()).hexdigest()


def generate_caller_hash(identity_key: str, identity_kind: str = "user") -> str:
    """Salted hash of a caller, independent of any message."""
    material = f"{identity_kind}:{identity_key}:{settings.SECRET_KEY}"
    return hashlib.sha256(material.encode()).hexdigest()


def generate_anon_session_id() -> str:
    return secrets.token_urlsafe(24)
