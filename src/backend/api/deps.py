"""
Shared dependencies for API endpoints.

Includes:
- Document store and service wiring
- Caller identity from an already-issued JWT (we never issue tokens)
- Anonymous session handling for voters without a token
- Admin authorization
"""

from dataclasses import dataclass
from typing import Annotated, Optional

import structlog
from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.config import settings
from core.security import decode_token, generate_anon_session_id
from db.session import get_document_store
from db.store import DocumentStore
from services.message_service import MessageService
from services.results_query_service import ResultsQueryService
from services.rollup_service import RollupService
from services.vote_aggregation_service import VoteAggregationEngine

logger = structlog.get_logger(__name__)

# Security schemes
security = HTTPBearer()
security_optional = HTTPBearer(auto_error=False)

ANON_SESSION_HEADER = "X-Anon-Session-Id"


@dataclass
class TokenUser:
    """Caller identity carried by a verified access token."""

    id: str
    is_admin: bool = False


@dataclass
class VoterIdentity:
    """Who is voting: an authenticated user, or else an anonymous session."""

    user_id: Optional[str] = None
    anon_session_id: Optional[str] = None


# =============================================================================
# Store and services
# =============================================================================


def get_store() -> DocumentStore:
    """FastAPI dependency returning the process-wide document store."""
    return get_document_store()


def get_vote_engine(store: DocumentStore = Depends(get_store)) -> VoteAggregationEngine:
    return VoteAggregationEngine(store)


def get_results_service(store: DocumentStore = Depends(get_store)) -> ResultsQueryService:
    return ResultsQueryService(store)


def get_rollup_service(store: DocumentStore = Depends(get_store)) -> RollupService:
    return RollupService(store)


def get_message_service(store: DocumentStore = Depends(get_store)) -> MessageService:
    return MessageService(store)


# =============================================================================
# User Authentication (JWT-based)
# =============================================================================


def _user_from_payload(payload: Optional[dict]) -> Optional[TokenUser]:
    if payload is None:
        return None
    user_id = payload.get("sub")
    if not user_id:
        return None
    return TokenUser(id=str(user_id), is_admin=bool(payload.get("is_admin", False)))


async def get_current_user_optional(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security_optional)],
) -> TokenUser | None:
    """
    Optionally extract the current user from the JWT token.

    Returns None if no token is provided or token is invalid.
    Does not raise exceptions - voting works for both authenticated and
    anonymous callers.
    """
    if credentials is None:
        return None

    user = _user_from_payload(decode_token(credentials.credentials))
    if user is None:
        logger.info("invalid_token_ignored")
    return user


async def get_current_admin(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> TokenUser:
    """
    Require a valid token carrying the ``is_admin`` claim.

    Raises:
        HTTPException: 401 for a missing/invalid token, 403 for non-admins
    """
    user = _user_from_payload(decode_token(credentials.credentials))

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_admin:
        logger.warning("admin_access_denied", user_id=user.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )

    return user


# =============================================================================
# Voter identity
# =============================================================================


async def get_voter_identity(
    request: Request,
    response: Response,
    user: Annotated[TokenUser | None, Depends(get_current_user_optional)],
) -> VoterIdentity:
    """
    Resolve the voting identity.

    Authenticated callers vote as their user id. Anonymous callers vote as
    their session id, read from the session cookie or header; a new session
    is issued (and set as a cookie) when neither is present.
    """
    if user is not None:
        return VoterIdentity(user_id=user.id)

    session_id = request.cookies.get(settings.ANON_SESSION_COOKIE) or request.headers.get(ANON_SESSION_HEADER)
    if not session_id:
        session_id = generate_anon_session_id()
        response.set_cookie(
            key=settings.ANON_SESSION_COOKIE,
            value=session_id,
            max_age=settings.ANON_SESSION_MAX_AGE_DAYS * 24 * 60 * 60,
            httponly=True,
            samesite="strict",
            secure=settings.APP_ENV == "production",
        )
        logger.info("anon_session_issued")

    return VoterIdentity(anon_session_id=session_id)
