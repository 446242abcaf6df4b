"""
Service-to-service authentication

Feature modules and presentation backends call the points API with a
shared bearer key from API_KEYS (comma separated). End users never hold
these keys; their identity arrives as the user_id path parameter.
"""
import logging
import os
import secrets
from typing import FrozenSet

from fastapi import HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from vitalpoints.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer()


def get_api_keys() -> FrozenSet[str]:
    """Keys accepted right now; re-read on every call so rotation needs no restart"""
    raw = os.getenv("API_KEYS", "")
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


def is_known_key(candidate: str, keys: FrozenSet[str]) -> bool:
    # Compare against every key so timing does not reveal which one matched
    matched = False
    for key in keys:
        matched |= secrets.compare_digest(candidate.encode(), key.encode())
    return matched


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials = Security(bearer_scheme)
) -> str:
    """
    FastAPI dependency guarding the points routes

    Raises:
        HTTPException: 503 when API_KEYS is empty
        AuthenticationError: For an unknown key (401 via the app error handler)
    """
    keys = get_api_keys()
    if not keys:
        logger.error("[AUTH] API_KEYS is empty; refusing every request")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="API authentication not configured"
        )

    presented = credentials.credentials
    if not is_known_key(presented, keys):
        raise AuthenticationError(
            f"Rejected unknown API key ({len(presented)} chars)",
            operation="verify_api_key"
        )

    return presented
