"""Minimal auth dependency.

Stub implementation that reads the user ID from a bearer token or falls back
to the development user. Session authentication belongs to the web
application in front of this API.
"""

from typing import Annotated

from fastapi import Header, HTTPException, status

DEFAULT_USER_ID = 1


async def get_current_user_id(
    authorization: Annotated[str | None, Header()] = None,
) -> int:
    """Extract the user ID from the authorization header.

    Accepts "Bearer <user_id>"; without a header the development user is used.

    Raises:
        HTTPException: If authorization is invalid
    """
    if not authorization:
        return DEFAULT_USER_ID

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization[7:]  # Strip "Bearer "
    try:
        user_id = int(token)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token format (expected user ID)",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    if user_id < 1:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user ID",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id
