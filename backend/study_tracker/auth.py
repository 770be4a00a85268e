"""Authentication utilities for Supabase JWT validation."""

from __future__ import annotations

import os
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from supabase import create_client, Client
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_db, get_user_profile
from .models import CurrentUser, UserRole

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Supabase configuration
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")

# For development: use a default user ID when auth is not provided
DEFAULT_DEV_USER = "dev-user-local"

# Initialize Supabase client (if configured)
supabase_client: Optional[Client] = None

if SUPABASE_URL and SUPABASE_SERVICE_KEY:
    try:
        supabase_client = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
        logger.info("Supabase client initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize Supabase client: {e}")
        supabase_client = None
else:
    logger.warning(
        "SUPABASE_URL or SUPABASE_SERVICE_KEY not set. "
        "Authentication and media storage will not work. Set these in your .env file."
    )

# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Validate Supabase JWT token and return user ID.

    Raises:
        HTTPException: If token is missing, invalid, or expired
    """
    if not supabase_client:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service not configured. Set SUPABASE_URL and SUPABASE_SERVICE_KEY."
        )

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_response = supabase_client.auth.get_user(credentials.credentials)

        if not user_response or not user_response.user or not user_response.user.id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication token",
                headers={"WWW-Authenticate": "Bearer"},
            )

        user_id = user_response.user.id
        logger.debug(f"Authenticated user: {user_id}")
        return user_id

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Token validation error: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token validation failed: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_request_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    User ID for the request.

    Without a configured auth service (local development) every request
    runs as DEFAULT_DEV_USER. Once Supabase is configured, a valid token
    is required.
    """
    if not supabase_client:
        return DEFAULT_DEV_USER
    return await get_current_user(credentials)


async def get_caller(
    user_id: str = Depends(get_request_user),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """The caller with the role from their profile; unknown users are students."""
    profile = await get_user_profile(db, user_id)
    role = profile.user_type if profile else UserRole.STUDENT.value
    return CurrentUser(id=user_id, role=role)


async def require_advisor(user: CurrentUser = Depends(get_caller)) -> CurrentUser:
    if not user.is_advisor:
        logger.warning(f"Refused advisor-only request from {user.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Advisor access required",
        )
    return user


def ensure_owner_or_advisor(user: CurrentUser, owner_id: Optional[str]) -> None:
    """Students may only touch their own records; advisors may touch any."""
    if user.is_advisor or owner_id == user.id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Not allowed to access another user's records",
    )
