from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from config import get_db
from utils.response_helpers import user_profile_to_dict, safe_model_validate
from .schemas import UserResponse
from .helpers import auth_helpers
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

security = HTTPBearer(auto_error=False)


async def _resolve_current_user(request: Request, token: str, db: AsyncSession) -> dict:
    token_user = auth_helpers.verify_token(token)
    profile = await auth_helpers.get_profile(db, token_user.id)

    current_user = {
        "user_id": token_user.id,
        "email": token_user.email,
        "role": None,
        "profile_id": profile.id if profile else None
    }

    # Try to get role from JWT first
    if token_user.role:
        current_user["role"] = token_user.role
    elif profile:
        current_user["role"] = profile.role
        logger.debug(f"User {token_user.id} role from database: {profile.role}")
    else:
        current_user["role"] = "user"  # Default fallback
        logger.warning(f"No user profile found for {token_user.id}, using default role: user")

    request.state.current_user = current_user
    return current_user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
):
    """Get current user from JWT token"""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return await _resolve_current_user(request, credentials.credentials, db)


async def get_optional_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
):
    """Like get_current_user, but anonymous callers get None instead of a 401"""
    if credentials is None:
        request.state.current_user = None
        return None
    return await _resolve_current_user(request, credentials.credentials, db)


@router.get("/me", response_model=UserResponse)
async def get_me(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get the caller's marketplace profile
    """
    profile = await auth_helpers.get_profile_by_id(db, current_user["profile_id"])
    if not profile:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    user_data = user_profile_to_dict(profile)
    user_data["role"] = current_user["role"]
    return safe_model_validate(UserResponse, user_data)
