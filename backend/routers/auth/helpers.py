from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from config import JWT_SECRET_KEY, JWT_ALGORITHM
from models import UserProfile
from typing import Optional
import jwt
import uuid
import logging

logger = logging.getLogger(__name__)


class AuthHelpers:
    """Helper functions for authentication operations"""

    def verify_token(self, token: str):
        """
        Verify an access token issued by the identity provider
        Returns user object with role from JWT
        """
        try:
            payload = jwt.decode(
                token,
                JWT_SECRET_KEY,
                algorithms=[JWT_ALGORITHM],
                options={
                    "verify_exp": True,
                    "verify_signature": True,
                    "verify_aud": False
                }
            )
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token expired")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token expired"
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid JWT token: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token"
            )

        try:
            user_id = uuid.UUID(str(payload.get("sub")))
        except ValueError:
            logger.warning(f"JWT subject is not a UUID: {payload.get('sub')}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token"
            )

        user_metadata = payload.get("user_metadata") or {}

        return type('User', (), {
            'id': user_id,
            'email': payload.get("email"),
            'role': user_metadata.get("role"),
            'payload': payload
        })()

    async def get_profile(self, db: AsyncSession, user_id: uuid.UUID) -> Optional[UserProfile]:
        """Profile owned by an identity provider subject"""
        result = await db.execute(
            select(UserProfile).where(UserProfile.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_profile_by_id(self, db: AsyncSession, profile_id: Optional[uuid.UUID]) -> Optional[UserProfile]:
        if profile_id is None:
            return None
        return await db.get(UserProfile, profile_id)


auth_helpers = AuthHelpers()
