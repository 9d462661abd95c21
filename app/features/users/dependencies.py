"""
FastAPI dependencies for authentication and authorization.
"""
from typing import Annotated, Awaitable, Callable, Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.auth import authenticate_token
from app.features.roles.models import Role
from app.features.roles.policy import is_admin_role


security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)

AuthLookup = Callable[[], Awaitable[Optional[User]]]


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Get the current authenticated user from JWT token.
    
    Usage:
        @router.get("/me")
        async def get_me(user: User = Depends(get_current_user)):
            return user
    """
    user = await authenticate_token(credentials.credentials, db)
    
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )
    
    return user


def get_auth_lookup(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(optional_security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> AuthLookup:
    """
    Deferred auth lookup for callers that must not fail on auth errors.
    
    The returned coroutine function yields the user, None when no credentials
    were sent, and raises on invalid tokens; the caller decides what a failure
    means.
    """
    async def lookup() -> Optional[User]:
        if credentials is None:
            return None
        user = await authenticate_token(credentials.credentials, db)
        if user is not None and not user.is_active:
            return None
        return user
    
    return lookup


async def get_current_admin_user(
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Require admin privileges: the system admin flag or an admin role.
    
    Usage:
        @router.delete("/users/{user_id}")
        async def delete_user(
            user_id: str,
            admin: User = Depends(get_current_admin_user)
        ):
            ...
    """
    if user.is_admin:
        return user
    
    role = await db.get(Role, user.role_id) if user.role_id else None
    if role is None or not is_admin_role(role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return user


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
