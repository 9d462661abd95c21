"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.schemas import UserResponse, UserPublic, UserUpdate, UserRoleUpdate
from app.features.users.dependencies import get_current_user, get_current_admin_user
from app.features.roles.models import Role
from app.features.roles.dependencies import create_audit_log


router = APIRouter(tags=["users"])


async def _get_org_user(db: AsyncSession, user_id: str, organization_id: str | None) -> User:
    result = await db.execute(
        select(User).where(User.id == user_id, User.organization_id == organization_id)
    )
    user = result.scalar_one_or_none()
    
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)]
):
    """Get current authenticated user's profile."""
    return user


@router.patch("/me", response_model=UserResponse)
async def update_current_user_profile(
    update_data: UserUpdate,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update current user's profile."""
    if update_data.name is not None:
        user.name = update_data.name
    
    await db.commit()
    await db.refresh(user)
    return user


@router.get("/{user_id}", response_model=UserPublic)
async def get_user_by_id(
    user_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get public profile of a user in the caller's organization."""
    return await _get_org_user(db, user_id, current_user.organization_id)


@router.get("/", response_model=list[UserPublic])
async def list_users(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: int = 0,
    limit: int = 50
):
    """List active users of the caller's organization (public info only)."""
    result = await db.execute(
        select(User)
        .where(User.is_active == True, User.organization_id == current_user.organization_id)
        .order_by(User.name)
        .offset(skip)
        .limit(limit)
    )
    return result.scalars().all()


# Admin-only routes
@router.patch("/{user_id}/role", response_model=UserResponse)
async def assign_user_role(
    user_id: str,
    role_update: UserRoleUpdate,
    request: Request,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Assign a role to a user, or clear it (admin only)."""
    user = await _get_org_user(db, user_id, admin.organization_id)
    
    if role_update.role_id is not None:
        role = await db.get(Role, role_update.role_id)
        if role is None or role.organization_id != admin.organization_id:
            raise HTTPException(status_code=404, detail="Role not found")
    
    previous_role_id = user.role_id
    user.role_id = role_update.role_id
    await db.commit()
    await db.refresh(user)
    
    await create_audit_log(
        db=db,
        user_id=admin.id,
        action="assign",
        resource_type="user_role",
        resource_id=user.id,
        organization_id=admin.organization_id,
        details={"previous_role_id": previous_role_id, "role_id": role_update.role_id},
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )
    return user


@router.delete("/{user_id}")
async def deactivate_user(
    user_id: str,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Deactivate a user account (admin only)."""
    user = await _get_org_user(db, user_id, admin.organization_id)
    
    # Prevent self-deactivation
    if user.id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot deactivate your own account"
        )
    
    user.is_active = False
    await db.commit()
    
    return {"message": "User deactivated successfully"}
