"""
Role management API routes.

Provides endpoints for managing roles and reading the security audit log.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy import select, func, update, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from app.core.database.engine import get_db
from app.features.users.dependencies import get_current_user, get_current_admin_user
from app.features.users.models import User
from app.features.roles.models import Role, AuditLog
from app.features.field_security.models import FieldPermission
from app.features.roles.schemas import (
    RoleCreate,
    RoleUpdate,
    RoleResponse,
    AuditLogResponse,
    AuditLogListResponse,
)
from app.features.roles.dependencies import create_audit_log, require_permission
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


def _require_organization(user: User) -> str:
    if not user.organization_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User not associated with an organization"
        )
    return user.organization_id


async def _get_org_role(db: AsyncSession, role_id: str, organization_id: Optional[str]) -> Role:
    stmt = select(Role).where(Role.id == role_id, Role.organization_id == organization_id)
    result = await db.execute(stmt)
    role = result.scalars().first()
    
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return role


# ============================================================================
# Audit Log Routes
# ============================================================================

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    skip: int = 0,
    limit: int = 50,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)  # Admin only
):
    """List the organization's audit logs with optional filtering."""
    stmt = select(AuditLog).where(AuditLog.organization_id == current_user.organization_id)
    
    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)
    
    # Get total count
    count_stmt = select(func.count()).select_from(stmt.subquery())
    total_result = await db.execute(count_stmt)
    total = total_result.scalar() or 0
    
    # Get paginated results
    stmt = stmt.order_by(AuditLog.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    logs = result.scalars().all()
    
    pages = (total + limit - 1) // limit if limit > 0 else 0
    page = (skip // limit) + 1 if limit > 0 else 1
    
    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(entry) for entry in logs],
        total=total,
        page=page,
        page_size=limit,
        pages=pages
    )


# ============================================================================
# Role Routes
# ============================================================================

@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("roles", "create"))
):
    """Create a new role in the caller's organization (requires roles:create)."""
    organization_id = _require_organization(current_user)
    
    try:
        db_role = Role(organization_id=organization_id, **role.model_dump())
        db.add(db_role)
        await db.commit()
        await db.refresh(db_role)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Role with this name already exists"
        )
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="create",
        resource_type="role",
        resource_id=db_role.id,
        organization_id=organization_id,
        details=role.model_dump(),
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )
    
    return db_role


@router.get("", response_model=List[RoleResponse])
async def list_roles(
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List the roles of the current user's organization."""
    stmt = (
        select(Role)
        .where(Role.organization_id == current_user.organization_id)
        .order_by(Role.name)
        .offset(skip)
        .limit(limit)
    )
    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a specific role."""
    return await _get_org_role(db, role_id, current_user.organization_id)


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    role_update: RoleUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("roles", "update"))
):
    """Update a role (requires roles:update)."""
    db_role = await _get_org_role(db, role_id, current_user.organization_id)
    
    update_data = role_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(db_role, key, value)
    
    await db.commit()
    await db.refresh(db_role)
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="update",
        resource_type="role",
        resource_id=role_id,
        organization_id=current_user.organization_id,
        details=update_data,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )
    
    return db_role


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("roles", "delete"))
):
    """Delete a role (requires roles:delete)."""
    db_role = await _get_org_role(db, role_id, current_user.organization_id)
    
    role_name = db_role.name
    # Users fall back to "no role" (default allow); explicit field rows go with the role
    await db.execute(update(User).where(User.role_id == role_id).values(role_id=None))
    await db.execute(delete(FieldPermission).where(FieldPermission.role_id == role_id))
    await db.delete(db_role)
    await db.commit()
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="delete",
        resource_type="role",
        resource_id=role_id,
        organization_id=current_user.organization_id,
        details={"name": role_name},
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )
    
    return None
