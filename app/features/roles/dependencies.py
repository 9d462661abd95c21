"""
Role permission checking utilities and dependencies.

Implements:
- Permission checking against a role's wildcard permission map
- FastAPI dependencies for route protection
- Audit logging helpers
"""
from typing import Dict, Any, Optional
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.roles.models import Role, AuditLog
from app.features.roles.policy import is_admin_role, role_allows
from app.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Permission Checking Functions
# ============================================================================

async def get_user_role(db: AsyncSession, user: User) -> Optional[Role]:
    """Load the user's role, or None when the user has none."""
    if not user.role_id:
        return None
    return await db.get(Role, user.role_id)


def has_permission(
    user: User,
    role: Optional[Role],
    resource: str,
    action: str
) -> bool:
    """
    Check if user may perform an action on a resource.
    
    System admins and admin roles have all permissions; everyone else needs a
    matching entry in their role's permission map.
    """
    if user.is_admin or is_admin_role(role):
        log.debug("User %s is admin - granted %s on %s", user.id, action, resource)
        return True
    
    if role is None:
        log.debug("User %s has no role - denied %s on %s", user.id, action, resource)
        return False
    
    allowed = role_allows(role.permissions, resource, action)
    log.debug(
        "User %s %s %s on %s via role %s",
        user.id, "granted" if allowed else "denied", action, resource, role.id
    )
    return allowed


# ============================================================================
# FastAPI Dependencies
# ============================================================================

def require_permission(resource: str, action: str):
    """
    FastAPI dependency to require a specific permission.
    
    Usage:
        @router.post("/roles")
        async def create_role(
            user: User = Depends(require_permission("roles", "create"))
        ):
            pass
    
    Raises:
        HTTPException: 403 if user doesn't have permission
    """
    async def permission_dependency(
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user)
    ) -> User:
        role = await get_user_role(db, current_user)
        if not has_permission(current_user, role, resource, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {action} on {resource}"
            )
        return current_user
    
    return permission_dependency


# ============================================================================
# Audit Logging
# ============================================================================

async def create_audit_log(
    db: AsyncSession,
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None
) -> AuditLog:
    """
    Create an audit log entry.
    
    Args:
        db: Database session
        user_id: User performing the action
        action: Action performed (e.g., "create", "update", "delete", "reset")
        resource_type: Type of resource (e.g., "role", "field_permission", "sharing_rule")
        resource_id: ID of the resource
        organization_id: Organization context
        details: Additional details
        ip_address: Client IP address
        user_agent: Client user agent
    """
    audit_log = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        organization_id=organization_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent
    )
    
    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)
    
    log.info(
        "Audit: user=%s action=%s resource=%s:%s org=%s",
        user_id, action, resource_type, resource_id, organization_id
    )
    
    return audit_log
