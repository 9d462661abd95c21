"""
Field permission persistence and runtime lookups.

Write helpers flush but do not commit; the request-scoped session from
get_db commits once the route returns.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.features.users.models import User
from app.features.roles.models import Role
from app.features.roles.policy import is_admin_role
from app.features.objects.models import FieldDefinition
from app.features.objects.service import get_object_by_api_name, get_active_fields, get_field_ids
from app.features.field_security.models import FieldPermission
from app.features.field_security.matrix import FieldPermissionMatrix, build_permission_matrix
from app.features.field_security.resolver import (
    FilteredFields,
    allow_all,
    filter_fields_by_permissions,
)
from app.utils import get_logger


log = get_logger(__name__)


# =====================================================
# USER CONTEXT
# =====================================================

@dataclass(frozen=True)
class UserSecurityContext:
    user_id: str
    role_id: Optional[str]
    organization_id: Optional[str]
    is_admin: bool
    hierarchy_level: Optional[int] = None
    role_permissions: Optional[Mapping[str, Sequence[str]]] = None


async def get_user_security_context(db: AsyncSession, user: User) -> UserSecurityContext:
    """Role, organization and admin status of a user."""
    role = await db.get(Role, user.role_id) if user.role_id else None
    return UserSecurityContext(
        user_id=user.id,
        role_id=role.id if role is not None else None,
        organization_id=user.organization_id,
        is_admin=bool(user.is_admin) or is_admin_role(role),
        hierarchy_level=role.hierarchy_level if role is not None else None,
        role_permissions=role.permissions if role is not None else None,
    )


# =====================================================
# READ OPERATIONS
# =====================================================

async def get_field_permissions_for_role(db: AsyncSession, role_id: str) -> List[FieldPermission]:
    result = await db.execute(select(FieldPermission).where(FieldPermission.role_id == role_id))
    return list(result.scalars().all())


async def get_field_permissions_for_object_and_role(
    db: AsyncSession,
    object_definition_id: str,
    role_id: str
) -> List[FieldPermission]:
    """Permission rows of a role restricted to the active fields of one object."""
    active_field_ids = select(FieldDefinition.id).where(
        FieldDefinition.object_definition_id == object_definition_id,
        FieldDefinition.is_active == True,
    )
    result = await db.execute(
        select(FieldPermission).where(
            FieldPermission.role_id == role_id,
            FieldPermission.field_definition_id.in_(active_field_ids),
        )
    )
    return list(result.scalars().all())


async def get_org_role(db: AsyncSession, role_id: str, organization_id: Optional[str]) -> Role:
    role = await db.get(Role, role_id)
    if role is None or role.organization_id != organization_id:
        raise NotFoundError("Role not found")
    return role


async def get_field_permission_matrix(
    db: AsyncSession,
    object_api_name: str,
    role_id: str,
    organization_id: Optional[str]
) -> FieldPermissionMatrix:
    """Effective visible/editable flags of every active field for a role."""
    await get_org_role(db, role_id, organization_id)
    obj = await get_object_by_api_name(db, object_api_name, organization_id)
    if obj is None:
        raise NotFoundError("Object not found")
    
    fields = await get_active_fields(db, obj.id)
    permissions = await get_field_permissions_for_object_and_role(db, obj.id, role_id)
    return build_permission_matrix(object_api_name, role_id, fields, permissions)


# =====================================================
# WRITE OPERATIONS
# =====================================================

async def _upsert(
    db: AsyncSession,
    organization_id: str,
    role_id: str,
    field_definition_id: str,
    is_visible: bool,
    is_editable: bool
) -> FieldPermission:
    result = await db.execute(
        select(FieldPermission).where(
            FieldPermission.role_id == role_id,
            FieldPermission.field_definition_id == field_definition_id,
        )
    )
    permission = result.scalar_one_or_none()
    if permission is None:
        permission = FieldPermission(
            organization_id=organization_id,
            role_id=role_id,
            field_definition_id=field_definition_id,
        )
        db.add(permission)
    
    permission.is_visible = is_visible
    # An invisible field is never editable
    permission.is_editable = is_editable and is_visible
    return permission


async def _check_fields_exist(db: AsyncSession, field_ids: Iterable[str]) -> None:
    wanted = set(field_ids)
    if not wanted:
        return
    result = await db.execute(select(FieldDefinition.id).where(FieldDefinition.id.in_(wanted)))
    missing = wanted - set(result.scalars().all())
    if missing:
        raise NotFoundError(f"Field not found: {', '.join(sorted(missing))}")


async def set_field_permission(
    db: AsyncSession,
    organization_id: str,
    role_id: str,
    field_definition_id: str,
    is_visible: bool,
    is_editable: bool
) -> FieldPermission:
    """Create or update the permission row of one (role, field) pair."""
    await get_org_role(db, role_id, organization_id)
    await _check_fields_exist(db, [field_definition_id])
    
    permission = await _upsert(db, organization_id, role_id, field_definition_id, is_visible, is_editable)
    await db.flush()
    return permission


async def bulk_set_field_permissions(
    db: AsyncSession,
    organization_id: str,
    role_id: str,
    entries: Iterable[Mapping[str, object]]
) -> List[FieldPermission]:
    """
    Upsert many rows for one role.
    
    Each entry holds field_definition_id, is_visible and is_editable.
    """
    entries = list(entries)
    await get_org_role(db, role_id, organization_id)
    await _check_fields_exist(db, [e["field_definition_id"] for e in entries])
    
    permissions = [
        await _upsert(
            db,
            organization_id,
            role_id,
            e["field_definition_id"],
            bool(e["is_visible"]),
            bool(e["is_editable"]),
        )
        for e in entries
    ]
    await db.flush()
    return permissions


async def reset_field_permissions(db: AsyncSession, role_id: str, object_definition_id: str) -> int:
    """
    Delete every row of a role for one object's fields.
    
    The role falls back to default allow on those fields. Returns the number
    of rows removed.
    """
    field_ids = await get_field_ids(db, object_definition_id)
    if not field_ids:
        return 0
    
    result = await db.execute(
        delete(FieldPermission).where(
            FieldPermission.role_id == role_id,
            FieldPermission.field_definition_id.in_(field_ids),
        )
    )
    log.info("Reset %d field permissions of role %s", result.rowcount, role_id)
    return result.rowcount


async def copy_field_permissions(
    db: AsyncSession,
    organization_id: str,
    source_role_id: str,
    target_role_id: str,
    object_definition_id: Optional[str] = None
) -> int:
    """
    Copy a role's rows onto another role, optionally for one object only.
    
    Existing target rows for the same fields are overwritten. Returns the
    number of rows copied.
    """
    await get_org_role(db, source_role_id, organization_id)
    await get_org_role(db, target_role_id, organization_id)
    
    stmt = select(FieldPermission).where(FieldPermission.role_id == source_role_id)
    if object_definition_id is not None:
        stmt = stmt.where(
            FieldPermission.field_definition_id.in_(
                select(FieldDefinition.id).where(FieldDefinition.object_definition_id == object_definition_id)
            )
        )
    result = await db.execute(stmt)
    source_permissions = list(result.scalars().all())
    
    for p in source_permissions:
        await _upsert(db, organization_id, target_role_id, p.field_definition_id, p.is_visible, p.is_editable)
    await db.flush()
    
    log.info(
        "Copied %d field permissions from role %s to role %s",
        len(source_permissions), source_role_id, target_role_id
    )
    return len(source_permissions)


# =====================================================
# RUNTIME CHECKS
# =====================================================

async def get_accessible_fields_for_object(
    db: AsyncSession,
    user: User,
    object_api_name: str
) -> Optional[FilteredFields]:
    """
    Resolve the user's field access on an object.
    
    Returns None for an unknown object. Users without a role and admins see
    and edit every field.
    """
    obj = await get_object_by_api_name(db, object_api_name, user.organization_id)
    if obj is None:
        log.debug("Object %s not found for user %s", object_api_name, user.id)
        return None
    
    fields = await get_active_fields(db, obj.id)
    role = await db.get(Role, user.role_id) if user.role_id else None
    
    if role is None or user.is_admin or is_admin_role(role):
        return allow_all(fields)
    
    permissions = await get_field_permissions_for_object_and_role(db, obj.id, role.id)
    return filter_fields_by_permissions(fields, permissions, role.permissions)


async def can_edit_field(db: AsyncSession, user: User, field_definition_id: str) -> bool:
    role = await db.get(Role, user.role_id) if user.role_id else None
    if role is None or user.is_admin or is_admin_role(role):
        return True
    
    result = await db.execute(
        select(FieldPermission).where(
            FieldPermission.role_id == role.id,
            FieldPermission.field_definition_id == field_definition_id,
        )
    )
    permission = result.scalar_one_or_none()
    if permission is None:
        return True
    return permission.is_visible and permission.is_editable


def field_access_summary(result: FilteredFields) -> Dict[str, Dict[str, bool]]:
    """Access map keyed by api name, for API responses."""
    return {
        access.api_name: {"can_read": access.can_read, "can_edit": access.can_edit}
        for access in result.access_map.values()
    }
