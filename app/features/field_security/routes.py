"""
Field-level security API routes.

Reads are open to any authenticated user of the organization; every write is
admin-only and audited.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.dependencies import get_current_user, get_current_admin_user
from app.features.users.models import User
from app.features.roles.dependencies import create_audit_log
from app.features.objects.schemas import FieldDefinitionResponse
from app.features.objects.service import get_object_by_api_name
from app.features.field_security.matrix import FieldPermissionMatrix
from app.features.field_security.schemas import (
    FieldPermissionUpsert,
    BulkFieldPermissionUpdate,
    CopyFieldPermissionsRequest,
    FieldPermissionResponse,
    CountResponse,
    AccessibleFieldsResponse,
    CanEditFieldResponse,
    UserSecurityContextResponse,
)
from app.features.field_security.service import (
    get_user_security_context,
    get_field_permissions_for_role,
    get_field_permission_matrix,
    get_org_role,
    set_field_permission,
    bulk_set_field_permissions,
    reset_field_permissions,
    copy_field_permissions,
    get_accessible_fields_for_object,
    can_edit_field,
    field_access_summary,
)


router = APIRouter()


def _client_details(request: Request) -> dict:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


async def _get_object_or_404(db: AsyncSession, api_name: str, organization_id):
    obj = await get_object_by_api_name(db, api_name, organization_id)
    if obj is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Object not found")
    return obj


@router.get("/me", response_model=UserSecurityContextResponse)
async def get_my_security_context(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Role, organization and admin status of the current user."""
    return await get_user_security_context(db, current_user)


@router.get("/roles/{role_id}/permissions", response_model=List[FieldPermissionResponse])
async def list_role_field_permissions(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Explicit field permission rows of a role."""
    await get_org_role(db, role_id, current_user.organization_id)
    return await get_field_permissions_for_role(db, role_id)


@router.get("/objects/{object_api_name}/roles/{role_id}/matrix", response_model=FieldPermissionMatrix)
async def get_matrix(
    object_api_name: str,
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Permission matrix of one role on one object."""
    return await get_field_permission_matrix(db, object_api_name, role_id, current_user.organization_id)


@router.put("/permissions", response_model=FieldPermissionResponse)
async def upsert_field_permission(
    permission: FieldPermissionUpsert,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Set one field permission (admin only)."""
    row = await set_field_permission(
        db,
        organization_id=current_user.organization_id,
        role_id=permission.role_id,
        field_definition_id=permission.field_definition_id,
        is_visible=permission.is_visible,
        is_editable=permission.is_editable,
    )
    await db.commit()
    await db.refresh(row)
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="update",
        resource_type="field_permission",
        resource_id=row.id,
        organization_id=current_user.organization_id,
        details=permission.model_dump(),
        **_client_details(request)
    )
    return row


@router.put("/objects/{object_api_name}/roles/{role_id}", response_model=CountResponse)
async def bulk_update_field_permissions(
    object_api_name: str,
    role_id: str,
    update: BulkFieldPermissionUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Set many field permissions of a role on one object (admin only)."""
    obj = await _get_object_or_404(db, object_api_name, current_user.organization_id)
    rows = await bulk_set_field_permissions(
        db,
        organization_id=current_user.organization_id,
        role_id=role_id,
        entries=[p.model_dump() for p in update.permissions],
    )
    await db.commit()
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="bulk_update",
        resource_type="field_permission",
        resource_id=role_id,
        organization_id=current_user.organization_id,
        details={"object_definition_id": obj.id, "count": len(rows)},
        **_client_details(request)
    )
    return CountResponse(count=len(rows))


@router.delete("/objects/{object_api_name}/roles/{role_id}", response_model=CountResponse)
async def reset_role_field_permissions(
    object_api_name: str,
    role_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Remove a role's explicit rows on one object, restoring default allow (admin only)."""
    obj = await _get_object_or_404(db, object_api_name, current_user.organization_id)
    await get_org_role(db, role_id, current_user.organization_id)
    
    removed = await reset_field_permissions(db, role_id, obj.id)
    await db.commit()
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="reset",
        resource_type="field_permission",
        resource_id=role_id,
        organization_id=current_user.organization_id,
        details={"object_definition_id": obj.id, "removed": removed},
        **_client_details(request)
    )
    return CountResponse(count=removed)


@router.post("/roles/{role_id}/copy", response_model=CountResponse)
async def copy_role_field_permissions(
    role_id: str,
    copy_request: CopyFieldPermissionsRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Copy a role's field permissions onto another role (admin only)."""
    object_definition_id = None
    if copy_request.object_api_name:
        obj = await _get_object_or_404(db, copy_request.object_api_name, current_user.organization_id)
        object_definition_id = obj.id
    
    copied = await copy_field_permissions(
        db,
        organization_id=current_user.organization_id,
        source_role_id=role_id,
        target_role_id=copy_request.target_role_id,
        object_definition_id=object_definition_id,
    )
    await db.commit()
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="copy",
        resource_type="field_permission",
        resource_id=copy_request.target_role_id,
        organization_id=current_user.organization_id,
        details={"source_role_id": role_id, "object_definition_id": object_definition_id, "copied": copied},
        **_client_details(request)
    )
    return CountResponse(count=copied)


@router.get("/objects/{object_api_name}/accessible", response_model=AccessibleFieldsResponse)
async def get_accessible_fields(
    object_api_name: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Fields of an object the current user can read and edit."""
    result = await get_accessible_fields_for_object(db, current_user, object_api_name)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Object not found")
    
    return AccessibleFieldsResponse(
        object_api_name=object_api_name,
        visible_fields=[FieldDefinitionResponse.model_validate(f) for f in result.visible_fields],
        editable_field_ids=sorted(result.editable_field_ids),
        access=field_access_summary(result),
    )


@router.get("/fields/{field_definition_id}/can-edit", response_model=CanEditFieldResponse)
async def check_can_edit_field(
    field_definition_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Whether the current user may edit one field."""
    return CanEditFieldResponse(
        field_definition_id=field_definition_id,
        can_edit=await can_edit_field(db, current_user, field_definition_id),
    )
