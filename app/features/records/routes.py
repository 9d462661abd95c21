"""
Generic CRM record routes.

Record-level access comes from the sharing model, field-level access from
field permissions; both are enforced on every read and write.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.roles.dependencies import create_audit_log, has_permission
from app.features.sharing.service import check_record_access
from app.features.records.models import CrmRecord
from app.features.records.schemas import RecordCreate, RecordUpdate, RecordListResponse
from app.features.records.service import (
    apply_updates,
    get_record,
    list_records,
    load_field_security,
    permitted_updates,
    readable_payload,
)
router = APIRouter()


def _client_details(request: Request) -> dict:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


@router.post("/{object_api_name}", status_code=status.HTTP_201_CREATED)
async def create_record(
    object_api_name: str,
    record: RecordCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Create a record; the creator becomes its owner."""
    inputs = await load_field_security(db, current_user, object_api_name)
    if not has_permission(current_user, inputs.role, object_api_name, "create"):
        raise _forbidden(f"Permission denied: create on {object_api_name}")
    
    db_record = CrmRecord(
        organization_id=current_user.organization_id,
        object_api_name=object_api_name,
        owner_id=current_user.id,
        data=record.data,
        custom_fields=record.custom_fields,
    )
    db.add(db_record)
    await db.commit()
    await db.refresh(db_record)
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="create",
        resource_type="record",
        resource_id=db_record.id,
        organization_id=current_user.organization_id,
        details={"object": object_api_name},
        **_client_details(request)
    )
    return readable_payload(db_record, inputs, is_owner=True)


@router.get("/{object_api_name}", response_model=RecordListResponse)
async def list_object_records(
    object_api_name: str,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List the records of an object the current user can read."""
    inputs = await load_field_security(db, current_user, object_api_name)
    records = await list_records(db, current_user.organization_id, object_api_name, skip, limit)
    
    items = []
    for record in records:
        is_owner = record.owner_id == current_user.id
        if not (inputs.is_admin or is_owner) and not await check_record_access(
            db, current_user, object_api_name, record.id, record.owner_id, "read"
        ):
            continue
        items.append(readable_payload(record, inputs, is_owner))
    
    return RecordListResponse(items=items, total=len(items))


@router.get("/{object_api_name}/{record_id}")
async def read_record(
    object_api_name: str,
    record_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a record with the fields the current user may see."""
    inputs = await load_field_security(db, current_user, object_api_name)
    record = await get_record(db, current_user.organization_id, object_api_name, record_id)
    is_owner = record.owner_id == current_user.id
    
    if not (inputs.is_admin or is_owner) and not await check_record_access(
        db, current_user, object_api_name, record.id, record.owner_id, "read"
    ):
        raise _forbidden("You do not have access to this record")
    
    return readable_payload(record, inputs, is_owner)


@router.patch("/{object_api_name}/{record_id}")
async def update_record(
    object_api_name: str,
    record_id: str,
    record_update: RecordUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Update a record; fields the current user cannot edit are dropped."""
    inputs = await load_field_security(db, current_user, object_api_name)
    record = await get_record(db, current_user.organization_id, object_api_name, record_id)
    is_owner = record.owner_id == current_user.id
    
    if not (inputs.is_admin or is_owner) and not await check_record_access(
        db, current_user, object_api_name, record.id, record.owner_id, "write"
    ):
        raise _forbidden("You do not have edit access to this record")
    
    updates = dict(record_update.data)
    if record_update.custom_fields:
        updates["custom_fields"] = record_update.custom_fields
    allowed = permitted_updates(updates, inputs, is_owner, current_user.id)
    
    apply_updates(record, allowed)
    await db.commit()
    await db.refresh(record)
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="update",
        resource_type="record",
        resource_id=record.id,
        organization_id=current_user.organization_id,
        details={
            "object": object_api_name,
            "fields": sorted(k for k in allowed if k != "custom_fields")
            + sorted(allowed.get("custom_fields", {})),
        },
        **_client_details(request)
    )
    return readable_payload(record, inputs, is_owner)


@router.delete("/{object_api_name}/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_record(
    object_api_name: str,
    record_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a record (owner or admin only)."""
    inputs = await load_field_security(db, current_user, object_api_name)
    record = await get_record(db, current_user.organization_id, object_api_name, record_id)
    
    if not (inputs.is_admin or record.owner_id == current_user.id):
        raise _forbidden("Only the record owner or an admin can delete this record")
    
    await db.delete(record)
    await db.commit()
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="delete",
        resource_type="record",
        resource_id=record_id,
        organization_id=current_user.organization_id,
        details={"object": object_api_name},
        **_client_details(request)
    )
    return None
