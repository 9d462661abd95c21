"""
Object and field definition routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.dependencies import get_current_user, get_current_admin_user
from app.features.roles.dependencies import create_audit_log
from app.features.objects.models import ObjectDefinition, FieldDefinition
from app.features.objects.schemas import (
    ObjectDefinitionCreate,
    ObjectDefinitionResponse,
    ObjectWithFieldCount,
    ObjectWithFields,
    FieldDefinitionCreate,
    FieldDefinitionResponse,
)
from app.features.objects.service import (
    get_object_by_api_name,
    get_active_fields,
    list_objects_with_field_counts,
)


router = APIRouter()


@router.get("", response_model=list[ObjectWithFieldCount])
async def list_objects(
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List CRM objects available to the organization with their field counts."""
    rows = await list_objects_with_field_counts(db, user.organization_id)
    return [
        ObjectWithFieldCount(
            **ObjectDefinitionResponse.model_validate(obj).model_dump(),
            field_count=count,
        )
        for obj, count in rows
    ]


@router.get("/{api_name}", response_model=ObjectWithFields)
async def get_object(
    api_name: str,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get an object definition with its active fields."""
    obj = await get_object_by_api_name(db, api_name, user.organization_id)
    if obj is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Object not found")
    
    fields = await get_active_fields(db, obj.id)
    return ObjectWithFields(
        **ObjectDefinitionResponse.model_validate(obj).model_dump(),
        fields=[FieldDefinitionResponse.model_validate(f) for f in fields],
    )


@router.post("", response_model=ObjectDefinitionResponse, status_code=status.HTTP_201_CREATED)
async def create_object(
    object_data: ObjectDefinitionCreate,
    request: Request,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a custom object for the admin's organization (admin only)."""
    result = await db.execute(
        select(ObjectDefinition).where(
            ObjectDefinition.api_name == object_data.api_name,
            ObjectDefinition.organization_id == admin.organization_id,
        )
    )
    if result.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Object with this api name already exists"
        )
    
    obj = ObjectDefinition(
        organization_id=admin.organization_id,
        is_standard=False,
        **object_data.model_dump(),
    )
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    
    await create_audit_log(
        db=db,
        user_id=admin.id,
        action="create",
        resource_type="object_definition",
        resource_id=obj.id,
        organization_id=admin.organization_id,
        details=object_data.model_dump(),
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )
    return obj


@router.post("/{api_name}/fields", response_model=FieldDefinitionResponse, status_code=status.HTTP_201_CREATED)
async def create_field(
    api_name: str,
    field_data: FieldDefinitionCreate,
    request: Request,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Add a field to an object (admin only)."""
    obj = await get_object_by_api_name(db, api_name, admin.organization_id)
    if obj is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Object not found")
    
    field = FieldDefinition(
        organization_id=admin.organization_id,
        object_definition_id=obj.id,
        is_custom_field=field_data.column_name is None,
        is_standard=False,
        **field_data.model_dump(),
    )
    try:
        db.add(field)
        await db.commit()
        await db.refresh(field)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Field with this api name already exists"
        )
    
    await create_audit_log(
        db=db,
        user_id=admin.id,
        action="create",
        resource_type="field_definition",
        resource_id=field.id,
        organization_id=admin.organization_id,
        details={"object": api_name, **field_data.model_dump()},
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )
    return field
