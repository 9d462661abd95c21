"""
Sharing API routes.

Sharing rules and object sharing models are admin-managed; manual shares may
be created by the record owner or an admin. Every write is audited.
"""
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.dependencies import get_current_user, get_current_admin_user
from app.features.users.models import User
from app.features.roles.dependencies import create_audit_log, get_user_role
from app.features.roles.policy import is_admin_role
from app.features.objects.schemas import ObjectDefinitionResponse
from app.features.records.models import CrmRecord
from app.features.sharing.evaluator import (
    get_access_source_description,
    get_sharing_model_description,
    get_sharing_model_display_name,
    satisfies_access,
)
from app.features.sharing.schemas import (
    SharingRuleCreate,
    SharingRuleUpdate,
    SharingRuleToggle,
    SharingRuleResponse,
    ManualShareCreate,
    ManualShareUpdate,
    ManualShareResponse,
    ObjectSharingSettings,
    ObjectSharingModelUpdate,
    RecordAccessResponse,
    RecordSharingInfo,
    ShareTargets,
)
from app.features.sharing import service


router = APIRouter()


def _client_details(request: Request) -> dict:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


async def _is_admin(db: AsyncSession, user: User) -> bool:
    if user.is_admin:
        return True
    return is_admin_role(await get_user_role(db, user))


async def _record_owner(db: AsyncSession, object_api_name: str, record_id: str, owner_id: Optional[str]) -> Optional[str]:
    # A stored record's owner wins over what the caller claims
    record = await db.get(CrmRecord, record_id)
    if record is not None and record.object_api_name == object_api_name:
        return record.owner_id
    return owner_id


async def _require_owner_or_admin(db: AsyncSession, user: User, owner_id: Optional[str]) -> None:
    if owner_id == user.id or await _is_admin(db, user):
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Only the record owner or an admin can manage sharing"
    )


# ============================================================================
# Sharing Rules
# ============================================================================

@router.get("/rules", response_model=List[SharingRuleResponse])
async def list_sharing_rules(
    object_api_name: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List sharing rules of the organization, optionally for one object."""
    return await service.list_sharing_rules(db, current_user.organization_id, object_api_name)


@router.get("/rules/{rule_id}", response_model=SharingRuleResponse)
async def get_sharing_rule(
    rule_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a sharing rule."""
    return await service.get_sharing_rule(db, current_user.organization_id, rule_id)


@router.post("/rules", response_model=SharingRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_sharing_rule(
    rule: SharingRuleCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Create a sharing rule (admin only)."""
    values = rule.model_dump(exclude={"object_api_name"})
    db_rule = await service.create_sharing_rule(
        db, current_user.organization_id, current_user.id, rule.object_api_name, values
    )
    await db.commit()
    await db.refresh(db_rule)
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="create",
        resource_type="sharing_rule",
        resource_id=db_rule.id,
        organization_id=current_user.organization_id,
        details=rule.model_dump(),
        **_client_details(request)
    )
    return db_rule


@router.patch("/rules/{rule_id}", response_model=SharingRuleResponse)
async def update_sharing_rule(
    rule_id: str,
    rule_update: SharingRuleUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Update a sharing rule (admin only)."""
    updates = rule_update.model_dump(exclude_unset=True)
    db_rule = await service.update_sharing_rule(db, current_user.organization_id, rule_id, updates)
    await db.commit()
    await db.refresh(db_rule)
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="update",
        resource_type="sharing_rule",
        resource_id=rule_id,
        organization_id=current_user.organization_id,
        details=updates,
        **_client_details(request)
    )
    return db_rule


@router.post("/rules/{rule_id}/toggle", response_model=SharingRuleResponse)
async def toggle_sharing_rule(
    rule_id: str,
    toggle: SharingRuleToggle,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Activate or deactivate a sharing rule (admin only)."""
    db_rule = await service.toggle_sharing_rule_active(
        db, current_user.organization_id, rule_id, toggle.is_active
    )
    await db.commit()
    await db.refresh(db_rule)
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="activate" if toggle.is_active else "deactivate",
        resource_type="sharing_rule",
        resource_id=rule_id,
        organization_id=current_user.organization_id,
        **_client_details(request)
    )
    return db_rule


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_sharing_rule(
    rule_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Delete a sharing rule (admin only)."""
    await service.delete_sharing_rule(db, current_user.organization_id, rule_id)
    await db.commit()
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="delete",
        resource_type="sharing_rule",
        resource_id=rule_id,
        organization_id=current_user.organization_id,
        **_client_details(request)
    )
    return None


# ============================================================================
# Object Sharing Settings
# ============================================================================

def _settings_response(obj, rules) -> ObjectSharingSettings:
    return ObjectSharingSettings(
        object=ObjectDefinitionResponse.model_validate(obj),
        sharing_model=obj.sharing_model,
        sharing_model_name=get_sharing_model_display_name(obj.sharing_model),
        sharing_model_description=get_sharing_model_description(obj.sharing_model),
        sharing_rules=[SharingRuleResponse.model_validate(rule) for rule in rules],
    )


@router.get("/objects/{object_api_name}/settings", response_model=ObjectSharingSettings)
async def get_object_sharing_settings(
    object_api_name: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Organization-wide default and active sharing rules of an object."""
    obj, rules = await service.get_object_sharing_settings(db, current_user.organization_id, object_api_name)
    return _settings_response(obj, rules)


@router.put("/objects/{object_api_name}/settings", response_model=ObjectSharingSettings)
async def update_object_sharing_settings(
    object_api_name: str,
    settings: ObjectSharingModelUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Change an object's organization-wide default (admin only)."""
    obj = await service.update_object_sharing_model(
        db, current_user.organization_id, object_api_name, settings.sharing_model
    )
    await db.commit()
    await db.refresh(obj)
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="update",
        resource_type="object_sharing_model",
        resource_id=object_api_name,
        organization_id=current_user.organization_id,
        details=settings.model_dump(),
        **_client_details(request)
    )
    
    obj, rules = await service.get_object_sharing_settings(db, current_user.organization_id, object_api_name)
    return _settings_response(obj, rules)


@router.get("/targets", response_model=ShareTargets)
async def get_share_targets(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Users and roles a record or rule can be shared with."""
    users, roles = await service.get_share_targets(db, current_user.organization_id)
    return {"users": users, "roles": roles}


# ============================================================================
# Manual Shares
# ============================================================================

@router.get("/records/{object_api_name}/{record_id}/shares", response_model=List[ManualShareResponse])
async def list_record_shares(
    object_api_name: str,
    record_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Manual shares of a record."""
    return await service.list_manual_shares(db, current_user.organization_id, object_api_name, record_id)


@router.post(
    "/records/{object_api_name}/{record_id}/shares",
    response_model=ManualShareResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_record_share(
    object_api_name: str,
    record_id: str,
    share: ManualShareCreate,
    request: Request,
    owner_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Share a record with a user or role (record owner or admin)."""
    owner_id = await _record_owner(db, object_api_name, record_id, owner_id)
    await _require_owner_or_admin(db, current_user, owner_id)
    
    db_share = await service.create_manual_share(
        db,
        current_user.organization_id,
        current_user.id,
        object_api_name,
        record_id,
        share.model_dump(),
    )
    await db.commit()
    await db.refresh(db_share)
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="create",
        resource_type="manual_share",
        resource_id=db_share.id,
        organization_id=current_user.organization_id,
        details=share.model_dump(mode="json") | {"record": f"{object_api_name}:{record_id}"},
        **_client_details(request)
    )
    return db_share


async def _load_managed_share(db: AsyncSession, user: User, share_id: str):
    share = await service.get_manual_share(db, user.organization_id, share_id)
    owner_id = await _record_owner(db, share.object_api_name, share.record_id, None)
    if share.shared_by != user.id:
        await _require_owner_or_admin(db, user, owner_id)
    return share


@router.patch("/shares/{share_id}", response_model=ManualShareResponse)
async def update_record_share(
    share_id: str,
    share_update: ManualShareUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Change the access level, reason or expiry of a manual share."""
    await _load_managed_share(db, current_user, share_id)
    updates = share_update.model_dump(exclude_unset=True)
    db_share = await service.update_manual_share(db, current_user.organization_id, share_id, updates)
    await db.commit()
    await db.refresh(db_share)
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="update",
        resource_type="manual_share",
        resource_id=share_id,
        organization_id=current_user.organization_id,
        details=share_update.model_dump(mode="json", exclude_unset=True),
        **_client_details(request)
    )
    return db_share


@router.delete("/shares/{share_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_record_share(
    share_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Revoke a manual share."""
    await _load_managed_share(db, current_user, share_id)
    await service.delete_manual_share(db, current_user.organization_id, share_id)
    await db.commit()
    
    await create_audit_log(
        db=db,
        user_id=current_user.id,
        action="delete",
        resource_type="manual_share",
        resource_id=share_id,
        organization_id=current_user.organization_id,
        **_client_details(request)
    )
    return None


# ============================================================================
# Record Access
# ============================================================================

@router.get("/records/{object_api_name}/{record_id}/access", response_model=RecordAccessResponse)
async def get_record_access(
    object_api_name: str,
    record_id: str,
    owner_id: Optional[str] = None,
    access_type: Literal["read", "write"] = Query("read"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Whether the current user can read or write a record, and through what."""
    owner_id = await _record_owner(db, object_api_name, record_id, owner_id)
    if not current_user.organization_id:
        return RecordAccessResponse(has_access=False)
    
    evaluation = await service.evaluate_access(db, current_user, object_api_name, record_id, owner_id)
    if not satisfies_access(evaluation.access_level, access_type):
        return RecordAccessResponse(has_access=False)
    
    return RecordAccessResponse(
        has_access=True,
        access_level=evaluation.access_level,
        access_source=evaluation.access_source,
        description=get_access_source_description(evaluation.access_source),
    )


@router.get("/records/{object_api_name}/{record_id}/info", response_model=List[RecordSharingInfo])
async def get_record_sharing_info(
    object_api_name: str,
    record_id: str,
    owner_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Everyone who holds access to a record through ownership or manual shares."""
    owner_id = await _record_owner(db, object_api_name, record_id, owner_id)
    return await service.get_record_sharing_info(
        db, current_user.organization_id, object_api_name, record_id, owner_id
    )
