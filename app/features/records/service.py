"""
Record reads and writes with field-level security applied.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.exceptions import NotFoundError
from app.features.users.models import User
from app.features.roles.models import Role
from app.features.roles.policy import is_admin_role
from app.features.objects.models import ObjectDefinition, FieldDefinition
from app.features.objects.service import get_object_by_api_name, get_active_fields
from app.features.field_security.models import FieldPermission
from app.features.field_security.service import get_field_permissions_for_object_and_role
from app.features.field_security.filters import (
    ALWAYS_WRITABLE_FIELDS,
    CUSTOM_FIELDS_KEY,
    filter_record_data,
    filter_update_data,
    validate_field_edit_permissions,
)
from app.features.field_security.sensitive import filter_sensitive_fields
from app.features.records.models import CrmRecord
from app.utils import get_logger


log = get_logger(__name__)


@dataclass
class FieldSecurityInputs:
    """Everything the payload filters need for one user and one object."""
    object_definition: ObjectDefinition
    fields: List[FieldDefinition]
    permissions: List[FieldPermission]
    role: Optional[Role]
    is_admin: bool
    
    @property
    def role_permissions(self) -> Optional[Mapping[str, Sequence[str]]]:
        return self.role.permissions if self.role is not None else None


async def load_field_security(db: AsyncSession, user: User, object_api_name: str) -> FieldSecurityInputs:
    obj = await get_object_by_api_name(db, object_api_name, user.organization_id)
    if obj is None:
        raise NotFoundError("Object not found")
    
    fields = await get_active_fields(db, obj.id)
    role = await db.get(Role, user.role_id) if user.role_id else None
    permissions = (
        await get_field_permissions_for_object_and_role(db, obj.id, role.id)
        if role is not None else []
    )
    return FieldSecurityInputs(
        object_definition=obj,
        fields=fields,
        permissions=permissions,
        role=role,
        is_admin=user.is_admin or is_admin_role(role),
    )


async def get_record(db: AsyncSession, organization_id: Optional[str], object_api_name: str, record_id: str) -> CrmRecord:
    record = await db.get(CrmRecord, record_id)
    if (
        record is None
        or record.object_api_name != object_api_name
        or record.organization_id != organization_id
    ):
        raise NotFoundError("Record not found")
    return record


async def list_records(
    db: AsyncSession,
    organization_id: str,
    object_api_name: str,
    skip: int = 0,
    limit: int = 100
) -> List[CrmRecord]:
    result = await db.execute(
        select(CrmRecord)
        .where(
            CrmRecord.organization_id == organization_id,
            CrmRecord.object_api_name == object_api_name,
        )
        .order_by(CrmRecord.created_at.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all())


def readable_payload(record: CrmRecord, inputs: FieldSecurityInputs, is_owner: bool) -> Dict[str, Any]:
    """
    The record as the caller may see it.
    
    Admins get the whole payload. Owners skip role field permissions;
    everyone but admins loses sensitive fields while the restriction is on.
    """
    payload = record.to_payload()
    if inputs.is_admin:
        return payload
    
    restrict = config.RESTRICT_SENSITIVE_FIELDS
    if is_owner and not restrict:
        return payload
    
    fields = filter_sensitive_fields(inputs.fields, has_privileged_access=not restrict)
    if is_owner:
        return filter_record_data(payload, fields, [])
    return filter_record_data(payload, fields, inputs.permissions, inputs.role_permissions)


def permitted_updates(
    updates: Dict[str, Any],
    inputs: FieldSecurityInputs,
    is_owner: bool,
    user_id: str
) -> Dict[str, Any]:
    """Drop update keys the caller may not edit; admins and owners keep all."""
    if inputs.is_admin or is_owner:
        return updates
    
    attempted = [key for key in updates if key != CUSTOM_FIELDS_KEY]
    attempted += list(updates.get(CUSTOM_FIELDS_KEY, {}))
    validation = validate_field_edit_permissions(attempted, inputs.fields, inputs.permissions, inputs.role_permissions)
    if not validation.valid:
        log.warning(
            "User %s attempted to edit protected fields on %s: %s",
            user_id, inputs.object_definition.api_name, ", ".join(validation.denied_fields)
        )
    return filter_update_data(updates, inputs.fields, inputs.permissions, inputs.role_permissions)


def apply_updates(record: CrmRecord, updates: Mapping[str, Any]) -> None:
    """Merge updates into the record; JSON columns are reassigned so the change is tracked."""
    custom_fields = updates.get(CUSTOM_FIELDS_KEY) or {}
    data = {
        key: value for key, value in updates.items()
        if key != CUSTOM_FIELDS_KEY and key not in ALWAYS_WRITABLE_FIELDS
    }
    if data:
        record.data = {**(record.data or {}), **data}
    if custom_fields:
        record.custom_fields = {**(record.custom_fields or {}), **custom_fields}
