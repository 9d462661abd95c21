"""
Record security context builder.

Combines record-level sharing (can the user read/edit this record at all)
with field-level security (which fields of the object the user can see and
edit) into one immutable value the API hands to clients.

The builder fails closed: an unauthenticated caller, or any error while
gathering the inputs, yields the empty context in which nothing is allowed.
"""
import asyncio
from dataclasses import dataclass, replace
from typing import FrozenSet, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.features.users.dependencies import AuthLookup
from app.features.records.models import CrmRecord
from app.features.field_security.service import (
    get_accessible_fields_for_object,
    get_user_security_context,
)
from app.features.sharing.service import check_record_access
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class RecordContext:
    object_api_name: str
    record_id: str
    owner_id: Optional[str] = None


@dataclass(frozen=True)
class RecordSecurityContext:
    """
    What one user may do with one record.
    
    editable_field_ids is always a subset of visible_field_ids. is_loaded is
    False only for the empty context produced on failure.
    """
    user_id: Optional[str]
    is_owner: bool
    can_read: bool
    can_edit: bool
    can_delete: bool
    can_manage_sharing: bool
    visible_field_ids: FrozenSet[str]
    editable_field_ids: FrozenSet[str]
    is_loaded: bool = True


def create_empty_security_context() -> RecordSecurityContext:
    return RecordSecurityContext(
        user_id=None,
        is_owner=False,
        can_read=False,
        can_edit=False,
        can_delete=False,
        can_manage_sharing=False,
        visible_field_ids=frozenset(),
        editable_field_ids=frozenset(),
        is_loaded=False,
    )


async def resolve_owner(
    record: RecordContext,
    session_factory: async_sessionmaker[AsyncSession]
) -> RecordContext:
    """Replace the given owner with the stored one for records in the record store."""
    async with session_factory() as db:
        stored = await db.get(CrmRecord, record.record_id)
    if stored is None or stored.object_api_name != record.object_api_name:
        return record
    return replace(record, owner_id=stored.owner_id)


def create_full_access_context(
    user_id: str,
    fields: Iterable,
    is_owner: bool = False
) -> RecordSecurityContext:
    """Context granting every capability on every given field."""
    field_ids = frozenset(f.id for f in fields)
    return RecordSecurityContext(
        user_id=user_id,
        is_owner=is_owner,
        can_read=True,
        can_edit=True,
        can_delete=True,
        can_manage_sharing=True,
        visible_field_ids=field_ids,
        editable_field_ids=field_ids,
    )


async def get_record_security_context(
    record: RecordContext,
    auth_lookup: AuthLookup,
    session_factory: async_sessionmaker[AsyncSession]
) -> RecordSecurityContext:
    """
    Build the security context of the calling user for one record.
    
    The owner is resolved first; records outside the record store keep the
    owner_id they were described with. The four independent lookups
    (accessible fields, admin status, read access, write access) then run
    concurrently, each in its own session.
    """
    try:
        user = await auth_lookup()
        if user is None:
            log.debug("No authenticated user for %s:%s", record.object_api_name, record.record_id)
            return create_empty_security_context()
        
        record = await resolve_owner(record, session_factory)
        
        async def accessible_fields():
            async with session_factory() as db:
                return await get_accessible_fields_for_object(db, user, record.object_api_name)
        
        async def security_context():
            async with session_factory() as db:
                return await get_user_security_context(db, user)
        
        async def record_access(access_type: str) -> bool:
            async with session_factory() as db:
                return await check_record_access(
                    db, user, record.object_api_name, record.record_id, record.owner_id, access_type
                )
        
        fields, user_ctx, read_access, write_access = await asyncio.gather(
            accessible_fields(),
            security_context(),
            record_access("read"),
            record_access("write"),
        )
        
        is_admin = user_ctx.is_admin
        is_owner = record.owner_id is not None and record.owner_id == user.id
        privileged = is_admin or is_owner
        
        if fields is None:
            visible_ids: FrozenSet[str] = frozenset()
            editable_ids: FrozenSet[str] = frozenset()
        elif privileged:
            visible_ids = editable_ids = fields.all_field_ids
        else:
            visible_ids = fields.visible_field_ids
            editable_ids = fields.editable_field_ids
        
        context = RecordSecurityContext(
            user_id=user.id,
            is_owner=is_owner,
            can_read=privileged or read_access,
            can_edit=privileged or write_access,
            can_delete=privileged,
            can_manage_sharing=privileged,
            visible_field_ids=visible_ids,
            editable_field_ids=editable_ids,
        )
        log.debug(
            "Security context for user %s on %s:%s: read=%s edit=%s owner=%s admin=%s fields=%d/%d",
            user.id, record.object_api_name, record.record_id, context.can_read, context.can_edit,
            is_owner, is_admin, len(editable_ids), len(visible_ids)
        )
        return context
    except Exception:
        log.exception(
            "Failed to build security context for %s:%s", record.object_api_name, record.record_id
        )
        return create_empty_security_context()


# =====================================================
# SERIALIZATION
# =====================================================

class SerializedSecurityContext(BaseModel):
    """Wire form of RecordSecurityContext: sorted id lists, camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
    
    user_id: Optional[str] = None
    is_owner: bool = False
    can_read: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_manage_sharing: bool = False
    visible_field_ids: List[str] = []
    editable_field_ids: List[str] = []
    is_loaded: bool = False


def serialize_security_context(context: RecordSecurityContext) -> SerializedSecurityContext:
    return SerializedSecurityContext(
        user_id=context.user_id,
        is_owner=context.is_owner,
        can_read=context.can_read,
        can_edit=context.can_edit,
        can_delete=context.can_delete,
        can_manage_sharing=context.can_manage_sharing,
        visible_field_ids=sorted(context.visible_field_ids),
        editable_field_ids=sorted(context.editable_field_ids),
        is_loaded=context.is_loaded,
    )


def deserialize_security_context(data) -> RecordSecurityContext:
    """Accepts a SerializedSecurityContext or its dict form (either key style)."""
    if not isinstance(data, SerializedSecurityContext):
        data = SerializedSecurityContext.model_validate(data)
    return RecordSecurityContext(
        user_id=data.user_id,
        is_owner=data.is_owner,
        can_read=data.can_read,
        can_edit=data.can_edit,
        can_delete=data.can_delete,
        can_manage_sharing=data.can_manage_sharing,
        visible_field_ids=frozenset(data.visible_field_ids),
        editable_field_ids=frozenset(data.editable_field_ids),
        is_loaded=data.is_loaded,
    )
