from types import SimpleNamespace

from fastapi import HTTPException

from app.core.database.engine import AsyncSessionLocal
from app.features.record_security.context import (
    RecordContext,
    SerializedSecurityContext,
    create_empty_security_context,
    create_full_access_context,
    deserialize_security_context,
    get_record_security_context,
    resolve_owner,
    serialize_security_context,
)
from app.features.records.models import CrmRecord


def _lookup(user):
    async def lookup():
        return user
    return lookup


async def _lead(db, crm, owner):
    record = CrmRecord(organization_id=crm.org.id, object_api_name="Lead", owner_id=owner.id, data={}, custom_fields={})
    db.add(record)
    await db.commit()
    return RecordContext(object_api_name="Lead", record_id=record.id, owner_id=owner.id)


async def test_anonymous_caller_gets_empty_context(db, crm):
    context = await get_record_security_context(
        RecordContext("Lead", "rec1", crm.users.alice.id), _lookup(None), AsyncSessionLocal
    )
    assert context == create_empty_security_context()
    assert context.is_loaded is False


async def test_auth_failure_fails_closed(db, crm):
    async def lookup():
        raise HTTPException(status_code=401, detail="Invalid token")
    
    context = await get_record_security_context(RecordContext("Lead", "rec1"), lookup, AsyncSessionLocal)
    assert context == create_empty_security_context()


async def test_lookup_failure_fails_closed(db, crm):
    def broken_factory():
        raise RuntimeError("database unavailable")
    
    context = await get_record_security_context(
        RecordContext("Lead", "rec1"), _lookup(crm.users.alice), broken_factory
    )
    assert not context.is_loaded
    assert not context.can_read


async def test_owner_gets_everything(db, crm):
    record = await _lead(db, crm, crm.users.alice)
    context = await get_record_security_context(record, _lookup(crm.users.alice), AsyncSessionLocal)
    all_ids = frozenset(f.id for f in vars(crm.fields).values())
    
    assert context.is_loaded
    assert context.is_owner
    assert context.can_read and context.can_edit and context.can_delete and context.can_manage_sharing
    assert context.visible_field_ids == all_ids
    assert context.editable_field_ids == all_ids


async def test_admin_gets_everything_without_owning(db, crm):
    record = await _lead(db, crm, crm.users.alice)
    context = await get_record_security_context(record, _lookup(crm.users.admin), AsyncSessionLocal)
    
    assert not context.is_owner
    assert context.can_delete and context.can_manage_sharing
    assert context.editable_field_ids == frozenset(f.id for f in vars(crm.fields).values())


async def test_peer_without_sharing_gets_field_sets_but_no_record_access(db, crm):
    record = await _lead(db, crm, crm.users.alice)
    context = await get_record_security_context(record, _lookup(crm.users.bob), AsyncSessionLocal)
    f = crm.fields
    
    assert context.is_loaded
    assert not context.can_read
    assert not context.can_edit
    assert not context.can_delete
    assert context.visible_field_ids == {f.name.id, f.status.id, f.phone.id, f.medical_info.id}
    assert context.editable_field_ids == {f.name.id, f.phone.id, f.medical_info.id}


async def test_manager_reads_and_edits_through_hierarchy(db, crm):
    record = await _lead(db, crm, crm.users.alice)
    context = await get_record_security_context(record, _lookup(crm.users.manager), AsyncSessionLocal)
    
    assert context.can_read and context.can_edit
    assert not context.can_delete
    assert not context.can_manage_sharing


async def test_record_without_owner_is_never_owned(db, crm):
    context = await get_record_security_context(
        RecordContext("Lead", "unsaved", None), _lookup(crm.users.alice), AsyncSessionLocal
    )
    assert context.is_loaded
    assert not context.is_owner
    assert not context.can_delete


async def test_resolve_owner_prefers_stored_owner(db, crm):
    stored = await _lead(db, crm, crm.users.alice)
    
    claimed = RecordContext("Lead", stored.record_id, crm.users.bob.id)
    assert (await resolve_owner(claimed, AsyncSessionLocal)).owner_id == crm.users.alice.id
    
    other_object = RecordContext("Contact", stored.record_id, crm.users.bob.id)
    assert (await resolve_owner(other_object, AsyncSessionLocal)).owner_id == crm.users.bob.id
    
    external = RecordContext("Lead", "external-1", crm.users.bob.id)
    assert await resolve_owner(external, AsyncSessionLocal) == external


def test_full_access_context():
    fields = [SimpleNamespace(id="f1"), SimpleNamespace(id="f2")]
    context = create_full_access_context("u1", fields, is_owner=True)
    
    assert context.user_id == "u1"
    assert context.is_owner
    assert context.can_manage_sharing
    assert context.visible_field_ids == context.editable_field_ids == {"f1", "f2"}
    assert not create_full_access_context("u1", fields).is_owner


def test_serialization_sorts_ids_and_uses_camel_case():
    context = create_full_access_context("u1", [SimpleNamespace(id="f2"), SimpleNamespace(id="f1")])
    wire = serialize_security_context(context).model_dump(by_alias=True)
    
    assert wire["visibleFieldIds"] == ["f1", "f2"]
    assert wire["canManageSharing"] is True
    assert wire["isLoaded"] is True
    assert deserialize_security_context(wire) == context


def test_deserialize_accepts_field_names_and_models():
    empty = create_empty_security_context()
    serialized = serialize_security_context(empty)
    
    assert deserialize_security_context(serialized) == empty
    assert deserialize_security_context(serialized.model_dump()) == empty
    assert isinstance(SerializedSecurityContext.model_validate({}), SerializedSecurityContext)
