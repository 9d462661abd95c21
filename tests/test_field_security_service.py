import pytest

from app.core.exceptions import NotFoundError
from app.features.field_security.service import (
    bulk_set_field_permissions,
    can_edit_field,
    copy_field_permissions,
    get_accessible_fields_for_object,
    get_field_permission_matrix,
    get_field_permissions_for_role,
    get_user_security_context,
    reset_field_permissions,
    set_field_permission,
)


async def test_security_context_reports_admin_roles(db, crm):
    admin = await get_user_security_context(db, crm.users.admin)
    alice = await get_user_security_context(db, crm.users.alice)
    
    assert admin.is_admin
    assert admin.hierarchy_level == 1
    assert not alice.is_admin
    assert alice.role_id == crm.roles.assistant.id
    assert alice.organization_id == crm.org.id


async def test_accessible_fields_apply_role_rows(db, crm):
    result = await get_accessible_fields_for_object(db, crm.users.alice, "Lead")
    f = crm.fields
    
    assert result.visible_field_ids == {f.name.id, f.status.id, f.phone.id, f.medical_info.id}
    assert result.editable_field_ids == {f.name.id, f.phone.id, f.medical_info.id}


async def test_accessible_fields_for_admin_and_roleless_users(db, crm):
    all_ids = {field.id for field in vars(crm.fields).values()}
    
    admin = await get_accessible_fields_for_object(db, crm.users.admin, "Lead")
    norole = await get_accessible_fields_for_object(db, crm.users.norole, "Lead")
    
    assert admin.editable_field_ids == all_ids
    assert norole.editable_field_ids == all_ids


async def test_unknown_object_has_no_accessible_fields(db, crm):
    assert await get_accessible_fields_for_object(db, crm.users.alice, "Invoice") is None


async def test_set_field_permission_upserts_and_forces_invisible_read_only(db, crm):
    row = await set_field_permission(
        db, crm.org.id, crm.roles.manager.id, crm.fields.phone.id, is_visible=False, is_editable=True
    )
    assert row.is_visible is False
    assert row.is_editable is False
    
    again = await set_field_permission(
        db, crm.org.id, crm.roles.manager.id, crm.fields.phone.id, is_visible=True, is_editable=True
    )
    assert again.id == row.id
    assert again.is_editable is True
    assert len(await get_field_permissions_for_role(db, crm.roles.manager.id)) == 1


async def test_set_field_permission_rejects_foreign_roles_and_unknown_fields(db, crm):
    with pytest.raises(NotFoundError):
        await set_field_permission(db, crm.other_org.id, crm.roles.manager.id, crm.fields.phone.id, True, True)
    with pytest.raises(NotFoundError):
        await set_field_permission(db, crm.org.id, crm.roles.manager.id, "missing", True, True)


async def test_bulk_set_then_reset(db, crm):
    rows = await bulk_set_field_permissions(db, crm.org.id, crm.roles.manager.id, [
        {"field_definition_id": crm.fields.name.id, "is_visible": True, "is_editable": False},
        {"field_definition_id": crm.fields.email.id, "is_visible": False, "is_editable": False},
    ])
    assert len(rows) == 2
    
    matrix = await get_field_permission_matrix(db, "Lead", crm.roles.manager.id, crm.org.id)
    by_name = {e.api_name: e for e in matrix.fields}
    assert not by_name["name"].is_editable
    assert not by_name["email"].is_visible
    assert by_name["score"].is_visible and not by_name["score"].has_explicit_permission
    
    removed = await reset_field_permissions(db, crm.roles.manager.id, crm.lead.id)
    assert removed == 2
    result = await get_accessible_fields_for_object(db, crm.users.manager, "Lead")
    assert result.editable_field_ids == {field.id for field in vars(crm.fields).values()}


async def test_copy_field_permissions(db, crm):
    copied = await copy_field_permissions(db, crm.org.id, crm.roles.assistant.id, crm.roles.viewer.id)
    assert copied == 3
    
    result = await get_accessible_fields_for_object(db, crm.users.vera, "Lead")
    assert crm.fields.email.id not in result.visible_field_ids
    assert crm.fields.status.id not in result.editable_field_ids


async def test_can_edit_field(db, crm):
    assert not await can_edit_field(db, crm.users.alice, crm.fields.status.id)
    assert await can_edit_field(db, crm.users.alice, crm.fields.name.id)
    assert await can_edit_field(db, crm.users.admin, crm.fields.status.id)
