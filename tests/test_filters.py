from datetime import datetime, timezone

from app.features.field_security.filters import (
    filter_record_data,
    filter_update_data,
    validate_field_edit_permissions,
)

from helpers import contact_fields, make_field, make_permission


NOW = datetime(2026, 1, 5, tzinfo=timezone.utc)


def _record():
    return {
        "id": "rec1",
        "organization_id": "org1",
        "owner_id": "u1",
        "created_at": NOW,
        "updated_at": NOW,
        "first_name": "Mara",
        "email": "mara@example.com",
        "phone": "555-0100",
        "legacy_column": "x",
        "custom_fields": {"due_date": "2026-03-01", "medical_info": "gestational diabetes"},
    }


def test_record_filter_keeps_system_and_visible_fields():
    permissions = [
        make_permission("f2", is_visible=False, is_editable=False),
        make_permission("f5", is_visible=False, is_editable=False),
    ]
    filtered = filter_record_data(_record(), contact_fields(), permissions)
    
    assert filtered == {
        "id": "rec1",
        "organization_id": "org1",
        "owner_id": "u1",
        "created_at": NOW,
        "updated_at": NOW,
        "first_name": "Mara",
        "phone": "555-0100",
        "custom_fields": {"due_date": "2026-03-01"},
    }


def test_record_filter_matches_column_name_and_api_name():
    fields = contact_fields()
    # phone_number lives in the "phone" column; either key is visible
    filtered = filter_record_data({"phone": "1", "phone_number": "2"}, fields, [])
    assert filtered == {"phone": "1", "phone_number": "2"}


def test_record_filter_keeps_empty_custom_fields_map():
    permissions = [make_permission("f4", is_visible=False), make_permission("f5", is_visible=False)]
    filtered = filter_record_data(_record(), contact_fields(), permissions)
    assert filtered["custom_fields"] == {}


def test_record_filter_does_not_mutate_input():
    record = _record()
    filter_record_data(record, contact_fields(), [make_permission("f1", is_visible=False)])
    assert record == _record()


def test_record_filter_is_idempotent():
    fields = contact_fields()
    permissions = [make_permission("f1", is_visible=False), make_permission("f4", is_visible=False)]
    once = filter_record_data(_record(), fields, permissions)
    assert filter_record_data(once, fields, permissions) == once


def test_update_filter_keeps_editable_fields_and_updated_at():
    permissions = [
        make_permission("f1", is_visible=True, is_editable=False),
        make_permission("f2", is_visible=False, is_editable=True),
    ]
    updates = {
        "first_name": "Nope",
        "email": "nope@example.com",
        "phone": "555-0199",
        "updated_at": NOW,
        "id": "forged",
        "custom_fields": {"due_date": "2026-04-01", "phone": "by column"},
    }
    filtered = filter_update_data(updates, contact_fields(), permissions)
    
    assert filtered == {
        "phone": "555-0199",
        "updated_at": NOW,
        "custom_fields": {"due_date": "2026-04-01"},
    }


def test_update_filter_resolves_column_name_before_api_name():
    # "stage" is the column of status and the api name of another field
    fields = [make_field("a", "status", "stage"), make_field("b", "stage", "stage_code")]
    permissions = [make_permission("a", is_visible=True, is_editable=False)]
    
    assert filter_update_data({"stage": "won"}, fields, permissions) == {}
    assert filter_update_data({"stage_code": "won"}, fields, permissions) == {"stage_code": "won"}


def test_writable_keys_are_readable():
    fields = contact_fields()
    permissions = [
        make_permission("f1", is_visible=True, is_editable=False),
        make_permission("f2", is_visible=False, is_editable=False),
        make_permission("f5", is_visible=False, is_editable=True),
    ]
    updates = {
        "first_name": "a", "email": "b", "phone": "c", "unknown": "d",
        "custom_fields": {"due_date": "e", "medical_info": "f"},
    }
    written = filter_update_data(updates, fields, permissions)
    readable = filter_record_data(written, fields, permissions)
    
    assert set(written) == set(readable)
    assert written["custom_fields"] == readable["custom_fields"]


def test_validate_edit_reports_known_non_editable_fields():
    permissions = [
        make_permission("f1", is_visible=True, is_editable=False),
        make_permission("f2", is_visible=False, is_editable=False),
    ]
    result = validate_field_edit_permissions(
        ["first_name", "email", "phone", "not_a_field"], contact_fields(), permissions
    )
    
    assert result.valid is False
    assert result.denied_fields == ["first_name", "email"]


def test_validate_edit_passes_with_default_allow():
    result = validate_field_edit_permissions(["first_name", "due_date"], contact_fields(), [])
    assert result.valid is True
    assert result.denied_fields == []
