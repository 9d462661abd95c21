"""
Server-side payload filters.

filter_record_data prunes a record before it leaves the server,
filter_update_data prunes an update before it reaches the database.
Top-level keys are matched against column names and api names; keys of the
nested custom_fields map are matched against api names only.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from app.features.field_security.resolver import FieldLike, PermissionLike, filter_fields_by_permissions


SYSTEM_FIELDS = ("id", "organization_id", "created_at", "updated_at", "owner_id")
ALWAYS_WRITABLE_FIELDS = ("updated_at",)
CUSTOM_FIELDS_KEY = "custom_fields"


@dataclass(frozen=True)
class FieldEditValidation:
    valid: bool
    denied_fields: List[str] = field(default_factory=list)


def _field_id_lookups(fields: Sequence[FieldLike]):
    column_to_field_id: Dict[str, str] = {}
    api_name_to_field_id: Dict[str, str] = {}
    for f in fields:
        api_name_to_field_id[f.api_name] = f.id
        if f.column_name:
            column_to_field_id[f.column_name] = f.id
    return column_to_field_id, api_name_to_field_id


def _resolve_field_id(key: str, column_to_field_id, api_name_to_field_id) -> Optional[str]:
    return column_to_field_id.get(key) or api_name_to_field_id.get(key)


def filter_record_data(
    record: Mapping[str, Any],
    fields: Sequence[FieldLike],
    permissions: Iterable[PermissionLike],
    role_permissions: Optional[Mapping[str, Sequence[str]]] = None
) -> Dict[str, Any]:
    """Copy of record holding system columns plus readable fields only."""
    resolved = filter_fields_by_permissions(fields, permissions, role_permissions)
    visible_api_names = {f.api_name for f in resolved.visible_fields}
    visible_column_names = {f.column_name or f.api_name for f in resolved.visible_fields}
    
    filtered: Dict[str, Any] = {}
    for key, value in record.items():
        if key in SYSTEM_FIELDS or key in visible_api_names or key in visible_column_names:
            filtered[key] = value
    
    custom_fields = record.get(CUSTOM_FIELDS_KEY)
    if isinstance(custom_fields, Mapping):
        filtered[CUSTOM_FIELDS_KEY] = {
            key: value for key, value in custom_fields.items() if key in visible_api_names
        }
    
    return filtered


def filter_update_data(
    updates: Mapping[str, Any],
    fields: Sequence[FieldLike],
    permissions: Iterable[PermissionLike],
    role_permissions: Optional[Mapping[str, Sequence[str]]] = None
) -> Dict[str, Any]:
    """Copy of updates holding only editable fields and system-managed keys."""
    editable_field_ids = filter_fields_by_permissions(fields, permissions, role_permissions).editable_field_ids
    column_to_field_id, api_name_to_field_id = _field_id_lookups(fields)
    
    filtered: Dict[str, Any] = {}
    for key, value in updates.items():
        if key in ALWAYS_WRITABLE_FIELDS:
            filtered[key] = value
            continue
        field_id = _resolve_field_id(key, column_to_field_id, api_name_to_field_id)
        if field_id is not None and field_id in editable_field_ids:
            filtered[key] = value
    
    custom_fields = updates.get(CUSTOM_FIELDS_KEY)
    if isinstance(custom_fields, Mapping):
        filtered[CUSTOM_FIELDS_KEY] = {
            key: value for key, value in custom_fields.items()
            if api_name_to_field_id.get(key) in editable_field_ids
        }
    
    return filtered


def validate_field_edit_permissions(
    attempted_fields: Iterable[str],
    fields: Sequence[FieldLike],
    permissions: Iterable[PermissionLike],
    role_permissions: Optional[Mapping[str, Sequence[str]]] = None
) -> FieldEditValidation:
    """
    Report attempted keys that name a known field the role cannot edit.
    
    Keys that match no field definition are not reported.
    """
    editable_field_ids = filter_fields_by_permissions(fields, permissions, role_permissions).editable_field_ids
    column_to_field_id, api_name_to_field_id = _field_id_lookups(fields)
    
    denied_fields = []
    for key in attempted_fields:
        field_id = _resolve_field_id(key, column_to_field_id, api_name_to_field_id)
        if field_id is not None and field_id not in editable_field_ids:
            denied_fields.append(key)
    
    return FieldEditValidation(valid=not denied_fields, denied_fields=denied_fields)
