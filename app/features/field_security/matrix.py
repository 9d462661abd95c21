"""
Permission matrix for the admin UI: one row per field with its effective
visible/editable flags for a role.
"""
from typing import Iterable, Sequence

from pydantic import BaseModel

from app.features.field_security.resolver import FieldLike, PermissionLike
from app.features.field_security.sensitive import is_sensitive_field


class FieldPermissionMatrixEntry(BaseModel):
    field_id: str
    api_name: str
    label: str
    is_visible: bool
    is_editable: bool
    is_standard: bool
    is_sensitive: bool
    has_explicit_permission: bool


class FieldPermissionMatrix(BaseModel):
    object_api_name: str
    role_id: str
    fields: list[FieldPermissionMatrixEntry]


def build_permission_matrix(
    object_api_name: str,
    role_id: str,
    fields: Sequence[FieldLike],
    permissions: Iterable[PermissionLike]
) -> FieldPermissionMatrix:
    """Fields without a permission row show as visible and editable."""
    permission_map = {p.field_definition_id: p for p in permissions}
    entries = []
    for f in fields:
        permission = permission_map.get(f.id)
        entries.append(FieldPermissionMatrixEntry(
            field_id=f.id,
            api_name=f.api_name,
            label=f.label,
            is_visible=permission.is_visible if permission is not None else True,
            is_editable=permission.is_editable if permission is not None else True,
            is_standard=f.is_standard,
            is_sensitive=is_sensitive_field(f),
            has_explicit_permission=permission is not None,
        ))
    return FieldPermissionMatrix(object_api_name=object_api_name, role_id=role_id, fields=entries)
