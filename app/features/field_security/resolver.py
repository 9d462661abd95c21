"""
Field permission resolver.

Given the field definitions of one object and the permission rows of one
role, compute per-field read/edit access. Everything here is a pure function
over data already fetched from the database.
"""
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Literal, Mapping, Optional, Protocol, Sequence

from app.features.roles.policy import is_full_admin_permissions
from app.utils import get_logger


log = get_logger(__name__)

AccessType = Literal["read", "write"]


class FieldLike(Protocol):
    id: str
    api_name: str
    label: str
    column_name: Optional[str]
    is_standard: bool
    is_sensitive: bool


class PermissionLike(Protocol):
    field_definition_id: str
    is_visible: bool
    is_editable: bool


@dataclass(frozen=True)
class FieldAccess:
    field_id: str
    api_name: str
    can_read: bool
    can_edit: bool


@dataclass(frozen=True)
class FilteredFields:
    """
    Result of resolving one role's permissions over one object's fields.
    
    visible_fields keeps the input order; editable_field_ids is always a
    subset of the visible field ids; access_map covers every input field.
    """
    visible_fields: List[FieldLike] = field(default_factory=list)
    editable_field_ids: FrozenSet[str] = frozenset()
    access_map: Dict[str, FieldAccess] = field(default_factory=dict)
    
    @property
    def visible_field_ids(self) -> FrozenSet[str]:
        return frozenset(f.id for f in self.visible_fields)
    
    @property
    def all_field_ids(self) -> FrozenSet[str]:
        return frozenset(self.access_map)


def _permission_map(permissions: Iterable[PermissionLike]) -> Dict[str, PermissionLike]:
    return {p.field_definition_id: p for p in permissions}


def check_field_access(
    field_id: str,
    permissions: Iterable[PermissionLike],
    access_type: AccessType
) -> bool:
    """Read maps to is_visible, write to is_editable; no row means allowed."""
    permission = _permission_map(permissions).get(field_id)
    if permission is None:
        return True
    return permission.is_visible if access_type == "read" else permission.is_editable


def allow_all(fields: Sequence[FieldLike]) -> FilteredFields:
    """Every field readable and editable."""
    return FilteredFields(
        visible_fields=list(fields),
        editable_field_ids=frozenset(f.id for f in fields),
        access_map={
            f.id: FieldAccess(field_id=f.id, api_name=f.api_name, can_read=True, can_edit=True)
            for f in fields
        },
    )


def filter_fields_by_permissions(
    fields: Sequence[FieldLike],
    permissions: Iterable[PermissionLike],
    role_permissions: Optional[Mapping[str, Sequence[str]]] = None
) -> FilteredFields:
    """
    Resolve field access for one (object, role) pair.
    
    A role holding {"*": ["*"]} gets every field without consulting its rows.
    Otherwise a field without a row is readable and editable, and a field
    with a row takes both flags from it. A field only counts as editable
    when it is also readable, in the sets and in the access map alike. Rows
    for unknown field ids are ignored.
    """
    if is_full_admin_permissions(role_permissions):
        return allow_all(fields)
    
    permission_map = _permission_map(permissions)
    visible_fields: List[FieldLike] = []
    editable_field_ids = set()
    access_map: Dict[str, FieldAccess] = {}
    
    for f in fields:
        permission = permission_map.get(f.id)
        can_read = permission.is_visible if permission is not None else True
        can_edit = can_read and (permission.is_editable if permission is not None else True)
        
        access_map[f.id] = FieldAccess(
            field_id=f.id,
            api_name=f.api_name,
            can_read=can_read,
            can_edit=can_edit,
        )
        
        if can_read:
            visible_fields.append(f)
        if can_edit:
            editable_field_ids.add(f.id)
    
    log.debug(
        "Resolved %d fields: %d visible, %d editable",
        len(fields), len(visible_fields), len(editable_field_ids)
    )
    return FilteredFields(
        visible_fields=visible_fields,
        editable_field_ids=frozenset(editable_field_ids),
        access_map=access_map,
    )


def get_field_access_map(
    fields: Sequence[FieldLike],
    permissions: Iterable[PermissionLike]
) -> Dict[str, FieldAccess]:
    """Per-field access for every field, keyed by field id."""
    return filter_fields_by_permissions(fields, permissions).access_map
