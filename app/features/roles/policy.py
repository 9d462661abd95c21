"""
Pure role-permission checks shared by the user dependencies and the field
security resolver.
"""
from typing import Mapping, Optional, Sequence

from app.core import config


WILDCARD = "*"


def is_full_admin_permissions(permissions: Optional[Mapping[str, Sequence[str]]]) -> bool:
    """True iff the permission map grants every action on every resource."""
    if not permissions:
        return False
    return WILDCARD in (permissions.get(WILDCARD) or [])


def is_admin_role(role) -> bool:
    """A role is admin by name or by holding {"*": ["*"]}."""
    if role is None:
        return False
    return role.name == config.ADMIN_ROLE_NAME or is_full_admin_permissions(role.permissions)


def role_allows(
    permissions: Optional[Mapping[str, Sequence[str]]],
    resource: str,
    action: str
) -> bool:
    """
    Wildcard-aware permission check.
    
    Actions granted on "*" apply to every resource; "*" in an action list
    grants every action on that resource.
    """
    if not permissions:
        return False
    for key in (resource, WILDCARD):
        actions = permissions.get(key) or []
        if WILDCARD in actions or action in actions:
            return True
    return False
