"""
Record sharing evaluation.

Pure functions deciding which access level a user holds on a record, given
the object's sharing model, the organization's sharing rules and the
record's manual shares.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from numbers import Number
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Tuple

from app.utils import get_logger


log = get_logger(__name__)

AccessLevel = Literal["read", "read_write", "full_access"]
SharingModel = Literal["private", "read", "read_write", "full_access"]
AccessSource = Literal["owner", "org_wide_default", "role_hierarchy", "sharing_rule", "manual_share"]

ACCESS_LEVEL_ORDER = {"read": 1, "read_write": 2, "full_access": 3}
SHARING_MODELS = ("private", "read", "read_write", "full_access")
CRITERIA_OPERATORS = (
    "equals",
    "not_equals",
    "contains",
    "not_contains",
    "starts_with",
    "greater_than",
    "less_than",
    "is_null",
    "is_not_null",
    "in",
)


@dataclass(frozen=True)
class RecordSharingContext:
    record_id: str
    object_api_name: str
    owner_id: Optional[str]
    organization_id: Optional[str]
    field_values: Optional[Mapping[str, Any]] = None
    owner_role_id: Optional[str] = None


@dataclass(frozen=True)
class UserSharingContext:
    user_id: str
    role_id: Optional[str]
    organization_id: Optional[str]
    hierarchy_level: Optional[int] = None


@dataclass(frozen=True)
class AccessGrant:
    source: AccessSource
    level: AccessLevel
    source_id: Optional[str] = None
    source_name: Optional[str] = None


@dataclass(frozen=True)
class SharingEvaluation:
    has_access: bool
    access_level: Optional[AccessLevel]
    access_source: Optional[AccessSource]
    grants: List[AccessGrant] = field(default_factory=list)


NO_ACCESS = SharingEvaluation(has_access=False, access_level=None, access_source=None)


# =====================================================
# ACCESS LEVELS
# =====================================================

def compare_access_levels(a: Optional[str], b: Optional[str]) -> Optional[str]:
    """The higher of two levels; a wins ties."""
    a_score = ACCESS_LEVEL_ORDER.get(a, 0) if a else 0
    b_score = ACCESS_LEVEL_ORDER.get(b, 0) if b else 0
    return a if a_score >= b_score else b


def satisfies_access(granted: Optional[str], required: Literal["read", "write"]) -> bool:
    if not granted:
        return False
    if required == "read":
        return granted in ACCESS_LEVEL_ORDER
    return granted in ("read_write", "full_access")


def sharing_model_to_access_level(model: str) -> Optional[AccessLevel]:
    """private grants nothing; the other models grant the level of the same name."""
    if model in ("read", "read_write", "full_access"):
        return model
    return None


# =====================================================
# CRITERIA
# =====================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def _ordered(field_value: Any, target: Any) -> Optional[Tuple[Any, Any]]:
    if _is_number(field_value) and _is_number(target):
        return field_value, target
    if isinstance(field_value, str) and isinstance(target, str):
        return field_value, target
    return None


def evaluate_condition(condition: Mapping[str, Any], field_values: Mapping[str, Any]) -> bool:
    """
    Evaluate one {"field", "operator", "value"} condition.
    
    contains/not_contains/starts_with compare strings case-insensitively;
    greater_than/less_than only compare two numbers or two strings.
    Unknown operators never match.
    """
    field_value = field_values.get(condition.get("field"))
    target = condition.get("value")
    operator = condition.get("operator")
    
    if operator == "equals":
        return field_value == target
    if operator == "not_equals":
        return field_value != target
    if operator == "contains":
        if isinstance(field_value, str) and isinstance(target, str):
            return target.lower() in field_value.lower()
        if isinstance(field_value, (list, tuple)):
            return target in field_value
        return False
    if operator == "not_contains":
        if isinstance(field_value, str) and isinstance(target, str):
            return target.lower() not in field_value.lower()
        if isinstance(field_value, (list, tuple)):
            return target not in field_value
        return True
    if operator == "starts_with":
        if isinstance(field_value, str) and isinstance(target, str):
            return field_value.lower().startswith(target.lower())
        return False
    if operator in ("greater_than", "less_than"):
        pair = _ordered(field_value, target)
        if pair is None:
            return False
        left, right = pair
        return left > right if operator == "greater_than" else left < right
    if operator == "is_null":
        return field_value is None
    if operator == "is_not_null":
        return field_value is not None
    if operator == "in":
        if isinstance(target, (list, tuple)):
            return field_value in target
        return False
    
    log.warning("Unknown sharing criteria operator: %s", operator)
    return False


def evaluate_criteria(criteria: Optional[Mapping[str, Any]], field_values: Mapping[str, Any]) -> bool:
    """match_type "all" needs every condition, anything else needs one; no conditions match."""
    conditions = (criteria or {}).get("conditions") or []
    if not conditions:
        return True
    
    results = [evaluate_condition(c, field_values) for c in conditions]
    if criteria.get("match_type") == "all":
        return all(results)
    return any(results)


def validate_sharing_criteria(criteria: Any) -> Tuple[bool, Optional[str]]:
    """Structural check of a criteria document: (valid, error message)."""
    if not isinstance(criteria, Mapping):
        return False, "Criteria must be an object"
    
    conditions = criteria.get("conditions")
    if not isinstance(conditions, list):
        return False, "Criteria must have conditions array"
    
    if criteria.get("match_type") not in ("all", "any"):
        return False, 'match_type must be "all" or "any"'
    
    for i, condition in enumerate(conditions):
        if not isinstance(condition, Mapping):
            return False, f"Condition {i} must be an object"
        if not isinstance(condition.get("field"), str) or not condition.get("field"):
            return False, f"Condition {i} must have a field"
        if condition.get("operator") not in CRITERIA_OPERATORS:
            return False, f"Condition {i} has invalid operator"
    
    return True, None


# =====================================================
# RULES, SHARES, HIERARCHY
# =====================================================

def _targets_user(share_with_type: str, share_with_id: str, user: UserSharingContext) -> bool:
    if share_with_type == "user":
        return share_with_id == user.user_id
    if share_with_type == "role":
        return user.role_id is not None and share_with_id == user.role_id
    # public groups are not resolved yet
    return False


def sharing_rule_applies_to_user(rule, user: UserSharingContext) -> bool:
    if not rule.is_active:
        return False
    return _targets_user(rule.share_with_type, rule.share_with_id, user)


def evaluate_sharing_rule(rule, record: RecordSharingContext, user: UserSharingContext) -> Optional[AccessLevel]:
    """
    Level granted by one rule, or None.
    
    Criteria rules are only checked against the record when its field values
    are known; without them the rule grants its level.
    """
    if not sharing_rule_applies_to_user(rule, user):
        return None
    
    if rule.rule_type == "criteria" and record.field_values is not None:
        if not evaluate_criteria(rule.criteria, record.field_values):
            return None
    
    if rule.rule_type == "owner_based" and rule.owner_role_id:
        if record.owner_role_id != rule.owner_role_id:
            return None
    
    return rule.access_level


def is_share_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if expires_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    # SQLite hands back naive datetimes; they are stored as UTC
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at < now


def evaluate_manual_share(share, user: UserSharingContext, now: Optional[datetime] = None) -> Optional[AccessLevel]:
    if is_share_expired(share.expires_at, now):
        return None
    if not _targets_user(share.share_with_type, share.share_with_id, user):
        return None
    return share.access_level


def has_hierarchy_access(user_level: Optional[int], owner_level: Optional[int]) -> bool:
    """A strictly lower (more privileged) level sees the owner's records."""
    if user_level is None or owner_level is None:
        return False
    return user_level < owner_level


# =====================================================
# MAIN EVALUATION
# =====================================================

def evaluate_record_access(
    record: RecordSharingContext,
    user: UserSharingContext,
    sharing_model: str,
    sharing_rules: Sequence = (),
    manual_shares: Sequence = (),
    owner_hierarchy_level: Optional[int] = None,
    now: Optional[datetime] = None
) -> SharingEvaluation:
    """Collect every grant the user holds on the record and keep the highest."""
    if user.organization_id is None or user.organization_id != record.organization_id:
        return NO_ACCESS
    
    grants: List[AccessGrant] = []
    
    if record.owner_id is not None and record.owner_id == user.user_id:
        grants.append(AccessGrant(source="owner", level="full_access", source_name="Record Owner"))
    
    owd_access = sharing_model_to_access_level(sharing_model)
    if owd_access:
        grants.append(AccessGrant(
            source="org_wide_default",
            level=owd_access,
            source_name=f"Organization Default: {sharing_model}",
        ))
    
    if has_hierarchy_access(user.hierarchy_level, owner_hierarchy_level):
        grants.append(AccessGrant(source="role_hierarchy", level="read_write", source_name="Role Hierarchy"))
    
    for rule in sharing_rules:
        level = evaluate_sharing_rule(rule, record, user)
        if level:
            grants.append(AccessGrant(
                source="sharing_rule",
                level=level,
                source_id=rule.id,
                source_name=f"Sharing Rule: {rule.name}",
            ))
    
    for share in manual_shares:
        level = evaluate_manual_share(share, user, now)
        if level:
            grants.append(AccessGrant(
                source="manual_share",
                level=level,
                source_id=share.id,
                source_name=share.reason or "Manual Share",
            ))
    
    highest: Optional[AccessLevel] = None
    winning_source: Optional[AccessSource] = None
    for grant in grants:
        candidate = compare_access_levels(highest, grant.level)
        if candidate != highest:
            highest = candidate
            winning_source = grant.source
    
    return SharingEvaluation(
        has_access=highest is not None,
        access_level=highest,
        access_source=winning_source,
        grants=grants,
    )


# =====================================================
# DESCRIPTIONS
# =====================================================

ACCESS_SOURCE_DESCRIPTIONS: Dict[str, str] = {
    "owner": "You are the record owner",
    "org_wide_default": "Organization-wide sharing setting",
    "role_hierarchy": "Access via role hierarchy",
    "sharing_rule": "Granted by sharing rule",
    "manual_share": "Manually shared with you",
}

SHARING_MODEL_DISPLAY_NAMES: Dict[str, str] = {
    "private": "Private",
    "read": "Public Read Only",
    "read_write": "Public Read/Write",
    "full_access": "Public Full Access",
}

SHARING_MODEL_DESCRIPTIONS: Dict[str, str] = {
    "private": "Only record owner and users granted access can view and edit",
    "read": "All users can view records, but only owner and granted users can edit",
    "read_write": "All users can view and edit records",
    "full_access": "All users have full access including transfer and delete",
}


def get_access_source_description(source: str) -> str:
    return ACCESS_SOURCE_DESCRIPTIONS.get(source, "Unknown access source")


def get_sharing_model_display_name(model: str) -> str:
    return SHARING_MODEL_DISPLAY_NAMES.get(model, model)


def get_sharing_model_description(model: str) -> str:
    return SHARING_MODEL_DESCRIPTIONS.get(model, "")
