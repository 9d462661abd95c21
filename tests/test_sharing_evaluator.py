from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.features.sharing.evaluator import (
    RecordSharingContext,
    UserSharingContext,
    compare_access_levels,
    evaluate_condition,
    evaluate_criteria,
    evaluate_manual_share,
    evaluate_record_access,
    evaluate_sharing_rule,
    has_hierarchy_access,
    is_share_expired,
    satisfies_access,
    sharing_model_to_access_level,
    validate_sharing_criteria,
)


NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _record(owner_id="owner", organization_id="org1", field_values=None, owner_role_id=None):
    return RecordSharingContext(
        record_id="rec1",
        object_api_name="Lead",
        owner_id=owner_id,
        organization_id=organization_id,
        field_values=field_values,
        owner_role_id=owner_role_id,
    )


def _user(user_id="u1", role_id="r1", organization_id="org1", hierarchy_level=None):
    return UserSharingContext(
        user_id=user_id, role_id=role_id, organization_id=organization_id, hierarchy_level=hierarchy_level
    )


def _rule(**kwargs):
    values = dict(
        id="rule1", name="Leads to assistants", is_active=True, rule_type="criteria",
        criteria=None, owner_role_id=None, access_level="read",
        share_with_type="role", share_with_id="r1",
    )
    values.update(kwargs)
    return SimpleNamespace(**values)


def _share(**kwargs):
    values = dict(
        id="share1", share_with_type="user", share_with_id="u1",
        access_level="read_write", expires_at=None, reason=None,
    )
    values.update(kwargs)
    return SimpleNamespace(**values)


def test_access_level_ordering():
    assert compare_access_levels("read", "read_write") == "read_write"
    assert compare_access_levels("full_access", "read") == "full_access"
    assert compare_access_levels(None, "read") == "read"
    assert compare_access_levels(None, None) is None


def test_satisfies_access():
    assert satisfies_access("read", "read")
    assert not satisfies_access("read", "write")
    assert satisfies_access("read_write", "write")
    assert satisfies_access("full_access", "write")
    assert not satisfies_access(None, "read")


def test_sharing_model_levels():
    assert sharing_model_to_access_level("private") is None
    assert sharing_model_to_access_level("read") == "read"
    assert sharing_model_to_access_level("full_access") == "full_access"


@pytest.mark.parametrize("operator,value,expected", [
    ("equals", "Hot", True),
    ("not_equals", "Hot", False),
    ("contains", "OT", True),
    ("not_contains", "cold", True),
    ("starts_with", "h", True),
    ("in", ["Warm", "Hot"], True),
    ("in", "Hot", False),
])
def test_string_conditions(operator, value, expected):
    assert evaluate_condition({"field": "rating", "operator": operator, "value": value}, {"rating": "Hot"}) is expected


def test_numeric_and_null_conditions():
    values = {"amount": 500, "notes": None}
    assert evaluate_condition({"field": "amount", "operator": "greater_than", "value": 100}, values)
    assert not evaluate_condition({"field": "amount", "operator": "less_than", "value": 100}, values)
    assert not evaluate_condition({"field": "amount", "operator": "greater_than", "value": "100"}, values)
    assert evaluate_condition({"field": "notes", "operator": "is_null"}, values)
    assert evaluate_condition({"field": "missing", "operator": "is_null"}, values)
    assert evaluate_condition({"field": "amount", "operator": "is_not_null"}, values)
    assert not evaluate_condition({"field": "amount", "operator": "bogus", "value": 1}, values)


def test_criteria_match_types():
    values = {"status": "Open", "amount": 10}
    conditions = [
        {"field": "status", "operator": "equals", "value": "Open"},
        {"field": "amount", "operator": "greater_than", "value": 50},
    ]
    assert not evaluate_criteria({"match_type": "all", "conditions": conditions}, values)
    assert evaluate_criteria({"match_type": "any", "conditions": conditions}, values)
    assert evaluate_criteria({"match_type": "all", "conditions": []}, values)
    assert evaluate_criteria(None, values)


def test_validate_sharing_criteria():
    assert validate_sharing_criteria({"match_type": "all", "conditions": []}) == (True, None)
    assert validate_sharing_criteria([])[0] is False
    assert validate_sharing_criteria({"match_type": "all"}) == (False, "Criteria must have conditions array")
    assert validate_sharing_criteria({"match_type": "some", "conditions": []})[0] is False
    ok, error = validate_sharing_criteria(
        {"match_type": "any", "conditions": [{"field": "status", "operator": "like", "value": "x"}]}
    )
    assert not ok
    assert error == "Condition 0 has invalid operator"


def test_rule_targets_and_activity():
    user = _user()
    assert evaluate_sharing_rule(_rule(), _record(), user) == "read"
    assert evaluate_sharing_rule(_rule(is_active=False), _record(), user) is None
    assert evaluate_sharing_rule(_rule(share_with_id="r2"), _record(), user) is None
    assert evaluate_sharing_rule(_rule(share_with_type="user", share_with_id="u1"), _record(), user) == "read"
    assert evaluate_sharing_rule(_rule(share_with_type="public_group", share_with_id="g1"), _record(), user) is None


def test_criteria_rule_checked_only_with_field_values():
    rule = _rule(criteria={"match_type": "all", "conditions": [
        {"field": "status", "operator": "equals", "value": "Open"},
    ]})
    user = _user()
    assert evaluate_sharing_rule(rule, _record(field_values={"status": "Open"}), user) == "read"
    assert evaluate_sharing_rule(rule, _record(field_values={"status": "Closed"}), user) is None
    assert evaluate_sharing_rule(rule, _record(field_values=None), user) == "read"


def test_owner_based_rule_matches_owner_role():
    rule = _rule(rule_type="owner_based", owner_role_id="r9", access_level="read_write")
    user = _user()
    assert evaluate_sharing_rule(rule, _record(owner_role_id="r9"), user) == "read_write"
    assert evaluate_sharing_rule(rule, _record(owner_role_id="r3"), user) is None


def test_manual_share_expiry():
    user = _user()
    assert evaluate_manual_share(_share(), user, NOW) == "read_write"
    assert evaluate_manual_share(_share(expires_at=NOW - timedelta(days=1)), user, NOW) is None
    assert evaluate_manual_share(_share(expires_at=NOW + timedelta(days=1)), user, NOW) == "read_write"
    assert evaluate_manual_share(_share(share_with_id="u2"), user, NOW) is None


def test_naive_expiry_is_read_as_utc():
    assert is_share_expired(datetime(2026, 6, 1, 11, 0), NOW)
    assert not is_share_expired(datetime(2026, 6, 1, 13, 0), NOW)
    assert not is_share_expired(None, NOW)


def test_hierarchy_needs_strictly_lower_level():
    assert has_hierarchy_access(1, 3)
    assert not has_hierarchy_access(3, 3)
    assert not has_hierarchy_access(None, 3)
    assert not has_hierarchy_access(1, None)


def test_owner_gets_full_access():
    evaluation = evaluate_record_access(_record(owner_id="u1"), _user(), "private")
    assert evaluation.has_access
    assert evaluation.access_level == "full_access"
    assert evaluation.access_source == "owner"


def test_private_model_without_grants_has_no_access():
    evaluation = evaluate_record_access(_record(), _user(), "private")
    assert not evaluation.has_access
    assert evaluation.access_level is None
    assert evaluation.grants == []


def test_organization_wide_default():
    evaluation = evaluate_record_access(_record(), _user(), "read")
    assert evaluation.access_level == "read"
    assert evaluation.access_source == "org_wide_default"


def test_highest_grant_wins():
    evaluation = evaluate_record_access(
        _record(),
        _user(hierarchy_level=2),
        "read",
        sharing_rules=[_rule(access_level="read")],
        manual_shares=[_share(access_level="read")],
        owner_hierarchy_level=5,
        now=NOW,
    )
    assert evaluation.access_level == "read_write"
    assert evaluation.access_source == "role_hierarchy"
    assert [g.source for g in evaluation.grants] == [
        "org_wide_default", "role_hierarchy", "sharing_rule", "manual_share",
    ]


def test_other_organization_never_has_access():
    evaluation = evaluate_record_access(
        _record(organization_id="org2"),
        _user(),
        "full_access",
        manual_shares=[_share()],
        now=NOW,
    )
    assert evaluation.has_access is False
    assert evaluation.grants == []
