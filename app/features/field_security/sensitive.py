"""
Sensitive field filter.

A second, independent pass over a field list: fields holding PII or medical
data are dropped for callers without privileged access, whatever the role
permission resolver decided for them.
"""
from typing import List, Sequence

from app.features.field_security.resolver import FieldLike


SENSITIVE_FIELD_API_NAMES = (
    "medical_info",
    "birth_preferences",
    "emergency_contact",
    "ssn",
    "insurance_info",
    "payment_info",
)


def is_sensitive_field(field: FieldLike) -> bool:
    return bool(field.is_sensitive) or field.api_name in SENSITIVE_FIELD_API_NAMES


def filter_sensitive_fields(fields: Sequence[FieldLike], has_privileged_access: bool) -> List[FieldLike]:
    if has_privileged_access:
        return list(fields)
    return [f for f in fields if not is_sensitive_field(f)]
