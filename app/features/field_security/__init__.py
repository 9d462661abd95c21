"""
Field-level security feature module.

Decides, per role, which fields of a dynamically defined object are visible
and editable, and strips disallowed fields from record payloads.

Default behaviour: a field with no explicit permission row for a role is
both visible and editable.
"""
