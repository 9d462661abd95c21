"""
Record-level sharing feature module.

Access to a record is additive: the owner, the object's organization-wide
default, the role hierarchy, sharing rules and manual shares can each grant
a level, and the highest level wins.
"""
