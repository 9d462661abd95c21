"""
Role management feature module.

Roles carry a wildcard-aware permission map ({resource: [actions]}) and an
optional hierarchy level used by record sharing. Field-level permissions and
sharing rules are attached to roles by the field_security and sharing modules.
"""
