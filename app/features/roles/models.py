"""
Role and AuditLog models.
"""
from typing import Any, Dict, List
from sqlalchemy import String, ForeignKey, JSON, Text, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


class Role(Base, TimestampMixin):
    """
    Role model for grouping permissions within an organization.
    
    Examples: admin, sales_manager, assistant
    
    permissions maps a resource (CRM object api name, "roles", ...) to the
    actions granted on it; "*" is a wildcard on either side, so
    {"*": ["*"]} is a full admin.
    """
    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_roles_organization_name"),
    )
    
    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    
    # Role definition
    name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    permissions: Mapped[Dict[str, List[str]]] = mapped_column(JSON, nullable=False, default=dict)
    
    # Lower level = more privileged; null = outside the hierarchy
    hierarchy_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    
    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r}, org_id={self.organization_id})>"


class AuditLog(Base, TimestampMixin):
    """
    Audit log for tracking security-related changes.
    
    Records every change to roles, field permissions, sharing rules and
    manual shares: who did what, when, and from where.
    """
    __tablename__ = "audit_logs"
    
    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    # Actor
    user_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    
    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)
    
    # Context
    organization_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)
    
    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, resource={self.resource_type})>"
