"""
Field permission model.

One row per (role, field) pair. A missing row is not an error: it means the
role may see and edit the field. Writers store is_editable=False whenever
is_visible is False.
"""
from sqlalchemy import String, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


class FieldPermission(Base, TimestampMixin):
    __tablename__ = "field_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "field_definition_id", name="uq_field_permissions_role_field"),
    )
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    role_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    field_definition_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("field_definitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_editable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    def __repr__(self) -> str:
        return (
            f"<FieldPermission(role_id={self.role_id}, field={self.field_definition_id}, "
            f"visible={self.is_visible}, editable={self.is_editable})>"
        )
