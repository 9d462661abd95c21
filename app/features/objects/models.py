"""
Object and field definition models.

These metadata rows describe the dynamic CRM schema (Contact, Lead, ...).
A null organization_id marks a standard object shared by every organization.
A field with a null column_name lives in the record's custom_fields map.
"""
from sqlalchemy import String, Boolean, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


SHARING_MODELS = ("private", "read", "read_write", "full_access")


class ObjectDefinition(Base, TimestampMixin):
    """A CRM object type such as Contact or Lead."""
    __tablename__ = "object_definitions"
    __table_args__ = (
        UniqueConstraint("organization_id", "api_name", name="uq_object_definitions_org_api_name"),
    )
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    
    api_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    plural_label: Mapped[str] = mapped_column(String(255), nullable=False)
    is_standard: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    
    # Organization-wide default record access
    sharing_model: Mapped[str] = mapped_column(String(20), default="private", nullable=False)
    
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    def __repr__(self) -> str:
        return f"<ObjectDefinition(id={self.id}, api_name={self.api_name!r})>"


class FieldDefinition(Base, TimestampMixin):
    """One field of an object definition."""
    __tablename__ = "field_definitions"
    __table_args__ = (
        UniqueConstraint("object_definition_id", "api_name", name="uq_field_definitions_object_api_name"),
    )
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    object_definition_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("object_definitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    
    api_name: Mapped[str] = mapped_column(String(100), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    data_type: Mapped[str] = mapped_column(String(50), default="text", nullable=False)
    column_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    
    is_custom_field: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_standard: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_sensitive: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    def __repr__(self) -> str:
        return f"<FieldDefinition(id={self.id}, api_name={self.api_name!r})>"
