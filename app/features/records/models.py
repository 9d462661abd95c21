"""
Generic CRM record model.

One table stores records of every object type. Values of fields with a
column_name live in data, values of custom fields live in custom_fields,
both keyed the way the field definitions name them.
"""
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


class CrmRecord(Base, TimestampMixin):
    __tablename__ = "crm_records"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    object_api_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    owner_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    custom_fields: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    
    def to_payload(self) -> Dict[str, Any]:
        """Flatten into the single dict shape the field filters work on."""
        payload: Dict[str, Any] = dict(self.data or {})
        payload.update(
            id=self.id,
            organization_id=self.organization_id,
            owner_id=self.owner_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            custom_fields=dict(self.custom_fields or {}),
        )
        return payload
    
    def field_values(self) -> Dict[str, Any]:
        """Column and custom values in one flat map, for sharing criteria."""
        return {**(self.data or {}), **(self.custom_fields or {})}
    
    def __repr__(self) -> str:
        return f"<CrmRecord(id={self.id}, object={self.object_api_name!r}, owner_id={self.owner_id})>"
