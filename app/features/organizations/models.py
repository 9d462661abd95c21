"""
Organization model.

Organizations are the tenant key of every CRM row: roles, field permissions,
sharing rules, manual shares and records all carry an organization_id.
"""
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


class Organization(Base, TimestampMixin):
    """A business using the CRM portal."""
    __tablename__ = "organizations"
    
    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    
    # Organization settings
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name!r})>"
