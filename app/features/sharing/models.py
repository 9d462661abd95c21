"""
Sharing rule and manual share models.
"""
from datetime import datetime
from typing import Any, Dict
from sqlalchemy import String, Boolean, ForeignKey, JSON, Text, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


class SharingRule(Base, TimestampMixin):
    """
    Organization rule granting record access beyond ownership.
    
    criteria rules match records by field values
    ({"match_type": "all"|"any", "conditions": [{"field", "operator", "value"}]});
    owner_based rules match records owned by users of owner_role_id.
    """
    __tablename__ = "sharing_rules"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    object_definition_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("object_definitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    
    # read | read_write
    access_level: Mapped[str] = mapped_column(String(20), default="read", nullable=False)
    # user | role | public_group
    share_with_type: Mapped[str] = mapped_column(String(20), nullable=False)
    share_with_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    
    # criteria | owner_based
    rule_type: Mapped[str] = mapped_column(String(20), default="criteria", nullable=False)
    criteria: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    owner_role_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("roles.id", ondelete="SET NULL"),
        nullable=True
    )
    
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    
    def __repr__(self) -> str:
        return f"<SharingRule(id={self.id}, name={self.name!r}, access={self.access_level})>"


class ManualShare(Base, TimestampMixin):
    """Access to one record granted by its owner or an admin."""
    __tablename__ = "manual_shares"
    __table_args__ = (
        UniqueConstraint(
            "object_api_name", "record_id", "share_with_type", "share_with_id",
            name="uq_manual_shares_record_target"
        ),
    )
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    
    object_api_name: Mapped[str] = mapped_column(String(100), nullable=False)
    record_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    
    # user | role
    share_with_type: Mapped[str] = mapped_column(String(20), nullable=False)
    share_with_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    access_level: Mapped[str] = mapped_column(String(20), default="read", nullable=False)
    
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    shared_by: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    
    def __repr__(self) -> str:
        return f"<ManualShare(id={self.id}, record={self.object_api_name}:{self.record_id}, level={self.access_level})>"
