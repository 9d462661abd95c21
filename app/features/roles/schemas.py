"""
Pydantic schemas for role management and audit logs.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=50, description="Role name, unique within the organization")
    description: Optional[str] = Field(None, max_length=1000, description="Role description")
    permissions: Dict[str, List[str]] = Field(
        default_factory=dict,
        description='Resource -> actions map; {"*": ["*"]} is a full admin'
    )
    hierarchy_level: Optional[int] = Field(None, ge=0, description="Lower level = more privileged")


class RoleCreate(RoleBase):
    """Schema for creating a new role."""
    
    @field_validator('name')
    @classmethod
    def name_alphanumeric_underscore(cls, v: str) -> str:
        """Validate role name format."""
        if not v.replace('_', '').replace('-', '').isalnum():
            raise ValueError('Role name must contain only alphanumeric characters, underscores, and hyphens')
        return v


class RoleUpdate(BaseModel):
    """Schema for updating a role."""
    description: Optional[str] = Field(None, max_length=1000)
    permissions: Optional[Dict[str, List[str]]] = None
    hierarchy_level: Optional[int] = Field(None, ge=0)


class RoleResponse(RoleBase):
    """Schema for role response."""
    id: str
    organization_id: str
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    organization_id: Optional[str]
    details: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int
