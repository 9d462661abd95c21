"""
Pydantic schemas for organization-related responses.
"""
from datetime import datetime
from pydantic import BaseModel


class OrganizationPublic(BaseModel):
    """Public organization information."""
    id: str
    name: str
    
    model_config = {"from_attributes": True}


class OrganizationResponse(OrganizationPublic):
    """Schema for organization responses."""
    is_active: bool
    created_at: datetime
    updated_at: datetime
