"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field


class UserBase(BaseModel):
    """Base user schema with common fields."""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)


class UserUpdate(BaseModel):
    """Schema for updating user information."""
    name: str | None = Field(None, min_length=1, max_length=255)


class UserRoleUpdate(BaseModel):
    """Schema for assigning a role to a user (null clears the role)."""
    role_id: str | None = Field(None, description="Role ID")


class UserResponse(UserBase):
    """Schema for user responses."""
    id: str
    is_active: bool
    is_admin: bool
    organization_id: str | None = None
    role_id: str | None = None
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    
    model_config = {"from_attributes": True}


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: str
    name: str
    email: str
    
    model_config = {"from_attributes": True}
