"""
Pydantic schemas for object and field definitions.
"""
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field, ConfigDict


SharingModel = Literal["private", "read", "read_write", "full_access"]


class FieldDefinitionBase(BaseModel):
    """Base field definition schema."""
    api_name: str = Field(..., min_length=1, max_length=100, pattern="^[A-Za-z][A-Za-z0-9_]*$")
    label: str = Field(..., min_length=1, max_length=255)
    data_type: str = Field("text", max_length=50)
    column_name: Optional[str] = Field(
        None, max_length=100, description="Record column; null stores the value in custom_fields"
    )
    is_required: bool = False
    is_visible: bool = True
    is_sensitive: bool = False
    display_order: int = 0


class FieldDefinitionCreate(FieldDefinitionBase):
    """Schema for adding a field to an object."""
    pass


class FieldDefinitionResponse(FieldDefinitionBase):
    """Schema for field definition responses."""
    id: str
    object_definition_id: str
    organization_id: Optional[str]
    is_custom_field: bool
    is_standard: bool
    is_active: bool
    
    model_config = ConfigDict(from_attributes=True)


class ObjectDefinitionBase(BaseModel):
    """Base object definition schema."""
    api_name: str = Field(..., min_length=1, max_length=100, pattern="^[A-Za-z][A-Za-z0-9_]*$")
    label: str = Field(..., min_length=1, max_length=255)
    plural_label: str = Field(..., min_length=1, max_length=255)
    sharing_model: SharingModel = "private"


class ObjectDefinitionCreate(ObjectDefinitionBase):
    """Schema for creating a custom object."""
    pass


class ObjectDefinitionResponse(ObjectDefinitionBase):
    """Schema for object definition responses."""
    id: str
    organization_id: Optional[str]
    is_standard: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


class ObjectWithFieldCount(ObjectDefinitionResponse):
    """Object definition with the number of active fields."""
    field_count: int = 0


class ObjectWithFields(ObjectDefinitionResponse):
    """Object definition with its active fields."""
    fields: list[FieldDefinitionResponse] = []
