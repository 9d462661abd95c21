"""
Pydantic schemas for field-level security routes.
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict

from app.features.objects.schemas import FieldDefinitionResponse


class FieldPermissionSet(BaseModel):
    """Visible/editable flags for one field."""
    field_definition_id: str
    is_visible: bool = True
    is_editable: bool = True


class FieldPermissionUpsert(FieldPermissionSet):
    """Schema for setting a single field permission."""
    role_id: str


class BulkFieldPermissionUpdate(BaseModel):
    """Schema for setting many field permissions of one role at once."""
    permissions: List[FieldPermissionSet] = Field(default_factory=list)


class CopyFieldPermissionsRequest(BaseModel):
    """Schema for copying a role's field permissions onto another role."""
    target_role_id: str
    object_api_name: Optional[str] = Field(None, description="Limit the copy to one object")


class FieldPermissionResponse(BaseModel):
    id: str
    organization_id: str
    role_id: str
    field_definition_id: str
    is_visible: bool
    is_editable: bool
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


class CountResponse(BaseModel):
    count: int


class AccessibleFieldsResponse(BaseModel):
    """Fields the current user can read on an object, with edit flags."""
    object_api_name: str
    visible_fields: List[FieldDefinitionResponse]
    editable_field_ids: List[str]
    access: Dict[str, Dict[str, bool]]


class CanEditFieldResponse(BaseModel):
    field_definition_id: str
    can_edit: bool


class UserSecurityContextResponse(BaseModel):
    user_id: str
    role_id: Optional[str]
    organization_id: Optional[str]
    is_admin: bool
    hierarchy_level: Optional[int]
    
    model_config = ConfigDict(from_attributes=True)
