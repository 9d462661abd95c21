"""
Pydantic schemas for sharing rules, manual shares and record access.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field, ConfigDict

from app.features.objects.schemas import ObjectDefinitionResponse, SharingModel


RuleAccessLevel = Literal["read", "read_write"]
ShareAccessLevel = Literal["read", "read_write"]
ShareWithType = Literal["user", "role", "public_group"]
RuleType = Literal["criteria", "owner_based"]


# ============================================================================
# Sharing Rules
# ============================================================================

class SharingRuleBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    access_level: RuleAccessLevel = "read"
    share_with_type: ShareWithType
    share_with_id: str
    rule_type: RuleType = "criteria"
    criteria: Optional[Dict[str, Any]] = Field(
        None, description='{"match_type": "all"|"any", "conditions": [{"field", "operator", "value"}]}'
    )
    owner_role_id: Optional[str] = None
    is_active: bool = True


class SharingRuleCreate(SharingRuleBase):
    object_api_name: str


class SharingRuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    access_level: Optional[RuleAccessLevel] = None
    share_with_type: Optional[ShareWithType] = None
    share_with_id: Optional[str] = None
    criteria: Optional[Dict[str, Any]] = None
    owner_role_id: Optional[str] = None
    is_active: Optional[bool] = None


class SharingRuleToggle(BaseModel):
    is_active: bool


class SharingRuleResponse(SharingRuleBase):
    id: str
    organization_id: str
    object_definition_id: str
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Manual Shares
# ============================================================================

class ManualShareCreate(BaseModel):
    share_with_type: Literal["user", "role"]
    share_with_id: str
    access_level: ShareAccessLevel = "read"
    reason: Optional[str] = Field(None, max_length=1000)
    expires_at: Optional[datetime] = None


class ManualShareUpdate(BaseModel):
    access_level: Optional[ShareAccessLevel] = None
    reason: Optional[str] = Field(None, max_length=1000)
    expires_at: Optional[datetime] = None


class ManualShareResponse(BaseModel):
    id: str
    organization_id: str
    object_api_name: str
    record_id: str
    share_with_type: str
    share_with_id: str
    access_level: str
    reason: Optional[str]
    shared_by: Optional[str]
    expires_at: Optional[datetime]
    created_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Object sharing settings & access
# ============================================================================

class ObjectSharingSettings(BaseModel):
    object: ObjectDefinitionResponse
    sharing_model: SharingModel
    sharing_model_name: str
    sharing_model_description: str
    sharing_rules: List[SharingRuleResponse]


class ObjectSharingModelUpdate(BaseModel):
    sharing_model: SharingModel


class RecordAccessResponse(BaseModel):
    has_access: bool
    access_level: Optional[str] = None
    access_source: Optional[str] = None
    description: Optional[str] = None


class RecordSharingInfo(BaseModel):
    user_id: str
    user_name: str
    user_email: str
    access_level: str
    access_source: str
    source_name: str


class ShareTargetUser(BaseModel):
    id: str
    name: str
    email: str
    
    model_config = ConfigDict(from_attributes=True)


class ShareTargetRole(BaseModel):
    id: str
    name: str
    
    model_config = ConfigDict(from_attributes=True)


class ShareTargets(BaseModel):
    users: List[ShareTargetUser]
    roles: List[ShareTargetRole]
