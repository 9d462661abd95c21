"""
Pydantic schemas for CRM records.

Record payloads are free-form: which keys a caller may send or receive
depends on field definitions and field permissions, not on a fixed schema.
"""
from typing import Any, Dict, List
from pydantic import BaseModel, Field


class RecordCreate(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict, description="Values keyed by column name")
    custom_fields: Dict[str, Any] = Field(default_factory=dict, description="Values keyed by field api name")


class RecordUpdate(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)


class RecordListResponse(BaseModel):
    items: List[Dict[str, Any]]
    total: int
