"""
Workflow schemas
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from metaplatform.models import BotToolType


class WorkflowActionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: BotToolType = Field(..., description="Tool type executed by this step")
    config: Dict[str, Any] = Field(default_factory=dict)
    order: int = 0
    is_active: bool = True


class WorkflowActionUpdate(BaseModel):
    name: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    order: Optional[int] = None
    is_active: Optional[bool] = None


class WorkflowActionResponse(BaseModel):
    id: UUID
    name: str
    type: str
    config: Dict[str, Any]
    order: int
    is_active: bool
    workflow_id: UUID

    class Config:
        from_attributes = True


class WorkflowCreate(BaseModel):
    user_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=255)
    display_name: Optional[str] = None
    description: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    actions: List[WorkflowActionCreate] = Field(default_factory=list)


class WorkflowUpdate(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class WorkflowResponse(BaseModel):
    id: UUID
    name: str
    display_name: str
    description: Optional[str] = None
    config: Dict[str, Any]
    is_active: bool
    user_id: Optional[UUID] = None
    actions: List[WorkflowActionResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
