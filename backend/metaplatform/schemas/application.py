"""
Application and feature schemas
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

FeatureStatus = Literal["draft", "active", "deprecated"]

# also the build directory and image name
APPLICATION_NAME_PATTERN = r"^[a-z0-9][a-z0-9_-]*$"


class ComponentCreate(BaseModel):
    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    config: Dict[str, Any] = Field(default_factory=dict)
    props: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class ComponentResponse(BaseModel):
    id: UUID
    name: str
    type: str
    config: Dict[str, Any]
    props: Dict[str, Any]
    is_active: bool

    class Config:
        from_attributes = True


class ApplicationCreate(BaseModel):
    user_id: UUID
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        pattern=APPLICATION_NAME_PATTERN,
        description="Also used as the build directory and image name",
    )
    display_name: Optional[str] = None
    description: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    schema_id: Optional[UUID] = None
    feature_ids: List[UUID] = Field(default_factory=list)
    components: List[ComponentCreate] = Field(default_factory=list)


class ApplicationUpdate(BaseModel):
    display_name: Optional[str] = None
    description: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    schema_id: Optional[UUID] = None
    feature_ids: Optional[List[UUID]] = None


class ApplicationResponse(BaseModel):
    id: UUID
    name: str
    display_name: str
    description: Optional[str] = None
    config: Dict[str, Any]
    status: str
    schema_id: Optional[UUID] = None
    user_id: UUID
    feature_ids: List[UUID] = Field(default_factory=list)
    components: List[ComponentResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BuildRequestResponse(BaseModel):
    application_id: UUID
    status: str
    queued: bool


class FeatureCreate(BaseModel):
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    display_name: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    config: Dict[str, Any] = Field(default_factory=dict)
    status: FeatureStatus = "draft"


class FeatureUpdate(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    config: Optional[Dict[str, Any]] = None
    status: Optional[FeatureStatus] = None


class FeatureResponse(BaseModel):
    id: UUID
    name: str
    display_name: str
    description: Optional[str] = None
    is_active: bool
    config: Dict[str, Any]
    status: str
    user_id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
