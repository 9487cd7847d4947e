"""
Bot schemas
Bots, bot tools and bot execution (start/stop/chat)
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from metaplatform.models import BotToolType


# ========== Bots ==========


class BotCreate(BaseModel):
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    display_name: Optional[str] = None
    description: Optional[str] = None
    model: Optional[str] = Field(default=None, description="LLM model; defaults to the platform model")
    is_active: bool = True
    prompt_ids: List[UUID] = Field(default_factory=list)


class BotUpdate(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    model: Optional[str] = None
    is_active: Optional[bool] = None
    prompt_ids: Optional[List[UUID]] = None


class BotResponse(BaseModel):
    id: UUID
    name: str
    display_name: str
    description: Optional[str] = None
    model: Optional[str] = None
    is_active: bool
    user_id: UUID
    prompt_ids: List[UUID] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ========== Bot tools ==========


class BotToolCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    display_name: Optional[str] = None
    description: Optional[str] = None
    type: BotToolType
    config: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    requires_auth: bool = False


class BotToolUpdate(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None
    requires_auth: Optional[bool] = None


class BotToolResponse(BaseModel):
    id: UUID
    name: str
    display_name: str
    description: Optional[str] = None
    type: str
    config: Dict[str, Any]
    is_active: bool
    requires_auth: bool
    bot_id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ToolTestRequest(BaseModel):
    params: Optional[Dict[str, Any]] = Field(
        default=None, description="Overrides the default test parameters of the tool type"
    )


class ToolTestResponse(BaseModel):
    success: bool
    params: Dict[str, Any]
    result: Any = None
    error: Optional[str] = None


# ========== Bot execution ==========


class BotActionRequest(BaseModel):
    user_id: UUID


class ChatRequest(BaseModel):
    user_id: UUID
    message: str = Field(..., min_length=1, max_length=10000)


class BotStatusResponse(BaseModel):
    bot_id: UUID
    user_id: UUID
    instance_id: Optional[UUID] = None
    status: str
    last_started_at: Optional[datetime] = None
    last_stopped_at: Optional[datetime] = None
    error_message: Optional[str] = None


class ChatMessageResponse(BaseModel):
    id: UUID
    bot_instance_id: UUID
    user_id: UUID
    role: str
    content: str
    metadata: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("message_metadata", "metadata")
    )
    response_time: Optional[int] = None
    tokens_used: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ChatResponse(BaseModel):
    user_message: ChatMessageResponse
    bot_response: ChatMessageResponse


class QueuedMessageResponse(BaseModel):
    queued: bool
    bot_id: UUID
    instance_id: UUID
