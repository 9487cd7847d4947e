"""
Prompt schemas
Prompts are versioned; list/get responses present the active version.
"""
from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

PromptType = Literal["llm", "code_generation"]


# ========== Request Schemas ==========


class PromptCreate(BaseModel):
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    content: str = Field(..., min_length=1, description="Prompt text of version 1")
    type: PromptType = "llm"


class PromptUpdate(BaseModel):
    """Changing content or type creates a new active version"""

    name: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = Field(default=None, min_length=1)
    type: Optional[PromptType] = None
    version_description: Optional[str] = Field(
        default=None, description="Change note stored on the new version"
    )


# ========== Response Schemas ==========


class PromptVersionResponse(BaseModel):
    id: UUID
    prompt_id: UUID
    name: str
    content: str
    type: str
    version: int
    description: Optional[str] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class PromptResponse(BaseModel):
    """Prompt joined with its active version"""

    id: UUID
    name: str
    description: Optional[str] = None
    user_id: UUID
    content: Optional[str] = None
    type: Optional[str] = None
    version: Optional[int] = None
    version_count: int = 0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_prompt(cls, prompt) -> "PromptResponse":
        active = prompt.active_version
        return cls(
            id=prompt.id,
            name=prompt.name,
            description=prompt.description,
            user_id=prompt.user_id,
            content=active.content if active else None,
            type=active.type if active else None,
            version=active.version if active else None,
            version_count=len(prompt.versions),
            created_at=prompt.created_at,
            updated_at=prompt.updated_at,
        )
