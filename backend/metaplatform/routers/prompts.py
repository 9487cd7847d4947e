"""
Prompts API router
Versioned prompt management; list/get present the active version
"""
import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from metaplatform.database import get_db
from metaplatform.schemas.prompt import (
    PromptCreate,
    PromptResponse,
    PromptUpdate,
    PromptVersionResponse,
)
from metaplatform.services.prompt_service import PromptService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=PromptResponse, status_code=status.HTTP_201_CREATED)
async def create_prompt(
    request: PromptCreate,
    db: Session = Depends(get_db),
):
    """Create a prompt; its first version is active immediately"""
    prompt = PromptService(db).create_prompt(
        user_id=request.user_id,
        name=request.name,
        content=request.content,
        prompt_type=request.type,
        description=request.description,
    )
    return PromptResponse.from_prompt(prompt)


@router.get("", response_model=List[PromptResponse])
async def list_prompts(
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    return [PromptResponse.from_prompt(p) for p in PromptService(db).list_prompts(user_id)]


@router.get("/{prompt_id}", response_model=PromptResponse)
async def get_prompt(
    prompt_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    return PromptResponse.from_prompt(PromptService(db).get_prompt(prompt_id, user_id))


@router.put("/{prompt_id}", response_model=PromptResponse)
async def update_prompt(
    prompt_id: UUID,
    request: PromptUpdate,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    """
    Update a prompt

    Name/description edits apply in place. A content or type change adds a new
    version and makes it the active one; earlier versions are kept.
    """
    prompt = PromptService(db).update_prompt(
        prompt_id,
        user_id,
        name=request.name,
        description=request.description,
        content=request.content,
        prompt_type=request.type,
        version_description=request.version_description,
    )
    return PromptResponse.from_prompt(prompt)


@router.get("/{prompt_id}/versions", response_model=List[PromptVersionResponse])
async def list_prompt_versions(
    prompt_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    """All versions, newest first"""
    return PromptService(db).list_versions(prompt_id, user_id)


@router.post("/{prompt_id}/versions/{version}/activate", response_model=PromptVersionResponse)
async def activate_prompt_version(
    prompt_id: UUID,
    version: int,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    activated = PromptService(db).activate_version(prompt_id, user_id, version)
    logger.info(f"Prompt {prompt_id} activated v{version}")
    return activated


@router.delete("/{prompt_id}")
async def delete_prompt(
    prompt_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    PromptService(db).delete_prompt(prompt_id, user_id)
    return {"message": "Prompt deleted successfully"}
