"""
Bots API router
Bot CRUD with prompt assignment
"""
import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from metaplatform.database import get_db
from metaplatform.models import Bot, Prompt, User
from metaplatform.repositories import BaseRepository, BotRepository
from metaplatform.schemas.bot import BotCreate, BotResponse, BotUpdate
from metaplatform.utils.decorators import handle_service_errors
from metaplatform.utils.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()


def get_owned_bot(db: Session, bot_id: UUID, user_id: UUID) -> Bot:
    bot = BotRepository(db).get_owned(bot_id, user_id)
    if not bot:
        raise NotFoundError("Bot not found")
    return bot


def _owned_prompts(db: Session, user_id: UUID, prompt_ids: List[UUID]) -> List[Prompt]:
    if not prompt_ids:
        return []
    prompts = db.query(Prompt).filter(
        Prompt.id.in_(prompt_ids),
        Prompt.user_id == user_id,
    ).all()
    found = {prompt.id for prompt in prompts}
    missing = [str(pid) for pid in prompt_ids if pid not in found]
    if missing:
        raise NotFoundError(f"Prompt not found: {', '.join(missing)}")
    return prompts


@router.get("", response_model=List[BotResponse])
async def list_bots(
    user_id: UUID = Query(...),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return BotRepository(db).list_owned(user_id, skip=skip, limit=limit)


@router.post("", response_model=BotResponse, status_code=status.HTTP_201_CREATED)
@handle_service_errors(resource="bot", operation="create")
async def create_bot(
    request: BotCreate,
    db: Session = Depends(get_db),
):
    """
    Create a bot

    prompt_ids must reference the user's own prompts. A bot needs at least
    one prompt before it can be started.
    """
    if not BaseRepository(db, User).get_by_id(request.user_id):
        raise NotFoundError("User not found")
    duplicate = db.query(Bot).filter(
        Bot.user_id == request.user_id,
        Bot.name == request.name,
    ).first()
    if duplicate:
        raise ConflictError(f"Bot already exists: {request.name}")

    bot = Bot(
        name=request.name,
        display_name=request.display_name or request.name,
        description=request.description,
        model=request.model,
        is_active=request.is_active,
        user_id=request.user_id,
    )
    bot.prompts = _owned_prompts(db, request.user_id, request.prompt_ids)

    db.add(bot)
    db.commit()
    db.refresh(bot)

    logger.info(f"Created bot {bot.name} ({bot.id}) with {len(bot.prompts)} prompts")
    return bot


@router.get("/{bot_id}", response_model=BotResponse)
async def get_bot(
    bot_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    return get_owned_bot(db, bot_id, user_id)


@router.put("/{bot_id}", response_model=BotResponse)
async def update_bot(
    bot_id: UUID,
    request: BotUpdate,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    """Update a bot; prompt_ids, when given, replaces the prompt assignment"""
    bot = get_owned_bot(db, bot_id, user_id)
    changes = request.model_dump(exclude_unset=True)

    prompt_ids = changes.pop("prompt_ids", None)
    if prompt_ids is not None:
        bot.prompts = _owned_prompts(db, user_id, prompt_ids)
    for key, value in changes.items():
        if value is not None:
            setattr(bot, key, value)

    db.commit()
    db.refresh(bot)
    return bot


@router.delete("/{bot_id}")
async def delete_bot(
    bot_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    """Delete a bot with its tools, instances and conversations"""
    bot = get_owned_bot(db, bot_id, user_id)
    db.delete(bot)
    db.commit()

    logger.info(f"Deleted bot {bot_id}")
    return {"message": "Bot deleted successfully"}
