"""
Bot execution API router
Start/stop a user's bot instance and chat with it
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from metaplatform.database import get_db
from metaplatform.models import BotInstance, BotInstanceStatus
from metaplatform.schemas.bot import (
    BotActionRequest,
    BotStatusResponse,
    ChatMessageResponse,
    ChatRequest,
    ChatResponse,
    QueuedMessageResponse,
)
from metaplatform.services.bot_execution_service import BotExecutionService


router = APIRouter()


def _status_response(bot_id: UUID, user_id: UUID, instance: BotInstance = None) -> BotStatusResponse:
    if instance is None:
        return BotStatusResponse(bot_id=bot_id, user_id=user_id, status=BotInstanceStatus.STOPPED.value)
    return BotStatusResponse(
        bot_id=instance.bot_id,
        user_id=instance.user_id,
        instance_id=instance.id,
        status=instance.status,
        last_started_at=instance.last_started_at,
        last_stopped_at=instance.last_stopped_at,
        error_message=instance.error_message,
    )


@router.post("/{bot_id}/start", response_model=BotStatusResponse)
async def start_bot(
    bot_id: UUID,
    request: BotActionRequest,
    db: Session = Depends(get_db),
):
    """
    Start the user's instance of a bot

    - 404: bot missing or inactive
    - 403: bot owned by someone else
    - 409: already running
    - 400: bot has no prompts (instance left in status "error")
    """
    instance = BotExecutionService(db).start_bot_instance(bot_id, request.user_id)
    return _status_response(bot_id, request.user_id, instance)


@router.post("/{bot_id}/stop", response_model=BotStatusResponse)
async def stop_bot(
    bot_id: UUID,
    request: BotActionRequest,
    db: Session = Depends(get_db),
):
    instance = BotExecutionService(db).stop_bot_instance(bot_id, request.user_id)
    return _status_response(bot_id, request.user_id, instance)


@router.get("/{bot_id}/status", response_model=BotStatusResponse)
async def get_bot_status(
    bot_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    """Instance status; a user who never started the bot gets status stopped"""
    instance = BotExecutionService(db).get_bot_instance_status(bot_id, user_id)
    return _status_response(bot_id, user_id, instance)


@router.post("/{bot_id}/chat", response_model=ChatResponse)
async def chat_with_bot(
    bot_id: UUID,
    request: ChatRequest,
    db: Session = Depends(get_db),
):
    """Process a message synchronously and return both stored messages"""
    user_message, bot_message = BotExecutionService(db).send_message(
        bot_id, request.user_id, request.message
    )
    return ChatResponse(
        user_message=ChatMessageResponse.model_validate(user_message),
        bot_response=ChatMessageResponse.model_validate(bot_message),
    )


@router.post(
    "/{bot_id}/messages",
    response_model=QueuedMessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def queue_message(
    bot_id: UUID,
    request: ChatRequest,
    db: Session = Depends(get_db),
):
    """Hand a message to the worker; the reply arrives over Socket.IO"""
    instance = BotExecutionService(db).enqueue_message(bot_id, request.user_id, request.message)
    return QueuedMessageResponse(queued=True, bot_id=bot_id, instance_id=instance.id)


@router.get("/{bot_id}/chat", response_model=List[ChatMessageResponse])
async def get_conversation(
    bot_id: UUID,
    user_id: UUID = Query(...),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return BotExecutionService(db).get_conversation_history(bot_id, user_id, limit)


@router.delete("/{bot_id}/chat")
async def clear_conversation(
    bot_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
):
    deleted = BotExecutionService(db).clear_conversation(bot_id, user_id)
    return {"message": "Conversation cleared successfully", "deleted": deleted}
