"""
Bot Execution Service
Per-user bot instance lifecycle and chat.

Instance states:
    stopped -> starting -> running -> stopping -> stopped
    starting -> error (startup failure)
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from metaplatform.config import settings
from metaplatform.models import BotInstance, BotInstanceStatus, ChatMessage
from metaplatform.repositories import BotInstanceRepository, BotRepository, ChatMessageRepository
from metaplatform.services.bot_pipeline import BotMessagePipeline
from metaplatform.services.queue_service import QueueService
from metaplatform.utils.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class BotExecutionService:
    """
    Bot instance control

    Usage:
        service = BotExecutionService(db)
        service.start_bot_instance(bot_id, user_id)
        user_message, bot_message = service.send_message(bot_id, user_id, "hello")
    """

    def __init__(self, db: Session, pipeline: Optional[BotMessagePipeline] = None):
        self.db = db
        self.pipeline = pipeline
        self.bots = BotRepository(db)
        self.instances = BotInstanceRepository(db)
        self.messages = ChatMessageRepository(db)

    def start_bot_instance(self, bot_id: UUID, user_id: UUID) -> BotInstance:
        """
        Start (or restart) the user's instance of a bot

        Raises:
            NotFoundError: bot missing or inactive
            AuthorizationError: bot owned by another user
            ConflictError: instance already running
        """
        bot = self.bots.get_with_relations(bot_id)
        if not bot or not bot.is_active:
            raise NotFoundError("Bot not found or not active")
        if bot.user_id != user_id:
            raise AuthorizationError("Unauthorized to start this bot")

        instance = self.instances.get_for_user(bot_id, user_id)
        if instance and instance.status == BotInstanceStatus.RUNNING.value:
            raise ConflictError("Bot is already running")

        if instance is None:
            instance = BotInstance(bot_id=bot_id, user_id=user_id)
            self.instances.create(instance)
        instance.status = BotInstanceStatus.STARTING.value
        instance.last_started_at = datetime.utcnow()
        instance.error_message = None
        self.db.commit()

        if not bot.prompts:
            instance.status = BotInstanceStatus.ERROR.value
            instance.error_message = "Bot has no prompts configured"
            self.db.commit()
            logger.warning(f"Bot {bot_id} failed to start: no prompts")
            raise ValidationError("Bot has no prompts configured")

        instance.status = BotInstanceStatus.RUNNING.value
        self.db.commit()
        self.db.refresh(instance)
        logger.info(f"Started bot {bot_id} for user {user_id} (instance={instance.id})")
        return instance

    def stop_bot_instance(self, bot_id: UUID, user_id: UUID) -> BotInstance:
        instance = self.instances.get_for_user(bot_id, user_id)
        if not instance:
            raise NotFoundError("Bot instance not found")
        if instance.status == BotInstanceStatus.STOPPED.value:
            raise ConflictError("Bot is already stopped")

        instance.status = BotInstanceStatus.STOPPING.value
        self.db.commit()

        instance.status = BotInstanceStatus.STOPPED.value
        instance.last_stopped_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(instance)
        logger.info(f"Stopped bot {bot_id} for user {user_id}")
        return instance

    def get_bot_instance_status(self, bot_id: UUID, user_id: UUID) -> Optional[BotInstance]:
        return self.instances.get_for_user(bot_id, user_id)

    def _running_instance(self, bot_id: UUID, user_id: UUID) -> BotInstance:
        instance = self.instances.get_for_user(bot_id, user_id)
        if not instance:
            raise NotFoundError("Bot instance not found")
        if instance.status != BotInstanceStatus.RUNNING.value:
            raise ConflictError("Bot is not running")
        return instance

    def send_message(self, bot_id: UUID, user_id: UUID, message: str) -> Tuple[ChatMessage, ChatMessage]:
        """Process a message synchronously; returns (user message, bot message)"""
        instance = self._running_instance(bot_id, user_id)
        pipeline = self.pipeline or BotMessagePipeline(self.db)
        outcome = pipeline.process_bot_message(bot_id, user_id, message, instance_id=instance.id)
        return outcome.user_message, outcome.bot_message

    def enqueue_message(self, bot_id: UUID, user_id: UUID, message: str) -> BotInstance:
        """Hand a message to the worker through the bot_messages queue"""
        instance = self._running_instance(bot_id, user_id)
        QueueService.publish_event(settings.bot_messages_queue, {
            "botId": str(bot_id),
            "userId": str(user_id),
            "message": message,
            "instanceId": str(instance.id),
        })
        logger.info(f"Queued message for bot {bot_id} (instance={instance.id})")
        return instance

    def get_conversation_history(self, bot_id: UUID, user_id: UUID, limit: int = 50) -> List[ChatMessage]:
        """Most recent `limit` messages, oldest first"""
        instance = self.instances.get_for_user(bot_id, user_id)
        if not instance:
            raise NotFoundError("Bot instance not found")
        return self.messages.recent(instance.id, limit)

    def clear_conversation(self, bot_id: UUID, user_id: UUID) -> int:
        instance = self.instances.get_for_user(bot_id, user_id)
        if not instance:
            raise NotFoundError("Bot instance not found")
        deleted = self.messages.clear(instance.id)
        self.db.commit()
        logger.info(f"Cleared {deleted} messages for instance {instance.id}")
        return deleted
