"""
Bot message pipeline
Turns one user message into a persisted bot reply:

    instance -> bot (prompts, tools) -> user message -> tool calls
    -> conversation history -> LLM reply (or fallback) -> bot message
    -> bot_responses event

Failures publish a bot_errors event and are re-raised to the caller.
"""
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from metaplatform.agents.intent_detector import IntentDetectionService, ToolCall
from metaplatform.config import settings
from metaplatform.models import Bot, BotInstance, BotInstanceStatus, ChatMessage, MessageRole
from metaplatform.repositories import BotInstanceRepository, BotRepository, ChatMessageRepository
from metaplatform.services.llm_service import LLMService, estimate_token_count
from metaplatform.services.queue_service import QueueService
from metaplatform.services.tool_execution_service import ToolExecutionService
from metaplatform.utils.errors import AppError, NotFoundError, ValidationError
from metaplatform.utils.metrics import bot_message_duration_seconds, bot_messages_total

logger = logging.getLogger(__name__)

FALLBACK_RESPONSE = "I apologize, but I encountered an error processing your request. Please try again."
HISTORY_LIMIT = 10


@dataclass
class PipelineOutcome:
    instance: BotInstance
    user_message: ChatMessage
    bot_message: ChatMessage
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)


def message_payload(message: ChatMessage) -> Dict[str, Any]:
    """Chat message as sent over queues and Socket.IO"""
    return {
        "id": str(message.id),
        "botInstanceId": str(message.bot_instance_id),
        "userId": str(message.user_id),
        "role": message.role,
        "content": message.content,
        "metadata": message.message_metadata or {},
        "responseTime": message.response_time,
        "tokensUsed": message.tokens_used,
        "createdAt": message.created_at.isoformat() if message.created_at else None,
    }


def build_prompt_context(bot: Bot) -> str:
    """Active version content of every prompt, blank-line separated"""
    contents = []
    for prompt in bot.prompts:
        active = prompt.active_version
        if active and active.content:
            contents.append(active.content)
    return "\n\n".join(contents)


def format_history(messages: List[ChatMessage]) -> str:
    return "\n".join(f"{message.role}: {message.content}" for message in messages)


class BotMessagePipeline:
    """
    Processes bot messages for the worker, the synchronous chat endpoint
    and the MCP execute_bot operation
    """

    def __init__(
        self,
        db: Session,
        llm: Optional[LLMService] = None,
        intent_detector: Optional[IntentDetectionService] = None,
        tool_executor: Optional[ToolExecutionService] = None,
    ):
        self.db = db
        self.llm = llm
        self.intent_detector = intent_detector
        self.tool_executor = tool_executor or ToolExecutionService(db)
        self.bots = BotRepository(db)
        self.instances = BotInstanceRepository(db)
        self.messages = ChatMessageRepository(db)

    def process_bot_message(
        self,
        bot_id: UUID,
        user_id: UUID,
        message: str,
        instance_id: Optional[UUID] = None,
        publish: bool = True,
    ) -> PipelineOutcome:
        """
        Handle one user message

        Args:
            bot_id: target bot
            user_id: sender
            message: message text
            instance_id: instance to use, when known
            publish: emit bot_responses / bot_errors events

        Returns:
            PipelineOutcome with the persisted user and bot messages

        Raises:
            NotFoundError: bot not found
            ValidationError: bot has no prompts
        """
        started = time.monotonic()
        try:
            outcome = self._process(bot_id, user_id, message, instance_id, started)
        except Exception as e:
            self.db.rollback()
            bot_messages_total.labels(status="error").inc()
            logger.error(f"Error processing message for bot {bot_id}: {e}", exc_info=not isinstance(e, AppError))
            if publish:
                self._publish(settings.bot_errors_queue, {
                    "botId": str(bot_id),
                    "userId": str(user_id),
                    "instanceId": str(instance_id) if instance_id else None,
                    "error": str(e),
                })
            raise

        bot_messages_total.labels(status="success").inc()
        bot_message_duration_seconds.observe(time.monotonic() - started)
        logger.info(f"Processed message for bot {bot_id} (instance={outcome.instance.id})")

        if publish:
            self._publish(settings.bot_responses_queue, {
                "instanceId": str(outcome.instance.id),
                "botId": str(bot_id),
                "userId": str(user_id),
                "userMessage": message_payload(outcome.user_message),
                "botResponse": message_payload(outcome.bot_message),
            })
        return outcome

    def _process(
        self,
        bot_id: UUID,
        user_id: UUID,
        message: str,
        instance_id: Optional[UUID],
        started: float,
    ) -> PipelineOutcome:
        instance = self._resolve_instance(bot_id, user_id, instance_id)

        bot = self.bots.get_with_relations(bot_id)
        if not bot:
            raise NotFoundError("Bot not found")
        if not bot.prompts:
            raise ValidationError("Bot has no prompts configured")

        user_message = ChatMessage(
            bot_instance_id=instance.id,
            user_id=user_id,
            role=MessageRole.USER.value,
            content=message,
        )
        self.messages.create(user_message)
        self.db.commit()

        prompt_context = build_prompt_context(bot)

        detector = self.intent_detector or IntentDetectionService()
        tool_calls = detector.detect_tool_calls(message, bot.tools, user_id)
        tool_results, tool_summary = self._execute_tool_calls(tool_calls)

        history = format_history(self.messages.recent(instance.id, HISTORY_LIMIT))

        context = prompt_context
        if tool_results:
            context = f"{prompt_context}\n\nTool Results:\n{tool_results}"

        llm = self.llm or LLMService(model=bot.model or None)
        try:
            result = llm.generate_response(context, history, message)
            response_text, tokens_used = result.response, result.tokens_used
        except AppError as e:
            logger.warning(f"Bot {bot_id} reply generation failed, using fallback: {e}")
            response_text, tokens_used = FALLBACK_RESPONSE, estimate_token_count(FALLBACK_RESPONSE)

        bot_message = ChatMessage(
            bot_instance_id=instance.id,
            user_id=user_id,
            role=MessageRole.BOT.value,
            content=response_text,
            tokens_used=tokens_used,
            response_time=int((time.monotonic() - started) * 1000),
            message_metadata={"toolCalls": tool_summary} if tool_summary else {},
        )
        self.messages.create(bot_message)
        self.db.commit()
        self.db.refresh(user_message)
        self.db.refresh(bot_message)

        return PipelineOutcome(
            instance=instance,
            user_message=user_message,
            bot_message=bot_message,
            tool_calls=tool_summary,
        )

    def _resolve_instance(self, bot_id: UUID, user_id: UUID, instance_id: Optional[UUID]) -> BotInstance:
        instance = None
        if instance_id:
            instance = self.instances.get_by_id(instance_id)
            if instance and instance.bot_id != bot_id:
                logger.warning(f"Instance {instance_id} does not belong to bot {bot_id}; ignoring it")
                instance = None
        if instance is None:
            instance = self.instances.get_for_user(bot_id, user_id)
        if instance is None:
            if not self.bots.get_by_id(bot_id):
                raise NotFoundError("Bot not found")
            instance = BotInstance(
                bot_id=bot_id,
                user_id=user_id,
                status=BotInstanceStatus.RUNNING.value,
                last_started_at=datetime.utcnow(),
            )
            self.instances.create(instance)
            self.db.commit()
            logger.info(f"Created bot instance {instance.id} for bot {bot_id}")
        return instance

    def _execute_tool_calls(self, tool_calls: List[ToolCall]):
        """Run tool calls in order; one failing tool never stops the others"""
        lines = []
        summary = []
        for call in tool_calls:
            tool = call.tool
            try:
                result = self.tool_executor.execute_tool(tool, call.params)
                lines.append(f"{tool.display_name}: {json.dumps(result, default=str)}")
                summary.append({"name": tool.name, "operation": call.operation, "success": True})
            except Exception as e:
                self.db.rollback()
                logger.warning(f"Tool {tool.name} failed: {e}")
                lines.append(f"{tool.display_name}: Error - {e}")
                summary.append({"name": tool.name, "operation": call.operation, "success": False})
        return "\n".join(lines), summary

    @staticmethod
    def _publish(queue: str, payload: Dict[str, Any]) -> None:
        try:
            QueueService.publish_event(queue, payload)
        except Exception as e:
            logger.warning(f"Could not publish to {queue}: {e}")
