"""
Bot Message Pipeline tests
User message -> tool calls -> LLM reply -> persisted messages -> events
"""
import uuid
from unittest.mock import MagicMock

import pytest

from metaplatform.agents.intent_detector import ToolCall
from metaplatform.config import settings
from metaplatform.models import BotInstance, ChatMessage
from metaplatform.services.bot_pipeline import (
    FALLBACK_RESPONSE,
    BotMessagePipeline,
    build_prompt_context,
    message_payload,
)
from metaplatform.services.prompt_service import PromptService
from metaplatform.utils.errors import LLMServiceError, NotFoundError, ToolExecutionError, ValidationError


@pytest.fixture
def no_tools_detector():
    detector = MagicMock()
    detector.detect_tool_calls.return_value = []
    return detector


@pytest.fixture
def pipeline(db_session, mock_llm, no_tools_detector):
    return BotMessagePipeline(db_session, llm=mock_llm, intent_detector=no_tools_detector)


class TestProcessBotMessage:
    """process_bot_message tests"""

    def test_persists_both_messages(self, pipeline, bot, user, db_session, published_events):
        outcome = pipeline.process_bot_message(bot.id, user.id, "hi there")

        assert outcome.user_message.role == "user"
        assert outcome.user_message.content == "hi there"
        assert outcome.bot_message.role == "bot"
        assert outcome.bot_message.content == "Hello from the bot"
        assert outcome.bot_message.tokens_used == 42
        assert outcome.bot_message.response_time >= 0
        assert db_session.query(ChatMessage).count() == 2

    def test_creates_running_instance_on_demand(self, pipeline, bot, user, db_session, published_events):
        outcome = pipeline.process_bot_message(bot.id, user.id, "hi")

        assert outcome.instance.status == "running"
        assert db_session.query(BotInstance).count() == 1

    def test_publishes_response_event(self, pipeline, bot, user, published_events):
        outcome = pipeline.process_bot_message(bot.id, user.id, "hi")

        assert len(published_events) == 1
        queue, payload = published_events[0]
        assert queue == settings.bot_responses_queue
        assert payload["instanceId"] == str(outcome.instance.id)
        assert payload["userMessage"]["content"] == "hi"
        assert payload["botResponse"]["content"] == "Hello from the bot"
        assert payload["botResponse"]["tokensUsed"] == 42

    def test_publish_disabled(self, pipeline, bot, user, published_events):
        pipeline.process_bot_message(bot.id, user.id, "hi", publish=False)

        assert published_events == []

    def test_llm_receives_prompts_and_history(self, pipeline, bot, user, mock_llm, published_events):
        pipeline.process_bot_message(bot.id, user.id, "first")
        pipeline.process_bot_message(bot.id, user.id, "second")

        context, history, message = mock_llm.generate_response.call_args.args
        assert context == "You are a friendly support assistant."
        assert "user: first" in history
        assert "bot: Hello from the bot" in history
        assert message == "second"

    def test_llm_failure_uses_fallback(self, pipeline, bot, user, mock_llm, published_events):
        mock_llm.generate_response.side_effect = LLMServiceError("Empty response from LLM API")

        outcome = pipeline.process_bot_message(bot.id, user.id, "hi")

        assert outcome.bot_message.content == FALLBACK_RESPONSE
        assert outcome.bot_message.tokens_used > 0

    def test_unknown_bot_publishes_error_and_raises(self, pipeline, user, published_events):
        bot_id = uuid.uuid4()

        with pytest.raises(NotFoundError):
            pipeline.process_bot_message(bot_id, user.id, "hi")

        queue, payload = published_events[0]
        assert queue == settings.bot_errors_queue
        assert payload["botId"] == str(bot_id)
        assert payload["error"] == "Bot not found"

    def test_bot_without_prompts(self, pipeline, bot, user, db_session, published_events):
        bot.prompts = []
        db_session.commit()

        with pytest.raises(ValidationError, match="no prompts"):
            pipeline.process_bot_message(bot.id, user.id, "hi")

        assert published_events[0][0] == settings.bot_errors_queue

    def test_unknown_instance_id_falls_back_to_users_instance(self, pipeline, bot, user, db_session, published_events):
        existing = BotInstance(bot_id=bot.id, user_id=user.id, status="running")
        db_session.add(existing)
        db_session.commit()

        outcome = pipeline.process_bot_message(bot.id, user.id, "hi", instance_id=uuid.uuid4())

        assert outcome.instance.id == existing.id

    def test_queue_outage_does_not_fail_processing(self, pipeline, bot, user, monkeypatch):
        from metaplatform.services.queue_service import QueueService

        def unavailable(queue, payload):
            raise ConnectionError("redis down")

        monkeypatch.setattr(QueueService, "publish_event", staticmethod(unavailable))

        outcome = pipeline.process_bot_message(bot.id, user.id, "hi")

        assert outcome.bot_message.content == "Hello from the bot"


class TestToolCalls:
    """Tool results feed the reply context"""

    def test_tool_results_added_to_context(self, db_session, bot, user, mcp_tool, mock_llm, published_events):
        detector = MagicMock()
        detector.detect_tool_calls.return_value = [
            ToolCall(tool=mcp_tool, params={"operation": "get_user_info", "userId": str(user.id)},
                     operation="get_user_info"),
        ]
        pipeline = BotMessagePipeline(db_session, llm=mock_llm, intent_detector=detector)

        outcome = pipeline.process_bot_message(bot.id, user.id, "who am I?")

        context = mock_llm.generate_response.call_args.args[0]
        assert "Tool Results:" in context
        assert "Platform: " in context
        assert "owner@example.com" in context
        assert outcome.bot_message.message_metadata == {
            "toolCalls": [{"name": "platform", "operation": "get_user_info", "success": True}]
        }

    def test_failing_tool_does_not_stop_others(self, db_session, bot, user, mcp_tool, mock_llm, published_events):
        executor = MagicMock()
        executor.execute_tool.side_effect = [ToolExecutionError("boom"), {"ok": True}]
        detector = MagicMock()
        detector.detect_tool_calls.return_value = [
            ToolCall(tool=mcp_tool, operation="list_models"),
            ToolCall(tool=mcp_tool, operation="list_bots"),
        ]
        pipeline = BotMessagePipeline(db_session, llm=mock_llm, intent_detector=detector, tool_executor=executor)

        outcome = pipeline.process_bot_message(bot.id, user.id, "do both")

        context = mock_llm.generate_response.call_args.args[0]
        assert "Platform: Error - boom" in context
        assert 'Platform: {"ok": true}' in context
        assert [c["success"] for c in outcome.tool_calls] == [False, True]

    def test_database_failure_in_mcp_tool(self, db_session, bot, user, mcp_tool, mock_llm, published_events):
        detector = MagicMock()
        detector.detect_tool_calls.return_value = [
            ToolCall(tool=mcp_tool, params={"operation": "create_feature", "userId": str(user.id),
                                            "name": "search", "status": "bogus"},
                     operation="create_feature"),
            ToolCall(tool=mcp_tool, params={"operation": "get_user_info", "userId": str(user.id)},
                     operation="get_user_info"),
        ]
        pipeline = BotMessagePipeline(db_session, llm=mock_llm, intent_detector=detector)

        outcome = pipeline.process_bot_message(bot.id, user.id, "add a feature")

        context = mock_llm.generate_response.call_args.args[0]
        assert "Platform: Error - Database error during create_feature" in context
        assert "owner@example.com" in context
        assert [c["success"] for c in outcome.tool_calls] == [False, True]
        assert db_session.query(ChatMessage).count() == 2

    def test_failed_flush_in_tool_is_rolled_back(self, db_session, bot, user, mcp_tool, mock_llm, published_events):
        def broken_write(tool, params):
            db_session.add(ChatMessage(bot_instance_id=uuid.uuid4(), user_id=user.id, role="nobody", content="x"))
            db_session.flush()

        executor = MagicMock()
        executor.execute_tool.side_effect = broken_write
        detector = MagicMock()
        detector.detect_tool_calls.return_value = [ToolCall(tool=mcp_tool, operation="create_entity")]
        pipeline = BotMessagePipeline(db_session, llm=mock_llm, intent_detector=detector, tool_executor=executor)

        outcome = pipeline.process_bot_message(bot.id, user.id, "write something")

        assert outcome.bot_message.content == "Hello from the bot"
        assert outcome.tool_calls[0]["success"] is False
        assert db_session.query(ChatMessage).count() == 2


class TestHelpers:
    """Prompt context and payload helpers"""

    def test_prompt_context_uses_active_versions(self, db_session, bot, user, prompt):
        second = PromptService(db_session).create_prompt(user.id, "Tone", "Keep answers short.")
        PromptService(db_session).update_prompt(prompt.id, user.id, content="You are a concise assistant.")
        bot.prompts.append(second)
        db_session.commit()
        db_session.refresh(bot)

        context = build_prompt_context(bot)

        assert "You are a concise assistant." in context
        assert "Keep answers short." in context
        assert "friendly support" not in context

    def test_message_payload_is_camel_case(self, pipeline, bot, user, published_events):
        outcome = pipeline.process_bot_message(bot.id, user.id, "hi")

        payload = message_payload(outcome.bot_message)

        assert set(payload) == {
            "id", "botInstanceId", "userId", "role", "content",
            "metadata", "responseTime", "tokensUsed", "createdAt",
        }
