"""
Bot Execution Service tests
Instance lifecycle, chat and conversation history
"""
from datetime import datetime, timedelta

import pytest

from metaplatform.config import settings
from metaplatform.models import Bot, BotInstance, ChatMessage
from metaplatform.services.bot_execution_service import BotExecutionService
from metaplatform.services.bot_pipeline import BotMessagePipeline
from metaplatform.utils.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError


@pytest.fixture
def service(db_session, mock_llm):
    pipeline = BotMessagePipeline(db_session, llm=mock_llm)
    return BotExecutionService(db_session, pipeline=pipeline)


class TestInstanceLifecycle:
    """start / stop / status"""

    def test_start(self, service, bot, user):
        instance = service.start_bot_instance(bot.id, user.id)

        assert instance.status == "running"
        assert instance.last_started_at is not None
        assert instance.error_message is None

    def test_start_twice_conflicts(self, service, bot, user):
        service.start_bot_instance(bot.id, user.id)

        with pytest.raises(ConflictError, match="already running"):
            service.start_bot_instance(bot.id, user.id)

    def test_start_foreign_bot(self, service, bot, other_user):
        with pytest.raises(AuthorizationError):
            service.start_bot_instance(bot.id, other_user.id)

    def test_start_inactive_bot(self, service, bot, user, db_session):
        bot.is_active = False
        db_session.commit()

        with pytest.raises(NotFoundError, match="not active"):
            service.start_bot_instance(bot.id, user.id)

    def test_start_without_prompts_marks_error(self, service, user, db_session):
        bare = Bot(name="bare", display_name="Bare", user_id=user.id)
        db_session.add(bare)
        db_session.commit()

        with pytest.raises(ValidationError, match="no prompts"):
            service.start_bot_instance(bare.id, user.id)

        instance = service.get_bot_instance_status(bare.id, user.id)
        assert instance.status == "error"
        assert instance.error_message == "Bot has no prompts configured"

    def test_restart_after_stop_reuses_instance(self, service, bot, user, db_session):
        first = service.start_bot_instance(bot.id, user.id)
        stopped = service.stop_bot_instance(bot.id, user.id)
        second = service.start_bot_instance(bot.id, user.id)

        assert stopped.status == "stopped"
        assert stopped.last_stopped_at is not None
        assert second.id == first.id
        assert db_session.query(BotInstance).count() == 1

    def test_stop_without_instance(self, service, bot, user):
        with pytest.raises(NotFoundError):
            service.stop_bot_instance(bot.id, user.id)

    def test_stop_twice_conflicts(self, service, bot, user):
        service.start_bot_instance(bot.id, user.id)
        service.stop_bot_instance(bot.id, user.id)

        with pytest.raises(ConflictError, match="already stopped"):
            service.stop_bot_instance(bot.id, user.id)

    def test_status_without_instance(self, service, bot, user):
        assert service.get_bot_instance_status(bot.id, user.id) is None


class TestMessaging:
    """send_message / enqueue_message"""

    def test_send_message_requires_running_instance(self, service, bot, user):
        with pytest.raises(NotFoundError):
            service.send_message(bot.id, user.id, "hi")

    def test_send_message_to_stopped_bot(self, service, bot, user):
        service.start_bot_instance(bot.id, user.id)
        service.stop_bot_instance(bot.id, user.id)

        with pytest.raises(ConflictError, match="not running"):
            service.send_message(bot.id, user.id, "hi")

    def test_send_message(self, service, bot, user, published_events):
        service.start_bot_instance(bot.id, user.id)

        user_message, bot_message = service.send_message(bot.id, user.id, "hello")

        assert user_message.content == "hello"
        assert bot_message.content == "Hello from the bot"

    def test_enqueue_message(self, service, bot, user, published_events):
        instance = service.start_bot_instance(bot.id, user.id)

        service.enqueue_message(bot.id, user.id, "later please")

        assert published_events == [(settings.bot_messages_queue, {
            "botId": str(bot.id),
            "userId": str(user.id),
            "message": "later please",
            "instanceId": str(instance.id),
        })]


class TestConversation:
    """History and clearing"""

    @pytest.fixture
    def instance_with_messages(self, db_session, bot, user):
        instance = BotInstance(bot_id=bot.id, user_id=user.id, status="running")
        db_session.add(instance)
        db_session.flush()
        base = datetime(2024, 1, 1, 12, 0, 0)
        for i in range(5):
            db_session.add(ChatMessage(
                bot_instance_id=instance.id,
                user_id=user.id,
                role="user" if i % 2 == 0 else "bot",
                content=f"message {i}",
                created_at=base + timedelta(seconds=i),
            ))
        db_session.commit()
        return instance

    def test_history_is_latest_oldest_first(self, service, bot, user, instance_with_messages):
        history = service.get_conversation_history(bot.id, user.id, limit=3)

        assert [m.content for m in history] == ["message 2", "message 3", "message 4"]

    def test_history_without_instance(self, service, bot, user):
        with pytest.raises(NotFoundError):
            service.get_conversation_history(bot.id, user.id)

    def test_clear_conversation(self, service, bot, user, instance_with_messages, db_session):
        deleted = service.clear_conversation(bot.id, user.id)

        assert deleted == 5
        assert db_session.query(ChatMessage).count() == 0
        assert db_session.query(BotInstance).count() == 1
