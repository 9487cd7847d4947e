"""
Meta Platform - Test Configuration
==================================
pytest fixtures for backend tests

- SQLite in-memory database shared through a StaticPool
- get_db is overridden with the per-test session
- No LLM API key: intent detection falls back to keyword rules and bot
  replies fall back to the canned response unless a test injects a mock LLM
- Redis is never contacted; tests patch QueueService where events are published
"""

import os
from typing import AsyncGenerator
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Set test environment before importing app
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["SENTRY_DSN"] = ""
os.environ["CHAT_RELAY_ENABLED"] = "false"
os.environ["BUILD_DOCKER_IMAGES"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["SEED_SAMPLE_DATA"] = "false"

# Now import app modules
from metaplatform.main import app
from metaplatform.database import Base, SessionLocal, engine, get_db
from metaplatform.models import Bot, BotTool, User
from metaplatform.services.llm_service import LLMResult
from metaplatform.services.prompt_service import PromptService
from metaplatform.services.queue_service import QueueService


@pytest.fixture(scope="function")
def db_session():
    """Fresh tables and session for each test"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the test session"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def published_events(monkeypatch):
    """Capture QueueService.publish_event calls as (queue, payload) tuples"""
    events = []

    def fake_publish(queue, payload):
        events.append((queue, payload))

    monkeypatch.setattr(QueueService, "publish_event", staticmethod(fake_publish))
    return events


# ========== Data fixtures ==========


@pytest.fixture
def user(db_session) -> User:
    user = User(
        email="owner@example.com",
        password="not-a-real-hash",
        first_name="Olive",
        last_name="Owner",
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def other_user(db_session) -> User:
    user = User(email="other@example.com", password="not-a-real-hash")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def prompt(db_session, user):
    return PromptService(db_session).create_prompt(
        user_id=user.id,
        name="Support persona",
        content="You are a friendly support assistant.",
    )


@pytest.fixture
def bot(db_session, user, prompt) -> Bot:
    bot = Bot(name="helper", display_name="Helper", user_id=user.id)
    bot.prompts.append(prompt)
    db_session.add(bot)
    db_session.commit()
    db_session.refresh(bot)
    return bot


@pytest.fixture
def mcp_tool(db_session, bot, user) -> BotTool:
    tool = BotTool(
        name="platform",
        display_name="Platform",
        description="Platform data access",
        type="mcp_tool",
        config={"userId": str(user.id), "permissions": ["read", "write"], "operations": []},
        bot_id=bot.id,
    )
    db_session.add(tool)
    db_session.commit()
    db_session.refresh(tool)
    return tool


@pytest.fixture
def mock_llm():
    """LLMService stand-in returning a fixed reply"""
    llm = MagicMock()
    llm.generate_response.return_value = LLMResult(response="Hello from the bot", tokens_used=42)
    return llm


@pytest.fixture
def sample_schema_definition():
    return {
        "fields": [
            {"name": "email", "type": "string", "required": True},
            {"name": "age", "type": "number", "required": False},
            {"name": "active", "type": "boolean"},
        ]
    }
