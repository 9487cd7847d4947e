"""
Database initialization and seed data
Called on startup (API and worker) to create tables and the default account.
"""
import logging
import os

from sqlalchemy.orm import Session

from metaplatform.database import init_db
from metaplatform.models import Bot, BotTool, User
from metaplatform.services.prompt_service import PromptService
from metaplatform.utils.password import get_password_hash

logger = logging.getLogger(__name__)

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@metaplatform.local")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")

ASSISTANT_BOT_NAME = "platform_assistant"
ASSISTANT_PROMPT = (
    "You are the Meta Platform assistant. You help users manage their data models, "
    "entities, applications, prompts, bots and workflows. When tool results are "
    "provided, summarize them clearly and mention identifiers the user may need."
)


def init_database(db: Session) -> None:
    """
    1. Create missing tables
    2. Create the admin account
    """
    logger.info("Initializing database...")
    init_db()
    _ensure_admin_user(db)
    logger.info("Database initialization completed")


def _ensure_admin_user(db: Session) -> User:
    admin = db.query(User).filter(User.email == ADMIN_EMAIL).first()
    if admin:
        logger.debug(f"Admin user already exists: {admin.email}")
        return admin

    admin = User(
        email=ADMIN_EMAIL,
        password=get_password_hash(ADMIN_PASSWORD),
        first_name="Platform",
        last_name="Admin",
        role="admin",
        is_active=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)

    logger.info(f"Admin user created: {admin.email}")
    logger.warning("Default admin password is set. Change it in production (ADMIN_PASSWORD env var)")
    return admin


def seed_sample_data(db: Session) -> None:
    """
    Platform assistant bot with a prompt and an MCP tool

    Runs only when SEED_SAMPLE_DATA=true and the admin has no bots yet.
    """
    if os.getenv("SEED_SAMPLE_DATA", "").lower() != "true":
        return

    admin = _ensure_admin_user(db)
    if db.query(Bot).filter(Bot.user_id == admin.id).first():
        logger.debug("Sample data already present, skipping")
        return

    logger.info("Seeding sample data...")

    prompt = PromptService(db).create_prompt(
        user_id=admin.id,
        name="Platform assistant",
        content=ASSISTANT_PROMPT,
        description="Default assistant instructions",
    )

    bot = Bot(
        name=ASSISTANT_BOT_NAME,
        display_name="Platform Assistant",
        description="Manages platform resources through the MCP tool",
        user_id=admin.id,
    )
    bot.prompts.append(prompt)
    bot.tools.append(
        BotTool(
            name="platform",
            display_name="Platform",
            description="Create, list and search platform resources",
            type="mcp_tool",
            config={"userId": str(admin.id), "permissions": ["read", "write"], "operations": []},
        )
    )
    db.add(bot)
    db.commit()

    logger.info(f"Sample data seeding completed (bot={bot.id})")
