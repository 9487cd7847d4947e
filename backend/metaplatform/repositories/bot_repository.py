"""
Bot repositories
Bots with their prompts and tools, per-user instances and chat history
"""
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from metaplatform.models import Bot, BotInstance, BotTool, ChatMessage, Prompt
from metaplatform.repositories.base_repository import BaseRepository


class BotRepository(BaseRepository[Bot]):

    def __init__(self, db: Session):
        super().__init__(db, Bot)

    def get_with_relations(self, bot_id: UUID) -> Optional[Bot]:
        """Bot with prompts (and their versions) and tools eagerly loaded"""
        return (
            self.db.query(Bot)
            .options(
                selectinload(Bot.prompts).selectinload(Prompt.versions),
                selectinload(Bot.tools),
            )
            .filter(Bot.id == bot_id)
            .first()
        )

    def list_tools(self, bot_id: UUID, active_only: bool = False) -> List[BotTool]:
        query = self.db.query(BotTool).filter(BotTool.bot_id == bot_id)
        if active_only:
            query = query.filter(BotTool.is_active.is_(True))
        return query.order_by(BotTool.created_at).all()

    def list_tools_for_user(self, user_id: UUID) -> List[BotTool]:
        return (
            self.db.query(BotTool)
            .join(Bot, Bot.id == BotTool.bot_id)
            .filter(Bot.user_id == user_id)
            .order_by(BotTool.created_at.desc())
            .all()
        )


class BotInstanceRepository(BaseRepository[BotInstance]):

    def __init__(self, db: Session):
        super().__init__(db, BotInstance)

    def get_for_user(self, bot_id: UUID, user_id: UUID) -> Optional[BotInstance]:
        return (
            self.db.query(BotInstance)
            .filter(BotInstance.bot_id == bot_id, BotInstance.user_id == user_id)
            .first()
        )


class ChatMessageRepository(BaseRepository[ChatMessage]):

    def __init__(self, db: Session):
        super().__init__(db, ChatMessage)

    def recent(self, bot_instance_id: UUID, limit: int = 10) -> List[ChatMessage]:
        """Last `limit` messages of an instance, oldest first"""
        messages = (
            self.db.query(ChatMessage)
            .filter(ChatMessage.bot_instance_id == bot_instance_id)
            .order_by(ChatMessage.created_at.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(messages))

    def clear(self, bot_instance_id: UUID) -> int:
        deleted = (
            self.db.query(ChatMessage)
            .filter(ChatMessage.bot_instance_id == bot_instance_id)
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return deleted
