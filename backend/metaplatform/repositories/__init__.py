"""
Repository layer
"""
from metaplatform.repositories.base_repository import BaseRepository
from metaplatform.repositories.bot_repository import (
    BotRepository,
    BotInstanceRepository,
    ChatMessageRepository,
)

__all__ = [
    "BaseRepository",
    "BotRepository",
    "BotInstanceRepository",
    "ChatMessageRepository",
]
