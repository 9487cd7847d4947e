"""
SQLAlchemy ORM Models
"""
from metaplatform.models.core import (
    User,
    Schema,
    Relationship,
    Entity,
    Application,
    Component,
    Feature,
    application_features,
)
from metaplatform.models.bots import (
    Bot,
    BotInstance,
    BotInstanceStatus,
    BotTool,
    BotToolType,
    ChatMessage,
    MessageRole,
    Prompt,
    PromptVersion,
    Workflow,
    WorkflowAction,
    bot_prompts,
)

__all__ = [
    "User",
    "Schema",
    "Relationship",
    "Entity",
    "Application",
    "Component",
    "Feature",
    "application_features",
    "Bot",
    "BotInstance",
    "BotInstanceStatus",
    "BotTool",
    "BotToolType",
    "ChatMessage",
    "MessageRole",
    "Prompt",
    "PromptVersion",
    "Workflow",
    "WorkflowAction",
    "bot_prompts",
]
