"""
Bot ORM models
Bots, their running instances, tools, chat history, versioned prompts and workflows
"""
from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from metaplatform.database import Base


class BotInstanceStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"
    STARTING = "starting"
    STOPPING = "stopping"


class BotToolType(str, Enum):
    HTTP_REQUEST = "http_request"
    DATABASE_QUERY = "database_query"
    FILE_OPERATION = "file_operation"
    SHELL_COMMAND = "shell_command"
    CUSTOM_SCRIPT = "custom_script"
    WORKFLOW_ACTION = "workflow_action"
    MCP_TOOL = "mcp_tool"


class MessageRole(str, Enum):
    USER = "user"
    BOT = "bot"
    SYSTEM = "system"


bot_prompts = Table(
    "bot_prompts",
    Base.metadata,
    Column("bot_id", Uuid, ForeignKey("bots.id", ondelete="CASCADE"), primary_key=True),
    Column("prompt_id", Uuid, ForeignKey("prompts.id", ondelete="CASCADE"), primary_key=True),
)


class Bot(Base):
    """LLM persona with prompts and tools"""

    __tablename__ = "bots"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    model = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    prompts = relationship("Prompt", secondary=bot_prompts, back_populates="bots")
    tools = relationship("BotTool", back_populates="bot", cascade="all, delete-orphan", passive_deletes=True)
    instances = relationship("BotInstance", back_populates="bot", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def prompt_ids(self):
        return [prompt.id for prompt in self.prompts]

    def __repr__(self):
        return f"<Bot(id={self.id}, name='{self.name}')>"


class BotInstance(Base):
    """Per-user running state of a bot"""

    __tablename__ = "bot_instances"
    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'stopped', 'error', 'starting', 'stopping')",
            name="ck_bot_instances_status",
        ),
        UniqueConstraint("bot_id", "user_id", name="uq_bot_instances_bot_user"),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    bot_id = Column(Uuid, ForeignKey("bots.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), default=BotInstanceStatus.STOPPED.value, nullable=False)
    last_started_at = Column(DateTime, nullable=True)
    last_stopped_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    instance_metadata = Column("metadata", JSON, default=dict, nullable=True)  # "metadata" is reserved

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    bot = relationship("Bot", back_populates="instances")
    messages = relationship(
        "ChatMessage",
        back_populates="bot_instance",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChatMessage.created_at",
    )

    def __repr__(self):
        return f"<BotInstance(id={self.id}, bot_id={self.bot_id}, status='{self.status}')>"


class BotTool(Base):
    """Typed tool a bot may invoke

    `config` shape depends on `type` (see services.tool_execution_service).
    """

    __tablename__ = "bot_tools"
    __table_args__ = (
        CheckConstraint(
            "type IN ('http_request', 'database_query', 'file_operation', 'shell_command', "
            "'custom_script', 'workflow_action', 'mcp_tool')",
            name="ck_bot_tools_type",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(50), nullable=False)
    config = Column(JSON, default=dict, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    requires_auth = Column(Boolean, default=False, nullable=False)
    bot_id = Column(Uuid, ForeignKey("bots.id", ondelete="CASCADE"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    bot = relationship("Bot", back_populates="tools")

    def __repr__(self):
        return f"<BotTool(id={self.id}, name='{self.name}', type='{self.type}')>"


class ChatMessage(Base):
    """Conversation message of a bot instance"""

    __tablename__ = "chat_messages"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'bot', 'system')", name="ck_chat_messages_role"),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    bot_instance_id = Column(Uuid, ForeignKey("bot_instances.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)
    message_metadata = Column("metadata", JSON, default=dict, nullable=True)
    response_time = Column(Integer, nullable=True)  # ms
    tokens_used = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    bot_instance = relationship("BotInstance", back_populates="messages")

    def __repr__(self):
        return f"<ChatMessage(id={self.id}, role='{self.role}')>"


class Prompt(Base):
    """Versioned prompt; exactly one version is active"""

    __tablename__ = "prompts"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    versions = relationship(
        "PromptVersion",
        back_populates="prompt",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PromptVersion.version",
    )
    bots = relationship("Bot", secondary=bot_prompts, back_populates="prompts")

    @property
    def active_version(self):
        for version in self.versions:
            if version.is_active:
                return version
        return None

    @property
    def latest_version(self):
        return self.versions[-1] if self.versions else None

    def __repr__(self):
        return f"<Prompt(id={self.id}, name='{self.name}')>"


class PromptVersion(Base):
    """Immutable snapshot of prompt content"""

    __tablename__ = "prompt_versions"
    __table_args__ = (
        CheckConstraint("type IN ('llm', 'code_generation')", name="ck_prompt_versions_type"),
        UniqueConstraint("prompt_id", "version", name="uq_prompt_versions_prompt_version"),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    prompt_id = Column(Uuid, ForeignKey("prompts.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    type = Column(String(20), default="llm", nullable=False)
    version = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    prompt = relationship("Prompt", back_populates="versions")

    def __repr__(self):
        return f"<PromptVersion(prompt_id={self.prompt_id}, version={self.version})>"


class Workflow(Base):
    """Ordered list of tool actions"""

    __tablename__ = "workflows"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    config = Column(JSON, default=dict, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    actions = relationship(
        "WorkflowAction",
        back_populates="workflow",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WorkflowAction.order",
    )

    def __repr__(self):
        return f"<Workflow(id={self.id}, name='{self.name}')>"


class WorkflowAction(Base):
    """Single step of a workflow; `type` is a bot tool type"""

    __tablename__ = "workflow_actions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False)
    config = Column(JSON, default=dict, nullable=False)
    order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    workflow_id = Column(Uuid, ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    workflow = relationship("Workflow", back_populates="actions")

    def __repr__(self):
        return f"<WorkflowAction(id={self.id}, name='{self.name}', order={self.order})>"
