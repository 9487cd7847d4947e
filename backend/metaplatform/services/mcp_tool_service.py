"""
MCP Tool Service
Lets a bot manage the platform itself: CRUD over models, applications, bots,
prompts, features, workflows, tools, entities and relationships, plus a few
user-level operations (info, data summary, search, bot control).

Operations are named "<action>_<entity>" (list_models, get_bot, ...) or are
one of the named special operations.
"""
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple, Type
from uuid import UUID

from sqlalchemy import func, inspect, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from metaplatform.agents.tool_catalog import MCP_CRUD_ACTIONS, MCP_ENTITY_KINDS, MCP_SPECIAL_OPERATIONS
from metaplatform.models import (
    Application,
    Bot,
    BotTool,
    Entity,
    Feature,
    Prompt,
    Relationship,
    Schema,
    User,
    Workflow,
)
from metaplatform.schemas.application import APPLICATION_NAME_PATTERN
from metaplatform.services.entity_service import EntityService
from metaplatform.services.prompt_service import PromptService
from metaplatform.services.schema_service import RELATIONSHIP_FIELDS, SchemaService
from metaplatform.utils.errors import ToolExecutionError

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50
SEARCH_RESULT_LIMIT = 20

# output key renames for mapped attributes whose column name differs
_OUTPUT_KEYS = {"definition": "schema", "instance_metadata": "metadata", "message_metadata": "metadata"}
_HIDDEN_ATTRS = {"password"}

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")
_APPLICATION_NAME = re.compile(APPLICATION_NAME_PATTERN)


@dataclass(frozen=True)
class EntityKind:
    model: Type
    writable: Tuple[str, ...]
    owner_column: Optional[str] = "user_id"
    list_all_owners: bool = False
    search_columns: Tuple[str, ...] = ("name", "display_name", "description")


ENTITY_KINDS: Dict[str, EntityKind] = {
    "model": EntityKind(Schema, ("name", "display_name", "description", "is_active")),
    "application": EntityKind(
        Application, ("name", "display_name", "description", "config", "schema_id")
    ),
    "bot": EntityKind(Bot, ("name", "display_name", "description", "model", "is_active")),
    "prompt": EntityKind(Prompt, ("name", "description"), search_columns=("name", "description")),
    "feature": EntityKind(Feature, ("name", "display_name", "description", "config", "status", "is_active")),
    "workflow": EntityKind(
        Workflow, ("name", "display_name", "description", "config", "is_active"), list_all_owners=True
    ),
    "tool": EntityKind(
        BotTool, ("name", "display_name", "description", "type", "config", "is_active", "requires_auth"),
        owner_column=None,
    ),
    "entity": EntityKind(Entity, ("name", "display_name", "data"), search_columns=("name", "display_name")),
    "relationship": EntityKind(Relationship, RELATIONSHIP_FIELDS),
}

# kinds summarised by list_user_data and searched by search_platform
SUMMARY_KINDS = ("model", "application", "bot", "prompt", "feature", "workflow")

_PLURAL_TO_SINGULAR = {plural: singular for singular, plural in MCP_ENTITY_KINDS.items()}
_ENTITY_ALIASES = {"schema": "model", "schemas": "model"}


def to_snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def to_camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def _json_value(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def serialize(obj: Any) -> Dict[str, Any]:
    """ORM row -> camelCase dict of its column attributes"""
    data = {}
    for attr in inspect(obj).mapper.column_attrs:
        if attr.key in _HIDDEN_ATTRS:
            continue
        key = _OUTPUT_KEYS.get(attr.key, attr.key)
        data[to_camel(key)] = _json_value(getattr(obj, attr.key))
    if isinstance(obj, Prompt):
        active = obj.active_version
        data["content"] = active.content if active else None
        data["version"] = active.version if active else None
    return data


def parse_operation(operation: str) -> Tuple[str, Optional[str]]:
    """
    Split an operation into (action, entity kind)

    Special operations come back as (operation, None).

    Raises:
        ToolExecutionError: unknown action or entity type
    """
    if operation in MCP_SPECIAL_OPERATIONS:
        return operation, None

    action, _, entity_word = operation.partition("_")
    if action not in MCP_CRUD_ACTIONS or not entity_word:
        raise ToolExecutionError(f"Unknown MCP operation: {operation}")

    kind = _ENTITY_ALIASES.get(entity_word) or _PLURAL_TO_SINGULAR.get(entity_word) or entity_word
    if kind not in ENTITY_KINDS:
        raise ToolExecutionError(f"Unknown entity type: {entity_word}")
    return action, kind


def _as_uuid(value: Any, label: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError) as e:
        raise ToolExecutionError(f"Invalid {label}: {value}") from e


def _as_count(value: Any, default: int, label: str) -> int:
    if not value:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ToolExecutionError(f"Invalid {label}: {value}") from e
    if number < 0:
        raise ToolExecutionError(f"Invalid {label}: {value}")
    return number


def _check_application_name(name: Any) -> None:
    if not isinstance(name, str) or not _APPLICATION_NAME.match(name):
        raise ToolExecutionError(
            f"Invalid application name: {name!r} (lowercase letters, digits, - and _ only)"
        )


class MCPToolService:
    """
    Platform operations exposed to bots through mcp_tool tools

    Usage:
        service = MCPToolService(db)
        service.execute(config, {"operation": "list_models", "userId": "..."})
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, config: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run an MCP operation

        Args:
            config: MCPToolConfig
            params: operation parameters (camelCase or snake_case keys)

        Returns:
            JSON-serializable result with a `success` flag
        """
        operation = params.get("operation") or params.get("action")
        if not operation:
            raise ToolExecutionError("Operation is required for MCP tool")

        if config.operations and operation not in config.operations:
            raise ToolExecutionError(f"Operation '{operation}' not allowed for this MCP tool")

        action, kind = parse_operation(operation)
        user_id = params.get("userId") or params.get("user_id") or config.userId
        values = {to_snake(key): value for key, value in params.items() if key not in ("operation", "action")}

        logger.info(f"MCP operation {operation} (user={user_id})")

        if kind is None:
            handler = {
                "get_user_info": self._get_user_info,
                "list_user_data": self._list_user_data,
                "search_platform": self._search_platform,
                "execute_bot": self._execute_bot,
                "start_bot": self._start_bot,
                "stop_bot": self._stop_bot,
            }[action]
            args = (user_id, values)
        else:
            handler = {
                "list": self._list,
                "get": self._get,
                "create": self._create,
                "update": self._update,
                "delete": self._delete,
            }[action]
            args = (kind, user_id, values)

        try:
            return handler(*args)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"MCP operation {operation} failed: {e}")
            raise ToolExecutionError(f"Database error during {operation}") from e

    # ========== Scoping ==========

    def _require_user(self, user_id: Any) -> UUID:
        if not user_id:
            raise ToolExecutionError("User ID is required")
        return _as_uuid(user_id, "user ID")

    def _scoped_query(self, kind: str, user_id: UUID, for_listing: bool = False):
        meta = ENTITY_KINDS[kind]
        query = self.db.query(meta.model)
        if meta.model is BotTool:
            return query.join(Bot, Bot.id == BotTool.bot_id).filter(Bot.user_id == user_id)
        if for_listing and meta.list_all_owners:
            return query
        return query.filter(getattr(meta.model, meta.owner_column) == user_id)

    def _get_owned(self, kind: str, user_id: UUID, values: Dict[str, Any]):
        entity_id = values.get("id") or values.get(f"{kind}_id")
        if not entity_id:
            raise ToolExecutionError("Entity ID is required")
        model = ENTITY_KINDS[kind].model
        obj = (
            self._scoped_query(kind, user_id)
            .filter(model.id == _as_uuid(entity_id, "entity ID"))
            .first()
        )
        if not obj:
            raise ToolExecutionError("Entity not found or unauthorized")
        return obj

    # ========== CRUD ==========

    def _list(self, kind: str, user_id: Any, values: Dict[str, Any]) -> Dict[str, Any]:
        user_id = self._require_user(user_id)
        model = ENTITY_KINDS[kind].model
        limit = _as_count(values.get("limit"), DEFAULT_LIST_LIMIT, "limit")
        offset = _as_count(values.get("offset"), 0, "offset")

        query = self._scoped_query(kind, user_id, for_listing=True)
        total = query.count()
        rows = query.order_by(model.created_at.desc()).offset(offset).limit(limit).all()

        return {
            "success": True,
            MCP_ENTITY_KINDS[kind]: [serialize(row) for row in rows],
            "total": total,
        }

    def _get(self, kind: str, user_id: Any, values: Dict[str, Any]) -> Dict[str, Any]:
        obj = self._get_owned(kind, self._require_user(user_id), values)
        return {"success": True, kind: serialize(obj)}

    def _create(self, kind: str, user_id: Any, values: Dict[str, Any]) -> Dict[str, Any]:
        user_id = self._require_user(user_id)
        name = values.get("name")
        if not name:
            raise ToolExecutionError("Name is required")
        if kind == "application":
            _check_application_name(name)

        if kind == "model":
            fields = values.get("fields")
            if fields is None:
                fields = (values.get("schema") or {}).get("fields")
            obj = SchemaService(self.db).create_schema(
                user_id=user_id,
                name=name,
                definition={"fields": fields},
                display_name=values.get("display_name"),
                description=values.get("description"),
            )
        elif kind == "entity":
            schema_id = values.get("schema_id") or values.get("model_id")
            if not schema_id:
                raise ToolExecutionError("Schema ID is required")
            obj = EntityService(self.db).create_entity(
                user_id=user_id,
                schema_id=_as_uuid(schema_id, "schema ID"),
                name=name,
                data=values.get("data") or {},
                display_name=values.get("display_name"),
            )
        elif kind == "prompt":
            if not values.get("content"):
                raise ToolExecutionError("Prompt content is required")
            obj = PromptService(self.db).create_prompt(
                user_id=user_id,
                name=name,
                content=values["content"],
                prompt_type=values.get("type") or "llm",
                description=values.get("description"),
            )
        elif kind == "relationship":
            for key in ("source_schema_id", "target_schema_id"):
                if not values.get(key):
                    raise ToolExecutionError(f"{to_camel(key)} is required")
            data = {key: values.get(key) for key in RELATIONSHIP_FIELDS if values.get(key) is not None}
            data["source_schema_id"] = _as_uuid(values["source_schema_id"], "source schema ID")
            data["target_schema_id"] = _as_uuid(values["target_schema_id"], "target schema ID")
            data.setdefault("type", "one-to-many")
            obj = SchemaService(self.db).create_relationship(user_id, data)
        elif kind == "tool":
            obj = self._create_tool(user_id, values)
        else:
            obj = self._create_generic(kind, user_id, values)

        logger.info(f"MCP created {kind} {obj.id}")
        return {"success": True, kind: serialize(obj)}

    def _create_tool(self, user_id: UUID, values: Dict[str, Any]) -> BotTool:
        from metaplatform.services.tool_execution_service import validate_tool_config

        bot_id = values.get("bot_id")
        if not bot_id:
            raise ToolExecutionError("Bot ID is required")
        bot = self.db.query(Bot).filter(Bot.id == _as_uuid(bot_id, "bot ID"), Bot.user_id == user_id).first()
        if not bot:
            raise ToolExecutionError("Entity not found or unauthorized")

        tool_type = values.get("type")
        validate_tool_config(tool_type, values.get("config"))
        tool = BotTool(bot_id=bot.id)
        for column in ENTITY_KINDS["tool"].writable:
            if values.get(column) is not None:
                setattr(tool, column, values[column])
        tool.display_name = tool.display_name or tool.name
        self.db.add(tool)
        self.db.commit()
        self.db.refresh(tool)
        return tool

    def _create_generic(self, kind: str, user_id: UUID, values: Dict[str, Any]):
        meta = ENTITY_KINDS[kind]
        obj = meta.model(user_id=user_id)
        for column in meta.writable:
            if values.get(column) is not None:
                setattr(obj, column, values[column])
        if hasattr(obj, "display_name") and not obj.display_name:
            obj.display_name = obj.name
        if getattr(obj, "schema_id", None):
            obj.schema_id = _as_uuid(obj.schema_id, "schema ID")
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def _update(self, kind: str, user_id: Any, values: Dict[str, Any]) -> Dict[str, Any]:
        user_id = self._require_user(user_id)
        obj = self._get_owned(kind, user_id, values)
        changes = {column: values[column] for column in ENTITY_KINDS[kind].writable if values.get(column) is not None}
        if kind == "application" and "name" in changes:
            _check_application_name(changes["name"])

        if kind == "model":
            fields = values.get("fields")
            if fields is not None:
                changes["definition"] = {"fields": fields}
            obj = SchemaService(self.db).update_schema(obj.id, user_id, changes)
        elif kind == "entity":
            obj = EntityService(self.db).update_entity(
                obj.id,
                user_id,
                name=changes.get("name"),
                display_name=changes.get("display_name"),
                data=changes.get("data"),
            )
        elif kind == "prompt":
            obj = PromptService(self.db).update_prompt(
                obj.id,
                user_id,
                name=changes.get("name"),
                description=changes.get("description"),
                content=values.get("content"),
                prompt_type=values.get("type"),
                version_description=values.get("version_description"),
            )
        elif kind == "relationship":
            obj = SchemaService(self.db).update_relationship(obj.id, user_id, changes)
        else:
            if kind == "tool" and ("config" in changes or "type" in changes):
                from metaplatform.services.tool_execution_service import validate_tool_config

                validate_tool_config(changes.get("type", obj.type), changes.get("config", obj.config))
            if "schema_id" in changes:
                changes["schema_id"] = _as_uuid(changes["schema_id"], "schema ID")
            for column, value in changes.items():
                setattr(obj, column, value)
            self.db.commit()
            self.db.refresh(obj)

        return {"success": True, kind: serialize(obj)}

    def _delete(self, kind: str, user_id: Any, values: Dict[str, Any]) -> Dict[str, Any]:
        obj = self._get_owned(kind, self._require_user(user_id), values)
        self.db.delete(obj)
        self.db.commit()
        logger.info(f"MCP deleted {kind} {obj.id}")
        return {"success": True, "message": f"{kind} deleted successfully"}

    # ========== Special operations ==========

    def _get_user_info(self, user_id: Any, values: Dict[str, Any]) -> Dict[str, Any]:
        user = self.db.query(User).filter(User.id == self._require_user(user_id)).first()
        if not user:
            raise ToolExecutionError("User not found")
        return {
            "success": True,
            "user": {
                "id": str(user.id),
                "email": user.email,
                "firstName": user.first_name,
                "lastName": user.last_name,
                "role": user.role,
                "isActive": user.is_active,
                "createdAt": _json_value(user.created_at),
            },
        }

    def _list_user_data(self, user_id: Any, values: Dict[str, Any]) -> Dict[str, Any]:
        user_id = self._require_user(user_id)
        counts = {}
        details = {}
        for kind in SUMMARY_KINDS:
            model = ENTITY_KINDS[kind].model
            rows = (
                self._scoped_query(kind, user_id, for_listing=True)
                .order_by(model.created_at.desc())
                .all()
            )
            plural = MCP_ENTITY_KINDS[kind]
            counts[plural] = len(rows)
            details[plural] = [serialize(row) for row in rows]
        return {"success": True, "userData": counts, "details": details}

    def _search_platform(self, user_id: Any, values: Dict[str, Any]) -> Dict[str, Any]:
        query_text = (values.get("query") or "").strip()
        if not query_text:
            raise ToolExecutionError("Search query is required")
        user_id = self._require_user(user_id)

        entity_type = values.get("entity_type") or "all"
        if entity_type == "all":
            kinds = SUMMARY_KINDS
        else:
            kind = _ENTITY_ALIASES.get(entity_type) or _PLURAL_TO_SINGULAR.get(entity_type) or entity_type
            if kind not in ENTITY_KINDS:
                raise ToolExecutionError(f"Unknown entity type: {entity_type}")
            kinds = (kind,)

        pattern = f"%{query_text.lower()}%"
        results: List[Dict[str, Any]] = []
        for kind in kinds:
            meta = ENTITY_KINDS[kind]
            conditions = [
                func.lower(getattr(meta.model, column)).like(pattern)
                for column in meta.search_columns
            ]
            rows = (
                self._scoped_query(kind, user_id, for_listing=True)
                .filter(or_(*conditions))
                .order_by(meta.model.created_at.desc())
                .all()
            )
            results.extend({"type": kind, **serialize(row)} for row in rows)

        return {
            "success": True,
            "query": query_text,
            "results": results[:SEARCH_RESULT_LIMIT],
            "total": len(results),
        }

    def _execute_bot(self, user_id: Any, values: Dict[str, Any]) -> Dict[str, Any]:
        from metaplatform.services.bot_pipeline import BotMessagePipeline

        bot_id = values.get("bot_id")
        message = values.get("message")
        if not bot_id or not message:
            raise ToolExecutionError("Bot ID and message are required")

        user_id = self._require_user(user_id)
        bot = self.db.query(Bot).filter(Bot.id == _as_uuid(bot_id, "bot ID"), Bot.user_id == user_id).first()
        if not bot:
            raise ToolExecutionError("Entity not found or unauthorized")

        outcome = BotMessagePipeline(self.db).process_bot_message(
            bot.id,
            user_id,
            message,
            publish=False,
        )
        return {
            "success": True,
            "botId": str(bot_id),
            "instanceId": str(outcome.instance.id),
            "response": outcome.bot_message.content,
        }

    def _start_bot(self, user_id: Any, values: Dict[str, Any]) -> Dict[str, Any]:
        from metaplatform.services.bot_execution_service import BotExecutionService

        bot_id = values.get("bot_id")
        if not bot_id or not user_id:
            raise ToolExecutionError("Bot ID and user ID are required")
        instance = BotExecutionService(self.db).start_bot_instance(
            _as_uuid(bot_id, "bot ID"), self._require_user(user_id)
        )
        return {"success": True, "instance": serialize(instance)}

    def _stop_bot(self, user_id: Any, values: Dict[str, Any]) -> Dict[str, Any]:
        from metaplatform.services.bot_execution_service import BotExecutionService

        bot_id = values.get("bot_id")
        if not bot_id or not user_id:
            raise ToolExecutionError("Bot ID and user ID are required")
        instance = BotExecutionService(self.db).stop_bot_instance(
            _as_uuid(bot_id, "bot ID"), self._require_user(user_id)
        )
        return {"success": True, "instance": serialize(instance)}
