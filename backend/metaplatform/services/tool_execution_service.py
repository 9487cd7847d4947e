"""
Tool Execution Service
Runs bot tools by type. Each type has a typed config model that is checked
when a tool is saved and again before it runs.
"""
import json
import logging
import os
import re
import shlex
import subprocess
from typing import Any, Dict, List, Literal, Optional, Type
from uuid import UUID

import httpx
import pydantic
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import text
from sqlalchemy.orm import Session

from metaplatform.config import settings
from metaplatform.models import BotTool, Workflow, WorkflowAction
from metaplatform.tools.script_engine import ScriptEngine, ScriptError
from metaplatform.utils.errors import ToolExecutionError, ValidationError
from metaplatform.utils.metrics import tool_executions_total

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")
HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

SAFE_COMMANDS = (
    "ls", "cat", "echo", "date", "whoami", "pwd",
    "ping", "curl", "wget", "dig", "nslookup",
    "ps", "top", "free", "df", "du",
    "grep", "find", "head", "tail", "sort", "uniq",
    "wc", "cut", "tr", "sed", "awk",
)

FILE_OPERATION_ALIASES = {
    "read_file": "read",
    "write_file": "write",
    "delete_file": "delete",
    "list_files": "list",
}

MAX_WORKFLOW_DEPTH = 3


# ========== Tool configs ==========


class HttpRequestConfig(BaseModel):
    url: Optional[str] = None
    method: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Any] = None

    @model_validator(mode="after")
    def check_method(self):
        if self.method and self.method.upper() not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {self.method}")
        return self


class DatabaseQueryConfig(BaseModel):
    query: str = Field(..., min_length=1)
    type: Literal["select", "insert", "update", "delete"] = "select"


class FileOperationConfig(BaseModel):
    operation: Optional[Literal["read", "write", "list", "exists", "delete"]] = None
    path: Optional[str] = None
    content: Optional[str] = None


class ShellCommandConfig(BaseModel):
    command: Optional[str] = None
    cwd: Optional[str] = Field(default=None, alias="workingDirectory")
    timeout: int = Field(default=30000, gt=0, description="milliseconds")

    class Config:
        populate_by_name = True


class CustomScriptConfig(BaseModel):
    script: str = Field(..., min_length=1)


class WorkflowActionConfig(BaseModel):
    workflowId: Optional[UUID] = None
    workflowActionId: Optional[UUID] = None

    @model_validator(mode="after")
    def check_target(self):
        if not self.workflowId and not self.workflowActionId:
            raise ValueError("workflowId or workflowActionId is required")
        return self


class MCPToolConfig(BaseModel):
    platformEndpoint: Optional[str] = None
    apiKey: Optional[str] = None
    userId: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)
    operations: List[str] = Field(default_factory=list)


TOOL_CONFIG_MODELS: Dict[str, Type[BaseModel]] = {
    "http_request": HttpRequestConfig,
    "database_query": DatabaseQueryConfig,
    "file_operation": FileOperationConfig,
    "shell_command": ShellCommandConfig,
    "custom_script": CustomScriptConfig,
    "workflow_action": WorkflowActionConfig,
    "mcp_tool": MCPToolConfig,
}


def validate_tool_config(tool_type: str, config: Optional[Dict[str, Any]]) -> BaseModel:
    """
    Parse a tool config for its type

    Raises:
        ValidationError: unknown type or invalid config
    """
    model = TOOL_CONFIG_MODELS.get(tool_type)
    if model is None:
        raise ValidationError(f"Unknown tool type: {tool_type}")
    try:
        return model.model_validate(config or {})
    except pydantic.ValidationError as e:
        details = [
            f"{'.'.join(str(loc) for loc in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(f"Invalid {tool_type} config", details=details) from e


def interpolate(template: Any, params: Dict[str, Any]) -> Any:
    """Replace {{key}} placeholders with parameter values; unknown keys stay as-is"""
    if isinstance(template, str):
        def replace(match):
            value = params.get(match.group(1))
            return str(value) if value not in (None, "") else match.group(0)
        return PLACEHOLDER_PATTERN.sub(replace, template)
    if isinstance(template, dict):
        return {key: interpolate(value, params) for key, value in template.items()}
    if isinstance(template, list):
        return [interpolate(item, params) for item in template]
    return template


class ToolExecutionService:
    """
    Dispatches a bot tool to its executor

    Usage:
        service = ToolExecutionService(db)
        result = service.execute_tool(tool, {"operation": "list_models", "userId": "..."})
    """

    def __init__(self, db: Session, http_client: Optional[httpx.Client] = None, depth: int = 0):
        self.db = db
        self.http_client = http_client
        self.script_engine = ScriptEngine()
        self.depth = depth

    def execute_tool(self, tool: BotTool, params: Dict[str, Any]) -> Any:
        """
        Execute a tool

        Args:
            tool: BotTool (or any object with type/config/name)
            params: call parameters; also the source for {{key}} placeholders

        Returns:
            JSON-serializable result

        Raises:
            ToolExecutionError: unknown type or execution failure
            ValidationError: invalid tool config
        """
        executors = {
            "http_request": self._execute_http_request,
            "database_query": self._execute_database_query,
            "file_operation": self._execute_file_operation,
            "shell_command": self._execute_shell_command,
            "custom_script": self._execute_custom_script,
            "workflow_action": self._execute_workflow_action,
            "mcp_tool": self._execute_mcp_tool,
        }
        executor = executors.get(tool.type)
        if executor is None:
            tool_executions_total.labels(tool_type=str(tool.type), status="error").inc()
            raise ToolExecutionError(f"Unknown tool type: {tool.type}")

        config = validate_tool_config(tool.type, tool.config)
        params = params or {}

        try:
            result = executor(tool, config, params)
        except Exception:
            tool_executions_total.labels(tool_type=tool.type, status="error").inc()
            raise

        tool_executions_total.labels(tool_type=tool.type, status="success").inc()
        return result

    # ========== Executors ==========

    def _execute_http_request(self, tool: BotTool, config: HttpRequestConfig, params: Dict[str, Any]) -> Dict[str, Any]:
        url = interpolate(config.url or params.get("url") or "", params)
        if not url:
            raise ToolExecutionError("HTTP request tool has no URL")

        method = config.method or params.get("method") or params.get("operation") or "GET"
        method = str(method).upper()
        if method not in HTTP_METHODS:
            method = "GET"

        body = config.body if config.body is not None else params.get("body")
        body = interpolate(body, params) if body is not None else None

        request_kwargs: Dict[str, Any] = {"headers": {**config.headers, **(params.get("headers") or {})}}
        if isinstance(body, (dict, list)):
            request_kwargs["json"] = body
        elif body is not None:
            request_kwargs["content"] = str(body)

        logger.info(f"[{tool.name}] HTTP {method} {url}")
        try:
            if self.http_client is not None:
                response = self.http_client.request(method, url, timeout=settings.tool_http_timeout, **request_kwargs)
            else:
                with httpx.Client(timeout=settings.tool_http_timeout) as client:
                    response = client.request(method, url, **request_kwargs)
        except httpx.HTTPError as e:
            raise ToolExecutionError(f"HTTP request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = response.text

        return {
            "status": response.status_code,
            "data": data,
            "headers": dict(response.headers),
        }

    def _execute_database_query(self, tool: BotTool, config: DatabaseQueryConfig, params: Dict[str, Any]) -> Any:
        """{{key}} placeholders become bound parameters, never string-spliced SQL"""
        keys = PLACEHOLDER_PATTERN.findall(config.query)
        missing = [key for key in keys if key not in params]
        if missing:
            raise ToolExecutionError(f"Missing query parameter: {', '.join(missing)}")

        statement = text(PLACEHOLDER_PATTERN.sub(lambda m: f":{m.group(1)}", config.query))
        bound = {key: params[key] for key in keys}

        try:
            result = self.db.execute(statement, bound)
            if config.type == "select":
                rows = [dict(row) for row in result.mappings().all()]
                self.db.commit()
                return json.loads(json.dumps(rows, default=str))
            affected = result.rowcount
            self.db.commit()
            return {"rowCount": affected}
        except Exception as e:
            self.db.rollback()
            raise ToolExecutionError(f"Query failed: {e}") from e

    def _resolve_safe_path(self, raw_path: str) -> str:
        path = os.path.realpath(raw_path)
        for directory in settings.tool_file_allowed_dirs_list:
            base = os.path.realpath(directory)
            if path == base or path.startswith(base + os.sep):
                return path
        raise ToolExecutionError("File operation not allowed in this directory")

    def _execute_file_operation(self, tool: BotTool, config: FileOperationConfig, params: Dict[str, Any]) -> Any:
        raw_path = interpolate(config.path or params.get("path") or "", params)
        if not raw_path:
            raise ToolExecutionError("File operation requires a path")
        path = self._resolve_safe_path(raw_path)

        operation = config.operation or params.get("operation") or "read"
        operation = FILE_OPERATION_ALIASES.get(operation, operation)

        try:
            if operation == "read":
                with open(path, "r", encoding="utf-8") as f:
                    return f.read()
            if operation == "write":
                content = config.content if config.content is not None else params.get("content", "")
                with open(path, "w", encoding="utf-8") as f:
                    f.write(interpolate(content, params))
                return {"written": True, "path": path}
            if operation == "list":
                return sorted(os.listdir(path))
            if operation == "exists":
                return os.path.exists(path)
            if operation == "delete":
                os.remove(path)
                return {"deleted": True, "path": path}
        except OSError as e:
            raise ToolExecutionError(f"File operation failed: {e}") from e

        raise ToolExecutionError(f"Unknown file operation: {operation}")

    def _execute_shell_command(self, tool: BotTool, config: ShellCommandConfig, params: Dict[str, Any]) -> Dict[str, Any]:
        command = interpolate(config.command or params.get("command") or "", params)
        try:
            argv = shlex.split(command)
        except ValueError as e:
            raise ToolExecutionError(f"Invalid command: {e}") from e

        command_name = argv[0] if argv else ""
        if command_name not in SAFE_COMMANDS:
            raise ToolExecutionError(f"Command not allowed: {command_name}")

        cwd = config.cwd or params.get("workingDirectory") or settings.tool_shell_cwd
        if not os.path.isdir(cwd):
            cwd = None

        logger.info(f"[{tool.name}] Running: {command}")
        try:
            completed = subprocess.run(
                argv,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=config.timeout / 1000,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolExecutionError(f"Command timed out after {config.timeout} ms") from e
        except OSError as e:
            raise ToolExecutionError(f"Command failed: {e}") from e

        return {
            "stdout": completed.stdout,
            "stderr": completed.stderr,
            "success": not completed.stderr,
        }

    def _execute_custom_script(self, tool: BotTool, config: CustomScriptConfig, params: Dict[str, Any]) -> Any:
        try:
            return self.script_engine.execute(config.script, params)
        except ScriptError as e:
            raise ToolExecutionError(f"Script execution failed: {e}") from e

    def _execute_workflow_action(self, tool: BotTool, config: WorkflowActionConfig, params: Dict[str, Any]) -> Dict[str, Any]:
        if self.depth >= MAX_WORKFLOW_DEPTH:
            raise ToolExecutionError("Workflow nesting too deep")

        if config.workflowActionId:
            action = self.db.query(WorkflowAction).filter(WorkflowAction.id == config.workflowActionId).first()
            if not action:
                raise ToolExecutionError(f"Workflow action not found: {config.workflowActionId}")
            actions = [action]
            workflow_id = action.workflow_id
        else:
            workflow = self.db.query(Workflow).filter(Workflow.id == config.workflowId).first()
            if not workflow:
                raise ToolExecutionError(f"Workflow not found: {config.workflowId}")
            if not workflow.is_active:
                raise ToolExecutionError(f"Workflow is not active: {workflow.name}")
            actions = [a for a in workflow.actions if a.is_active]
            workflow_id = workflow.id

        nested = ToolExecutionService(self.db, http_client=self.http_client, depth=self.depth + 1)
        steps = []
        for action in actions:
            step_tool = BotTool(
                name=action.name,
                display_name=action.name,
                type=action.type,
                config=action.config or {},
                is_active=True,
            )
            try:
                result = nested.execute_tool(step_tool, params)
                steps.append({"action": action.name, "success": True, "result": result})
            except Exception as e:
                logger.warning(f"Workflow {workflow_id} step '{action.name}' failed: {e}")
                steps.append({"action": action.name, "success": False, "error": str(e)})
                break

        return {
            "workflowId": str(workflow_id),
            "success": all(step["success"] for step in steps),
            "steps": steps,
        }

    def _execute_mcp_tool(self, tool: BotTool, config: MCPToolConfig, params: Dict[str, Any]) -> Any:
        from metaplatform.services.mcp_tool_service import MCPToolService

        return MCPToolService(self.db).execute(config, params)
