"""
Tool Execution tests
Config validation, placeholder interpolation and the executors per tool type
"""
import json

import httpx
import pytest

from metaplatform.config import settings
from metaplatform.models import BotTool, Workflow, WorkflowAction
from metaplatform.services.tool_execution_service import (
    ShellCommandConfig,
    ToolExecutionService,
    interpolate,
    validate_tool_config,
)
from metaplatform.tools.script_engine import ScriptEngine, ScriptError
from metaplatform.utils.errors import ToolExecutionError, ValidationError


def make_tool(tool_type, config, name="tool"):
    return BotTool(name=name, display_name=name, type=tool_type, config=config, is_active=True)


# ========== Config validation ==========


class TestValidateToolConfig:
    """validate_tool_config tests"""

    def test_unknown_type(self):
        with pytest.raises(ValidationError, match="Unknown tool type: telepathy"):
            validate_tool_config("telepathy", {})

    def test_database_query_requires_query(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_tool_config("database_query", {})

        assert exc_info.value.message == "Invalid database_query config"
        assert exc_info.value.details[0].startswith("query:")

    def test_http_method_checked(self):
        with pytest.raises(ValidationError):
            validate_tool_config("http_request", {"url": "https://example.com", "method": "TRACE"})

    def test_workflow_action_requires_target(self):
        with pytest.raises(ValidationError):
            validate_tool_config("workflow_action", {})

    def test_shell_working_directory_alias(self):
        config = validate_tool_config("shell_command", {"command": "ls", "workingDirectory": "/srv"})

        assert isinstance(config, ShellCommandConfig)
        assert config.cwd == "/srv"
        assert config.timeout == 30000

    def test_mcp_defaults(self):
        config = validate_tool_config("mcp_tool", None)

        assert config.operations == []
        assert config.permissions == []


class TestInterpolate:
    """{{key}} placeholder substitution"""

    def test_string(self):
        assert interpolate("Hello {{name}}!", {"name": "Ada"}) == "Hello Ada!"

    def test_unknown_and_empty_keys_kept(self):
        assert interpolate("{{a}}-{{b}}", {"b": ""}) == "{{a}}-{{b}}"

    def test_nested_structures(self):
        template = {"q": "{{term}}", "items": ["{{n}}", 3]}

        assert interpolate(template, {"term": "x", "n": 2}) == {"q": "x", "items": ["2", 3]}


# ========== Executors ==========


class TestHttpRequestTool:
    """http_request executor with a mocked transport"""

    @pytest.fixture
    def requests_seen(self):
        return []

    @pytest.fixture
    def http_client(self, requests_seen):
        def handler(request: httpx.Request):
            requests_seen.append(request)
            return httpx.Response(200, json={"ok": True})

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            yield client

    def test_get_with_interpolated_url(self, db_session, http_client, requests_seen):
        tool = make_tool("http_request", {"url": "https://api.example.com/items/{{id}}"})

        result = ToolExecutionService(db_session, http_client=http_client).execute_tool(tool, {"id": 7})

        assert result["status"] == 200
        assert result["data"] == {"ok": True}
        assert requests_seen[0].method == "GET"
        assert str(requests_seen[0].url) == "https://api.example.com/items/7"

    def test_post_json_body(self, db_session, http_client, requests_seen):
        tool = make_tool("http_request", {
            "url": "https://api.example.com/items",
            "method": "post",
            "body": {"name": "{{name}}"},
        })

        ToolExecutionService(db_session, http_client=http_client).execute_tool(tool, {"name": "widget"})

        assert requests_seen[0].method == "POST"
        assert json.loads(requests_seen[0].content) == {"name": "widget"}

    def test_url_from_params(self, db_session, http_client, requests_seen):
        tool = make_tool("http_request", {})

        ToolExecutionService(db_session, http_client=http_client).execute_tool(
            tool, {"url": "https://example.com/status"}
        )

        assert str(requests_seen[0].url) == "https://example.com/status"

    def test_missing_url(self, db_session, http_client):
        with pytest.raises(ToolExecutionError, match="no URL"):
            ToolExecutionService(db_session, http_client=http_client).execute_tool(make_tool("http_request", {}), {})

    def test_transport_failure(self, db_session):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            tool = make_tool("http_request", {"url": "https://down.example.com"})
            with pytest.raises(ToolExecutionError, match="HTTP request failed"):
                ToolExecutionService(db_session, http_client=client).execute_tool(tool, {})


class TestDatabaseQueryTool:
    """database_query executor"""

    def test_select_with_bound_parameter(self, db_session, user):
        tool = make_tool("database_query", {"query": "SELECT email FROM users WHERE email = {{email}}"})

        rows = ToolExecutionService(db_session).execute_tool(tool, {"email": "owner@example.com"})

        assert rows == [{"email": "owner@example.com"}]

    def test_placeholder_values_are_not_spliced(self, db_session, user):
        tool = make_tool("database_query", {"query": "SELECT email FROM users WHERE email = {{email}}"})

        rows = ToolExecutionService(db_session).execute_tool(tool, {"email": "x' OR '1'='1"})

        assert rows == []

    def test_update_reports_row_count(self, db_session, user):
        tool = make_tool("database_query", {
            "query": "UPDATE users SET first_name = {{name}} WHERE email = {{email}}",
            "type": "update",
        })

        result = ToolExecutionService(db_session).execute_tool(
            tool, {"name": "Olivia", "email": "owner@example.com"}
        )

        assert result == {"rowCount": 1}

    def test_missing_parameter(self, db_session):
        tool = make_tool("database_query", {"query": "SELECT 1 WHERE 1 = {{one}}"})

        with pytest.raises(ToolExecutionError, match="Missing query parameter: one"):
            ToolExecutionService(db_session).execute_tool(tool, {})

    def test_bad_sql(self, db_session):
        tool = make_tool("database_query", {"query": "SELEKT nothing"})

        with pytest.raises(ToolExecutionError, match="Query failed"):
            ToolExecutionService(db_session).execute_tool(tool, {})


class TestFileOperationTool:
    """file_operation executor, confined to the allowed directories"""

    @pytest.fixture(autouse=True)
    def allowed_dir(self, monkeypatch, tmp_path):
        monkeypatch.setattr(settings, "tool_file_allowed_dirs", str(tmp_path))
        return tmp_path

    def test_write_then_read(self, db_session, tmp_path):
        service = ToolExecutionService(db_session)
        target = tmp_path / "note.txt"

        written = service.execute_tool(
            make_tool("file_operation", {"operation": "write", "path": str(target), "content": "hi {{who}}"}),
            {"who": "there"},
        )
        content = service.execute_tool(make_tool("file_operation", {"path": str(target)}), {})

        assert written["written"] is True
        assert content == "hi there"

    def test_operation_alias_from_params(self, db_session, tmp_path):
        (tmp_path / "a.txt").write_text("a")
        (tmp_path / "b.txt").write_text("b")

        listing = ToolExecutionService(db_session).execute_tool(
            make_tool("file_operation", {"path": str(tmp_path)}),
            {"operation": "list_files"},
        )

        assert listing == ["a.txt", "b.txt"]

    def test_path_outside_allowed_dirs(self, db_session):
        tool = make_tool("file_operation", {"operation": "read", "path": "/etc/passwd"})

        with pytest.raises(ToolExecutionError, match="not allowed"):
            ToolExecutionService(db_session).execute_tool(tool, {})

    def test_traversal_rejected(self, db_session, tmp_path):
        tool = make_tool("file_operation", {"operation": "read", "path": str(tmp_path / ".." / "escape.txt")})

        with pytest.raises(ToolExecutionError, match="not allowed"):
            ToolExecutionService(db_session).execute_tool(tool, {})

    def test_missing_file(self, db_session, tmp_path):
        tool = make_tool("file_operation", {"operation": "read", "path": str(tmp_path / "missing.txt")})

        with pytest.raises(ToolExecutionError, match="File operation failed"):
            ToolExecutionService(db_session).execute_tool(tool, {})


class TestShellCommandTool:
    """shell_command executor"""

    def test_allowed_command(self, db_session):
        result = ToolExecutionService(db_session).execute_tool(
            make_tool("shell_command", {"command": "echo {{word}}"}), {"word": "hello"}
        )

        assert result["stdout"].strip() == "hello"
        assert result["success"] is True

    def test_command_not_on_allowlist(self, db_session):
        with pytest.raises(ToolExecutionError, match="Command not allowed: rm"):
            ToolExecutionService(db_session).execute_tool(
                make_tool("shell_command", {"command": "rm -rf /tmp/x"}), {}
            )

    def test_shell_operators_are_not_interpreted(self, db_session):
        result = ToolExecutionService(db_session).execute_tool(
            make_tool("shell_command", {"command": "echo safe; rm -rf /"}), {}
        )

        assert result["stdout"].strip() == "safe; rm -rf /"


class TestCustomScriptTool:
    """custom_script executor and the script engine"""

    def test_script_result(self, db_session):
        tool = make_tool("custom_script", {"script": "{'total': price * qty, 'big': price * qty > 100}"})

        result = ToolExecutionService(db_session).execute_tool(tool, {"price": 20, "qty": 7})

        assert result == {"total": 140, "big": True}

    def test_script_failure(self, db_session):
        tool = make_tool("custom_script", {"script": "missing + 1"})

        with pytest.raises(ToolExecutionError, match="Script execution failed"):
            ToolExecutionService(db_session).execute_tool(tool, {})

    @pytest.mark.parametrize("script", [
        "__import__('os')",
        "open('/etc/passwd')",
        "params.__class__",
        "[x for x in range(3)]",
        "2 ** 1000",
    ])
    def test_disallowed_constructs(self, script):
        with pytest.raises(ScriptError):
            ScriptEngine().execute(script, {"params": {}})

    def test_builtins_and_params(self):
        engine = ScriptEngine()

        assert engine.execute("upper(params['name'])", {"name": "ada"}) == "ADA"
        assert engine.execute("max(a, b) if a else 0", {"a": 3, "b": 9}) == 9
        assert engine.execute("f'{n} items'", {"n": 2}) == "2 items"

    @pytest.mark.parametrize("script", [
        "'x' * 10 ** 9",
        "10 ** 9 * [0]",
        "(1, 2) * n",
    ])
    def test_sequence_repetition_capped(self, script):
        with pytest.raises(ScriptError, match="Sequence repetition too large"):
            ScriptEngine().execute(script, {"n": 6000})

    def test_small_sequence_repetition(self):
        assert ScriptEngine().execute("'ab' * 3", {}) == "ababab"


class TestWorkflowActionTool:
    """workflow_action executor"""

    @pytest.fixture
    def workflow(self, db_session):
        workflow = Workflow(name="pricing", display_name="Pricing")
        workflow.actions = [
            WorkflowAction(name="total", type="custom_script", config={"script": "price * qty"}, order=0),
            WorkflowAction(name="label", type="custom_script", config={"script": "'order'"}, order=1),
        ]
        db_session.add(workflow)
        db_session.commit()
        db_session.refresh(workflow)
        return workflow

    def test_runs_actions_in_order(self, db_session, workflow):
        tool = make_tool("workflow_action", {"workflowId": str(workflow.id)})

        result = ToolExecutionService(db_session).execute_tool(tool, {"price": 2, "qty": 3})

        assert result["success"] is True
        assert result["workflowId"] == str(workflow.id)
        assert [(s["action"], s["result"]) for s in result["steps"]] == [("total", 6), ("label", "order")]

    def test_single_action(self, db_session, workflow):
        action = workflow.actions[1]
        tool = make_tool("workflow_action", {"workflowActionId": str(action.id)})

        result = ToolExecutionService(db_session).execute_tool(tool, {})

        assert [s["action"] for s in result["steps"]] == ["label"]

    def test_failed_step_stops_workflow(self, db_session, workflow):
        tool = make_tool("workflow_action", {"workflowId": str(workflow.id)})

        result = ToolExecutionService(db_session).execute_tool(tool, {})

        assert result["success"] is False
        assert len(result["steps"]) == 1
        assert "Script execution failed" in result["steps"][0]["error"]

    def test_inactive_workflow(self, db_session, workflow):
        workflow.is_active = False
        db_session.commit()
        tool = make_tool("workflow_action", {"workflowId": str(workflow.id)})

        with pytest.raises(ToolExecutionError, match="not active"):
            ToolExecutionService(db_session).execute_tool(tool, {})

    def test_nesting_limit(self, db_session):
        tool = make_tool("workflow_action", {"workflowId": "00000000-0000-0000-0000-000000000001"})

        with pytest.raises(ToolExecutionError, match="nesting too deep"):
            ToolExecutionService(db_session, depth=3).execute_tool(tool, {})


def test_unknown_tool_type(db_session):
    with pytest.raises(ToolExecutionError, match="Unknown tool type"):
        ToolExecutionService(db_session).execute_tool(make_tool("telepathy", {}), {})
