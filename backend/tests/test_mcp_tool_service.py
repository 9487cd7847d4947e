"""
MCP Tool Service tests
Platform operations a bot can run on behalf of its owner
"""
import pytest

from metaplatform.models import Bot, Schema, Workflow
from metaplatform.services.bot_pipeline import FALLBACK_RESPONSE
from metaplatform.services.mcp_tool_service import MCPToolService, parse_operation, to_camel, to_snake
from metaplatform.services.tool_execution_service import MCPToolConfig, ToolExecutionService
from metaplatform.utils.errors import ToolExecutionError, ValidationError


@pytest.fixture
def service(db_session):
    return MCPToolService(db_session)


@pytest.fixture
def config():
    return MCPToolConfig()


def run(service, mcp_config, user, operation, **params):
    return service.execute(mcp_config, {"operation": operation, "userId": str(user.id), **params})


class TestParseOperation:
    """Operation name parsing"""

    @pytest.mark.parametrize("operation,expected", [
        ("list_models", ("list", "model")),
        ("get_model", ("get", "model")),
        ("create_schema", ("create", "model")),
        ("delete_relationship", ("delete", "relationship")),
        ("list_entities", ("list", "entity")),
        ("search_platform", ("search_platform", None)),
    ])
    def test_known_operations(self, operation, expected):
        assert parse_operation(operation) == expected

    @pytest.mark.parametrize("operation", ["explode_models", "list_spaceships", "list"])
    def test_unknown_operations(self, operation):
        with pytest.raises(ToolExecutionError):
            parse_operation(operation)

    def test_key_case_conversion(self):
        assert to_snake("displayName") == "display_name"
        assert to_snake("schemaId") == "schema_id"
        assert to_camel("created_at") == "createdAt"


class TestMCPPermissions:
    """Operation allowlist and required parameters"""

    def test_operation_required(self, service, config):
        with pytest.raises(ToolExecutionError, match="Operation is required"):
            service.execute(config, {"userId": "x"})

    def test_configured_operations_are_enforced(self, service, user):
        restricted = MCPToolConfig(operations=["list_models"])

        with pytest.raises(ToolExecutionError, match="not allowed"):
            run(service, restricted, user, "create_model", name="x", fields=[])

    def test_empty_operations_allow_everything(self, service, config, user):
        assert run(service, config, user, "list_models")["success"] is True

    def test_user_id_required(self, service, config):
        with pytest.raises(ToolExecutionError, match="User ID is required"):
            service.execute(config, {"operation": "list_models"})

    def test_user_id_falls_back_to_config(self, service, user):
        result = service.execute(MCPToolConfig(userId=str(user.id)), {"operation": "get_user_info"})

        assert result["user"]["email"] == "owner@example.com"


class TestMCPCrud:
    """CRUD over platform entities"""

    def test_create_and_list_models(self, service, config, user):
        created = run(
            service, config, user, "create_model",
            name="Customer",
            displayName="Customers",
            fields=[{"name": "email", "type": "string", "required": True}],
        )

        assert created["success"] is True
        assert created["model"]["displayName"] == "Customers"
        assert created["model"]["schema"]["fields"][0]["name"] == "email"

        listed = run(service, config, user, "list_models")
        assert listed["total"] == 1
        assert listed["models"][0]["name"] == "Customer"

    def test_create_model_with_invalid_fields(self, service, config, user):
        with pytest.raises(ValidationError, match="Invalid schema definition"):
            run(service, config, user, "create_model", name="Broken", fields=[{"name": "x", "type": "blob"}])

    def test_create_entity_validates_data(self, service, config, user, db_session):
        model = run(
            service, config, user, "create_model",
            name="Task", fields=[{"name": "title", "type": "string"}],
        )["model"]

        created = run(service, config, user, "create_entity", name="t1", schemaId=model["id"], data={"title": "Write"})

        assert created["entity"]["data"] == {"title": "Write"}

    def test_get_foreign_entity_is_hidden(self, service, config, user, other_user, db_session):
        schema = Schema(name="secret", display_name="Secret", definition={"fields": []}, user_id=other_user.id)
        db_session.add(schema)
        db_session.commit()

        with pytest.raises(ToolExecutionError, match="not found or unauthorized"):
            run(service, config, user, "get_model", id=str(schema.id))

    def test_update_bot(self, service, config, user, bot):
        result = run(service, config, user, "update_bot", id=str(bot.id), description="Answers questions")

        assert result["bot"]["description"] == "Answers questions"
        assert result["bot"]["name"] == "helper"

    def test_delete_bot(self, service, config, user, bot, db_session):
        result = run(service, config, user, "delete_bot", id=str(bot.id))

        assert result == {"success": True, "message": "bot deleted successfully"}
        assert db_session.query(Bot).count() == 0

    def test_create_prompt_requires_content(self, service, config, user):
        with pytest.raises(ToolExecutionError, match="Prompt content is required"):
            run(service, config, user, "create_prompt", name="empty")

    def test_prompt_serialization_includes_active_content(self, service, config, user, prompt):
        result = run(service, config, user, "get_prompt", id=str(prompt.id))

        assert result["prompt"]["content"] == "You are a friendly support assistant."
        assert result["prompt"]["version"] == 1

    def test_tools_scoped_through_bot(self, service, config, user, other_user, mcp_tool):
        assert run(service, config, user, "list_tools")["total"] == 1
        assert run(service, config, other_user, "list_tools")["total"] == 0

    def test_create_tool_checks_config(self, service, config, user, bot):
        with pytest.raises(ValidationError, match="Invalid database_query config"):
            run(service, config, user, "create_tool", botId=str(bot.id), name="q", type="database_query", config={})

    def test_workflows_list_across_owners(self, service, config, user, db_session):
        db_session.add(Workflow(name="shared", display_name="Shared"))
        db_session.commit()

        assert run(service, config, user, "list_workflows")["total"] == 1

    def test_passwords_never_serialized(self, service, config, user):
        info = run(service, config, user, "get_user_info")

        assert "password" not in info["user"]

    @pytest.mark.parametrize("name", ["../escaped", "Upper", "a/b", "-lead"])
    def test_create_application_rejects_unsafe_names(self, service, config, user, name):
        with pytest.raises(ToolExecutionError, match="Invalid application name"):
            run(service, config, user, "create_application", name=name)

    def test_update_application_rejects_unsafe_names(self, service, config, user):
        created = run(service, config, user, "create_application", name="crm")["application"]

        with pytest.raises(ToolExecutionError, match="Invalid application name"):
            run(service, config, user, "update_application", id=created["id"], name="../escaped")

    def test_application_status_is_not_writable(self, service, config, user):
        created = run(service, config, user, "create_application", name="crm", status="built")

        assert created["application"]["status"] == "draft"

    def test_database_error_leaves_session_usable(self, service, config, user):
        with pytest.raises(ToolExecutionError, match="Database error during create_feature"):
            run(service, config, user, "create_feature", name="search", status="bogus")

        assert run(service, config, user, "list_features")["total"] == 0

    @pytest.mark.parametrize("params", [{"limit": "abc"}, {"offset": "-1"}])
    def test_list_paging_must_be_numeric(self, service, config, user, params):
        with pytest.raises(ToolExecutionError, match="Invalid"):
            run(service, config, user, "list_models", **params)


class TestMCPSpecialOperations:
    """User info, data summary, search and bot control"""

    def test_list_user_data(self, service, config, user, bot, prompt):
        result = run(service, config, user, "list_user_data")

        assert result["userData"]["bots"] == 1
        assert result["userData"]["prompts"] == 1
        assert result["userData"]["models"] == 0

    def test_search_platform(self, service, config, user, bot, prompt):
        result = run(service, config, user, "search_platform", query="HELP")

        assert result["total"] == 1
        assert result["results"][0]["type"] == "bot"

    def test_search_requires_query(self, service, config, user):
        with pytest.raises(ToolExecutionError, match="Search query is required"):
            run(service, config, user, "search_platform", query="  ")

    def test_start_and_stop_bot(self, service, config, user, bot):
        started = run(service, config, user, "start_bot", botId=str(bot.id))
        stopped = run(service, config, user, "stop_bot", botId=str(bot.id))

        assert started["instance"]["status"] == "running"
        assert stopped["instance"]["status"] == "stopped"

    def test_execute_bot_returns_reply(self, service, config, user, bot, published_events):
        result = run(service, config, user, "execute_bot", botId=str(bot.id), message="hello")

        assert result["success"] is True
        assert result["response"] == FALLBACK_RESPONSE
        assert published_events == []

    def test_execute_bot_requires_ownership(self, service, config, other_user, bot, published_events):
        with pytest.raises(ToolExecutionError, match="not found or unauthorized"):
            run(service, config, other_user, "execute_bot", botId=str(bot.id), message="hello")


def test_runs_through_tool_executor(db_session, user, mcp_tool):
    result = ToolExecutionService(db_session).execute_tool(
        mcp_tool, {"operation": "get_user_info", "userId": str(user.id)}
    )

    assert result["user"]["id"] == str(user.id)
