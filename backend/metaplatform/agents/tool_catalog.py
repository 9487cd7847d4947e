"""
Bot tool catalogue
Operations each tool type exposes to intent detection, parameter examples
for the detection prompt and default parameters for tool test runs
"""
from typing import Any, Dict, List

# singular -> plural, in the order they are presented to the LLM
MCP_ENTITY_KINDS: Dict[str, str] = {
    "model": "models",
    "application": "applications",
    "bot": "bots",
    "prompt": "prompts",
    "feature": "features",
    "workflow": "workflows",
    "tool": "tools",
    "entity": "entities",
    "relationship": "relationships",
}

MCP_CRUD_ACTIONS = ("create", "list", "get", "update", "delete")

MCP_SPECIAL_OPERATIONS = (
    "get_user_info",
    "list_user_data",
    "search_platform",
    "execute_bot",
    "start_bot",
    "stop_bot",
)


def _crud_operations() -> List[str]:
    operations = []
    for singular, plural in MCP_ENTITY_KINDS.items():
        for action in MCP_CRUD_ACTIONS:
            operations.append(f"{action}_{plural if action == 'list' else singular}")
    return operations


MCP_OPERATIONS: List[str] = _crud_operations() + list(MCP_SPECIAL_OPERATIONS)

TOOL_OPERATIONS: Dict[str, List[str]] = {
    "http_request": ["GET", "POST", "PUT", "DELETE"],
    "shell_command": ["execute_command"],
    "file_operation": ["read_file", "write_file", "delete_file"],
}

PARAMETER_EXAMPLES: Dict[str, str] = {
    "mcp_tool": """For create_model:
- name: "UserModel"
- displayName: "User Model"
- description: "Model for user data"
- fields: [{"name": "email", "type": "string", "required": true}, {"name": "age", "type": "number", "required": false}]

For list_models:
- limit: 50

For get_model:
- id: "model-id-here"

For search_platform:
- query: "customer\"""",
    "http_request": """- url: "https://api.example.com/endpoint"
- method: "GET"
- headers: {"Content-Type": "application/json"}
- body: {"key": "value"}""",
    "shell_command": """- command: "ls -la"
- workingDirectory: "/app\"""",
    "file_operation": """- path: "/path/to/file"
- content: "file content" (for write operations)""",
}

DEFAULT_TEST_PARAMS: Dict[str, Dict[str, Any]] = {
    "http_request": {"test": True},
    "database_query": {"limit": 1},
    "file_operation": {"path": "/tmp/bot-tool-test.txt", "content": "test"},
    "shell_command": {"command": "echo test"},
    "custom_script": {"input": "test"},
    "workflow_action": {"test": True},
    "mcp_tool": {"operation": "get_user_info"},
}


def get_available_operations(tool_type: str, config: Dict[str, Any] = None) -> List[str]:
    """Operations offered to the LLM for a tool"""
    if tool_type == "mcp_tool":
        configured = (config or {}).get("operations")
        return list(configured) if configured else list(MCP_OPERATIONS)
    return TOOL_OPERATIONS.get(tool_type, ["unknown"])


def get_parameter_examples(tool_type: str) -> str:
    return PARAMETER_EXAMPLES.get(tool_type, "No examples available")
