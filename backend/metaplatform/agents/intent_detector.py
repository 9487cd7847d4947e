"""
Intent detection for bot messages

Maps a free-text user message onto tool invocations.

1st: LLM detection
   - The bot's active tools, their operations and parameter examples are
     described in a system prompt; the LLM answers with a JSON object
     {"toolCalls": [{"toolName", "operation", "parameters", "confidence"}]}.
   - The first {...} span of the reply is parsed; anything unusable yields [].

2nd: keyword rules (when the LLM is unavailable)
   - Tool name / type / display name and per-type keywords select tools.
   - URLs, paths and quoted strings become parameters; MCP operations are
     inferred from verbs and entity nouns.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from metaplatform.agents.tool_catalog import get_available_operations, get_parameter_examples
from metaplatform.models import BotTool
from metaplatform.services.llm_service import LLMService
from metaplatform.utils.errors import LLMServiceError
from metaplatform.utils.metrics import intent_detections_total

logger = logging.getLogger(__name__)

JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")
URL_PATTERN = re.compile(r"https?://[^\s]+")
PATH_PATTERN = re.compile(r"(?<![\w:/])/[\w/.-]+")
QUOTED_PATTERN = re.compile(r'"([^"]+)"')
SEARCH_QUERY_PATTERN = re.compile(r"search\s+(?:for\s+)?[\"']?([^\"']+)[\"']?", re.IGNORECASE)

TYPE_KEYWORDS: Dict[str, Sequence[str]] = {
    "shell_command": ("shell", "command", "ping"),
    "http_request": ("http", "api", "request"),
    "file_operation": ("file", "read", "write"),
    "mcp_tool": ("mcp", "platform", "meta", "create", "bot", "list", "get", "show", "find", "search"),
}

# (required words, operation); first match wins
MCP_OPERATION_RULES: Sequence[tuple] = (
    (("list", "model"), "list_models"),
    (("list", "application"), "list_applications"),
    (("list", "prompt"), "list_prompts"),
    (("list", "tool"), "list_tools"),
    (("list", "feature"), "list_features"),
    (("list", "workflow"), "list_workflows"),
    (("get", "user"), "get_user_info"),
    (("list", "user", "data"), "list_user_data"),
    (("search",), "search_platform"),
)


@dataclass
class ToolCall:
    """Tool selected for a message, with the parameters to run it with"""
    tool: BotTool
    params: Dict[str, Any] = field(default_factory=dict)
    operation: Optional[str] = None
    confidence: float = 1.0
    source: str = "llm"  # "llm", "keyword"


class KeywordToolDetector:
    """Rule based tool selection used when the LLM cannot be reached"""

    def detect(self, message: str, tools: Sequence[BotTool], user_id: Any) -> List[ToolCall]:
        calls = []
        for tool in tools:
            if not tool.is_active:
                continue
            if self.matches(message, tool):
                params = self.extract_params(message, tool, user_id)
                logger.debug(f"Keyword match: {tool.name} ({tool.type}) params={params}")
                calls.append(
                    ToolCall(
                        tool=tool,
                        params=params,
                        operation=params.get("operation"),
                        confidence=0.5,
                        source="keyword",
                    )
                )
        return calls

    @staticmethod
    def _has_word(text: str, word: str) -> bool:
        return bool(word) and re.search(rf"\b{re.escape(word)}\b", text, re.IGNORECASE) is not None

    @staticmethod
    def _has_keyword(text: str, keyword: str) -> bool:
        return re.search(rf"\b{re.escape(keyword)}", text, re.IGNORECASE) is not None

    def matches(self, message: str, tool: BotTool) -> bool:
        if self._has_word(message, tool.name):
            return True
        if self._has_word(message, tool.type.replace("_", " ")):
            return True
        if self._has_word(message, tool.display_name or ""):
            return True
        return any(self._has_keyword(message, kw) for kw in TYPE_KEYWORDS.get(tool.type, ()))

    def extract_params(self, message: str, tool: BotTool, user_id: Any) -> Dict[str, Any]:
        params: Dict[str, Any] = {}

        url_match = URL_PATTERN.search(message)
        if url_match:
            params["url"] = url_match.group(0)

        path_match = PATH_PATTERN.search(message)
        if path_match:
            params["path"] = path_match.group(0)

        for index, quoted in enumerate(QUOTED_PATTERN.findall(message), start=1):
            params[f"param{index}"] = quoted

        if tool.type == "mcp_tool":
            operation = self.infer_mcp_operation(message)
            if operation:
                params["operation"] = operation
                params["userId"] = str(user_id)
                if operation == "search_platform":
                    query_match = SEARCH_QUERY_PATTERN.search(message)
                    if query_match:
                        params["query"] = query_match.group(1).strip()

        return params

    def infer_mcp_operation(self, message: str) -> Optional[str]:
        lower = message.lower()
        for words, operation in MCP_OPERATION_RULES:
            if all(word in lower for word in words):
                return operation
        return None


class IntentDetectionService:
    """
    Tool call detection for bot messages

    Usage:
        detector = IntentDetectionService()
        calls = detector.detect_tool_calls("list my models", bot.tools, user_id)
    """

    def __init__(
        self,
        llm: Optional[LLMService] = None,
        keyword_detector: Optional[KeywordToolDetector] = None,
    ):
        self.llm = llm or LLMService()
        self.keyword_detector = keyword_detector or KeywordToolDetector()

    def detect_tool_calls(self, message: str, tools: Sequence[BotTool], user_id: Any) -> List[ToolCall]:
        """
        Detect tool calls in a user message

        Args:
            message: user message
            tools: the bot's tools (inactive ones are ignored)
            user_id: requesting user, injected into every call's parameters

        Returns:
            Tool calls in the order the LLM listed them; [] when nothing applies
        """
        active_tools = [tool for tool in tools if tool.is_active]
        if not active_tools:
            intent_detections_total.labels(source="none").inc()
            return []

        system_prompt = self.build_system_prompt(active_tools)

        try:
            result = self.llm.generate_response(system_prompt, "", message)
        except LLMServiceError as e:
            logger.warning(f"LLM intent detection unavailable ({e}); using keyword rules")
            calls = self.keyword_detector.detect(message, active_tools, user_id)
            intent_detections_total.labels(source="keyword").inc()
            return calls

        calls = self.parse_llm_response(result.response, active_tools, user_id)
        intent_detections_total.labels(source="llm").inc()
        return calls

    def build_system_prompt(self, tools: Sequence[BotTool]) -> str:
        tool_descriptions = []
        for tool in tools:
            operations = get_available_operations(tool.type, tool.config)
            tool_descriptions.append(
                f"Tool: {tool.display_name} ({tool.name})\n"
                f"Type: {tool.type}\n"
                f"Description: {tool.description or 'No description'}\n"
                f"Available Operations: {', '.join(operations)}\n"
                f"Parameters Examples:\n{get_parameter_examples(tool.type)}"
            )

        return (
            "You are an intent detection system for a bot platform. Analyze the user's message "
            "and determine which tools should be called.\n\n"
            "Available Tools:\n"
            + "\n\n".join(tool_descriptions)
            + "\n\nRespond ONLY with a JSON object in this exact format:\n"
            "{\n"
            '  "toolCalls": [\n'
            "    {\n"
            '      "toolName": "exact_tool_name",\n'
            '      "operation": "operation_name",\n'
            '      "parameters": {"param1": "value1"},\n'
            '      "confidence": 0.95\n'
            "    }\n"
            "  ]\n"
            "}\n\n"
            "Rules:\n"
            "1. Only call tools that are explicitly relevant to the user's request\n"
            "2. Use the exact tool name from the list above\n"
            "3. Extract parameters from the user's message\n"
            "4. Set confidence between 0 and 1\n"
            '5. If no tools are needed, return {"toolCalls": []}\n'
            "6. For model or schema creation, extract the field definitions from the message"
        )

    def parse_llm_response(self, response: str, tools: Sequence[BotTool], user_id: Any) -> List[ToolCall]:
        """Parse the first JSON object of an LLM reply into tool calls"""
        match = JSON_OBJECT_PATTERN.search(response or "")
        if not match:
            logger.info("No JSON found in intent detection response")
            return []

        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in intent detection response: {e}")
            return []

        raw_calls = parsed.get("toolCalls") if isinstance(parsed, dict) else None
        if not isinstance(raw_calls, list):
            logger.info("Intent detection response has no toolCalls list")
            return []

        by_name = {tool.name: tool for tool in tools}
        by_display = {tool.display_name: tool for tool in tools}

        calls = []
        for raw in raw_calls:
            if not isinstance(raw, dict):
                continue
            tool_name = raw.get("toolName")
            tool = by_name.get(tool_name) or by_display.get(tool_name)
            if tool is None:
                logger.info(f"Ignoring call to unknown tool: {tool_name}")
                continue

            parameters = raw.get("parameters")
            operation = raw.get("operation")
            params = {
                **(parameters if isinstance(parameters, dict) else {}),
                "userId": str(user_id),
                "operation": operation,
            }
            try:
                confidence = float(raw.get("confidence", 1.0))
            except (TypeError, ValueError):
                confidence = 0.0

            calls.append(
                ToolCall(tool=tool, params=params, operation=operation, confidence=confidence, source="llm")
            )

        return calls
