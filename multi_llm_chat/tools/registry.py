"""
Tool Registry - holds the tools models may call and executes their calls.

Tools are LangChain ``BaseTool`` objects (typically built with ``@tool``);
their schemas are exported as OpenAI function-tool definitions for the
request body.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from langchain_core.tools import BaseTool
from langchain_core.utils.function_calling import convert_to_openai_tool

from ..providers.types import ToolCall

logger = logging.getLogger(__name__)


@runtime_checkable
class ToolExecutor(Protocol):
    """Anything that can turn a ToolCall into tool output text."""

    async def execute(self, call: ToolCall) -> str:
        ...


class ToolRegistry:
    """Registry of callable tools, keyed by tool name."""

    def __init__(self, tools: Optional[Iterable[BaseTool]] = None) -> None:
        self._tool_map: Dict[str, BaseTool] = {}
        for tool_obj in tools or []:
            self.register(tool_obj)

    def register(self, tool_obj: BaseTool) -> None:
        if tool_obj.name in self._tool_map:
            logger.warning(f"Replacing already registered tool '{tool_obj.name}'")
        self._tool_map[tool_obj.name] = tool_obj

    def get_tool(self, name: str) -> Optional[BaseTool]:
        """Look up a tool by name."""
        return self._tool_map.get(name)

    def names(self) -> List[str]:
        return list(self._tool_map)

    def get_all(self, names: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        """OpenAI function-tool definitions, optionally limited to ``names``."""
        selected = self._tool_map.values() if names is None else [
            self._tool_map[name] for name in names if name in self._tool_map
        ]
        return [convert_to_openai_tool(tool_obj) for tool_obj in selected]


class RegistryToolExecutor:
    """Executes tool calls against a ToolRegistry."""

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    async def execute(self, call: ToolCall) -> str:
        """Run one call. Tool exceptions propagate to the caller.

        Args:
            call: Tool call requested by a model.

        Returns:
            Tool output as a string; unknown tools yield a JSON error object.
        """
        tool_obj = self.registry.get_tool(call.function_name)
        if tool_obj is None:
            return json.dumps({"error": f"Unknown tool: {call.function_name}"})

        args = json.loads(call.arguments_json or "{}")
        if not isinstance(args, dict):
            raise ValueError(f"Tool arguments for {call.function_name} must be a JSON object")

        result = await tool_obj.ainvoke(args)
        if isinstance(result, str):
            return result
        try:
            return json.dumps(result)
        except TypeError:
            return str(result)
