"""Tool-call resolution loop for non-streaming participant calls."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from ..providers.types import LLMRequest, LLMResponse, RequestMessage, ToolCall, ToolResult
from ..providers.utils import call_maybe_async
from ..tools.registry import ToolExecutor

logger = logging.getLogger(__name__)

UNRESOLVED_TOOL_CALLS_MARKER = "Unresolved tool calls"

RequestFn = Callable[[LLMRequest], Awaitable[LLMResponse]]


@dataclass
class ToolLoopState:
    """Mutable state for one participant's tool loop."""

    participant_id: str
    messages: List[RequestMessage]
    iteration: int = 0
    calls_seen: int = 0
    results: List[ToolResult] = field(default_factory=list)

    def next_call_id(self) -> str:
        self.calls_seen += 1
        return f"{self.participant_id}_tool_{self.calls_seen}"


class ToolLoopRunner:
    """Executes requested tools and re-queries the same backend, up to a cap."""

    def __init__(self, executor: Optional[ToolExecutor], max_iterations: int = 2):
        self.executor = executor
        self.max_iterations = max(0, max_iterations)

    @staticmethod
    def parse_arguments(call: ToolCall) -> Optional[Any]:
        try:
            return json.loads(call.arguments_json) if call.arguments_json else None
        except ValueError:
            logger.warning(f"Tool call {call.function_name} has unparseable arguments")
            return None

    async def execute_tool_call(self, call: ToolCall) -> ToolResult:
        """Run one call; executor failures become ``ToolResult.error``."""
        arguments = self.parse_arguments(call)
        error: Optional[str] = None
        try:
            if self.executor is None:
                raise RuntimeError("No tool executor configured")
            output = await call_maybe_async(self.executor.execute, call)
            output = "" if output is None else str(output)
        except Exception as e:
            logger.warning(f"Tool {call.function_name} failed: {e}")
            error = str(e) or type(e).__name__
            output = json.dumps({"error": error})
        return ToolResult(
            id=call.id or call.function_name,
            name=call.function_name,
            arguments=arguments,
            output=output,
            error=error,
        )

    async def append_round_with_tool_results(self, state: ToolLoopState, response: LLMResponse) -> None:
        calls = [
            call if call.id else call.model_copy(update={"id": state.next_call_id()})
            for call in response.tool_calls
        ]
        state.messages.append(
            RequestMessage(role="assistant", content=response.content or "", tool_calls=calls)
        )
        for call in calls:
            result = await self.execute_tool_call(call)
            state.results.append(result)
            state.messages.append(
                RequestMessage(
                    role="tool",
                    content=result.output,
                    name=result.name,
                    tool_call_id=result.id,
                )
            )

    async def run(
        self,
        participant_id: str,
        request: LLMRequest,
        response: LLMResponse,
        send: RequestFn,
    ) -> LLMResponse:
        """
        Resolve tool calls in ``response`` by executing them and re-querying.

        Args:
            participant_id: Owner of the loop, used for fallback call ids
            request: The request that produced ``response``
            response: First response from the backend
            send: Sends a follow-up request to the same backend

        Returns:
            Final response carrying every executed ToolResult; if the cap was
            reached with calls still pending, ``metadata.error`` says so
        """
        state = ToolLoopState(participant_id=participant_id, messages=list(request.messages))

        while response.tool_calls and state.iteration < self.max_iterations:
            state.iteration += 1
            logger.debug(
                f"[{participant_id}] tool round {state.iteration}/{self.max_iterations}: "
                f"{[c.function_name for c in response.tool_calls]}"
            )
            await self.append_round_with_tool_results(state, response)
            response = await send(request.model_copy(update={"messages": list(state.messages)}))

        final = response.model_copy(deep=True)
        final.tool_results = list(state.results)
        if final.tool_calls:
            marker = f"{UNRESOLVED_TOOL_CALLS_MARKER} after {self.max_iterations} iterations"
            final.metadata.error = " | ".join(filter(None, [final.metadata.error, marker]))
        return final
