"""
Multi-model orchestrator.

Owns the participant registry, fans each turn out to every active model
concurrently, keeps one model's failure away from the others, resolves tool
calls and hands routed messages to the communication layer.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..communication.prompts import build_multi_agent_system_prompt, chat_to_request_messages
from ..communication.system import LLMCommunicationSystem
from ..communication.types import ConversationThread, DiscussionContext, MessageRouting, ParsedMention
from ..llm_logger import LLMLogger
from ..log_utils import truncate_log_text
from ..models import DEFAULT_PARTICIPANT_COLOR, ChatMessage, Participant
from ..providers.base import BaseLLMAdapter
from ..providers.errors import InvalidRequestError, ProviderError
from ..providers.registry import AdapterRegistry
from ..providers.types import (
    HealthCheckResult,
    LLMRequest,
    LLMResponse,
    RequestMessage,
    RequestMetadata,
)
from ..providers.utils import call_maybe_async, extract_error_message, with_timeout
from ..tools.registry import RegistryToolExecutor, ToolExecutor, ToolRegistry
from .events import (
    EventBroadcaster,
    EventListener,
    ModelAddedEvent,
    ModelErrorEvent,
    ModelPausedEvent,
    ModelRemovedEvent,
    ModelResumedEvent,
)
from .tool_loop import ToolLoopRunner
from .types import (
    ModelFailure,
    NoActiveModelsError,
    OrchestratorConfig,
    OrchestratorError,
    OrchestratorMetadata,
    OrchestratorResponse,
    ParticipantNotFoundError,
    PerformanceMetric,
    PerformanceRecorder,
    RoutedResponse,
)

logger = logging.getLogger(__name__)

ModelChunkCallback = Callable[[str, str], Any]
ModelCompleteCallback = Callable[[str, LLMResponse], Any]
ModelErrorCallback = Callable[[str, Exception], Any]


def _new_message_id() -> str:
    return f"msg_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class LLMOrchestrator:
    """
    Coordinates several model participants within one conversation space.

    Registry mutations (add/remove/pause/resume) are serialized by a lock;
    turns read a snapshot taken under the same lock, so a lifecycle change
    never tears a turn that is already in flight.
    """

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        *,
        adapter_registry: Optional[AdapterRegistry] = None,
        communication: Optional[LLMCommunicationSystem] = None,
        tool_registry: Optional[ToolRegistry] = None,
        tool_executor: Optional[ToolExecutor] = None,
        performance_recorder: Optional[PerformanceRecorder] = None,
        interaction_logger: Optional[LLMLogger] = None,
    ):
        self.config = config or OrchestratorConfig()
        self.adapters = adapter_registry or AdapterRegistry(max_retries=self.config.retry_attempts)
        self.communication = communication or LLMCommunicationSystem()
        self.tool_registry = tool_registry or ToolRegistry()
        self.tool_executor = tool_executor or RegistryToolExecutor(self.tool_registry)
        self.performance_recorder = performance_recorder
        self.interaction_logger = interaction_logger
        self.events = EventBroadcaster()

        self._participants: Dict[str, Participant] = {}
        self._registry_lock = asyncio.Lock()
        self._request_slots = asyncio.Semaphore(self.config.max_concurrent_requests)
        self._enabled_tools: List[str] = []
        self._tool_loop = ToolLoopRunner(self.tool_executor, self.config.tool_call_max_iterations)

    # ---- events ----

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register a lifecycle listener; returns a callable that unsubscribes it."""
        return self.events.subscribe(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        self.events.unsubscribe(listener)

    # ---- participant lifecycle ----

    async def add_model(
        self,
        participant_id: str,
        config: Any,
        *,
        color: str = DEFAULT_PARTICIPANT_COLOR,
        verify_connection: bool = True,
    ) -> Participant:
        """
        Build, validate and register a participant from a provider config.

        Args:
            participant_id: Unique id for the new participant
            config: One of the ProviderConfig variants
            color: Display color
            verify_connection: Run test_connection before registering

        Returns:
            The registered Participant

        Raises:
            OrchestratorError: If the id is already taken
            InvalidRequestError: If the config fails validation
            ProviderError: If the connection test fails
        """
        if participant_id in self._participants:
            raise OrchestratorError(f"Model with ID '{participant_id}' already exists")

        adapter = self.adapters.build(participant_id, config)
        validation = adapter.validate_config()
        for warning in validation.warnings:
            logger.warning(f"[{participant_id}] config warning: {warning}")
        if not validation.is_valid:
            raise InvalidRequestError(
                participant_id, f"Invalid configuration: {'; '.join(validation.errors)}"
            )

        if verify_connection:
            result = await adapter.test_connection()
            if not result.success:
                raise ProviderError(
                    f"Connection test failed: {result.error}", participant_id, "CONNECTION_FAILED"
                )

        participant = Participant(
            id=participant_id,
            display_name=config.display_name,
            provider=adapter.kind,
            model_name=config.model_name,
            color=color,
        )
        return await self.register_participant(participant, adapter)

    async def register_participant(self, participant: Participant, adapter: BaseLLMAdapter) -> Participant:
        """Register an already-built adapter under ``participant.id``."""
        async with self._registry_lock:
            if participant.id in self._participants:
                raise OrchestratorError(f"Model with ID '{participant.id}' already exists")
            self._participants[participant.id] = participant
            self.adapters.register(participant.id, adapter)
        logger.info(f"Added model {participant.display_name} ({participant.id})")
        await self.events.emit(ModelAddedEvent(participant_id=participant.id, participant=participant))
        return participant

    async def update_model_config(self, participant_id: str, config: Any) -> Participant:
        """Swap in a new provider config; the adapter is rebuilt only if it changed."""
        async with self._registry_lock:
            participant = self._require(participant_id)
            adapter = self.adapters.get_or_create(participant_id, config)
            participant.display_name = config.display_name
            participant.model_name = config.model_name
            participant.provider = adapter.kind
        return participant

    async def remove_model(self, participant_id: str) -> None:
        async with self._registry_lock:
            self._require(participant_id)
            del self._participants[participant_id]
            self.adapters.remove(participant_id)
        logger.info(f"Removed model {participant_id}")
        await self.events.emit(ModelRemovedEvent(participant_id=participant_id))

    async def pause_model(self, participant_id: str) -> None:
        async with self._registry_lock:
            self._require(participant_id).is_active = False
        logger.info(f"Paused model {participant_id}")
        await self.events.emit(ModelPausedEvent(participant_id=participant_id))

    async def resume_model(self, participant_id: str, *, verify_connection: bool = True) -> None:
        """Reactivate a paused participant, optionally re-testing its backend first."""
        async with self._registry_lock:
            self._require(participant_id)
            adapter = self.adapters.get(participant_id)
        if verify_connection and adapter is not None:
            result = await adapter.test_connection()
            if not result.success:
                raise ProviderError(
                    f"Cannot resume model: {result.error}", participant_id, "CONNECTION_FAILED"
                )
        async with self._registry_lock:
            self._require(participant_id).is_active = True
        logger.info(f"Resumed model {participant_id}")
        await self.events.emit(ModelResumedEvent(participant_id=participant_id))

    def _require(self, participant_id: str) -> Participant:
        participant = self._participants.get(participant_id)
        if participant is None:
            raise ParticipantNotFoundError(participant_id)
        return participant

    def get_active_participants(self) -> List[Participant]:
        return [p.model_copy() for p in self._participants.values() if p.is_active]

    def get_all_participants(self) -> List[Participant]:
        return [p.model_copy() for p in self._participants.values()]

    def get_participant(self, participant_id: str) -> Optional[Participant]:
        participant = self._participants.get(participant_id)
        return participant.model_copy() if participant else None

    async def _active_snapshot(self) -> List[Tuple[Participant, BaseLLMAdapter]]:
        async with self._registry_lock:
            snapshot = []
            for participant in self._participants.values():
                adapter = self.adapters.get(participant.id)
                if participant.is_active and adapter is not None:
                    snapshot.append((participant.model_copy(), adapter))
            return snapshot

    # ---- tools & health ----

    def set_available_tools(self, tool_names: Iterable[str]) -> None:
        enabled = []
        for name in tool_names:
            if self.tool_registry.get_tool(name) is None:
                logger.warning(f"Ignoring unknown tool '{name}'")
                continue
            enabled.append(name)
        self._enabled_tools = enabled

    def get_available_tools(self) -> List[str]:
        return list(self._enabled_tools)

    def _tool_definitions(self) -> Optional[List[Dict[str, Any]]]:
        if not self._enabled_tools:
            return None
        return self.tool_registry.get_all(self._enabled_tools)

    async def health_check_all(self) -> Dict[str, HealthCheckResult]:
        async with self._registry_lock:
            adapters = [(pid, self.adapters.get(pid)) for pid in self._participants]
        checked = [(pid, adapter) for pid, adapter in adapters if adapter is not None]
        results = await asyncio.gather(*(adapter.health_check() for _, adapter in checked))
        return {pid: result for (pid, _), result in zip(checked, results)}

    # ---- per-participant call path ----

    async def _request_with_timeout(
        self, participant_id: str, adapter: BaseLLMAdapter, request: LLMRequest
    ) -> LLMResponse:
        async with self._request_slots:
            return await with_timeout(
                adapter.send_request(request), self.config.request_timeout_ms, participant_id
            )

    async def _complete(self, participant: Participant, adapter: BaseLLMAdapter, request: LLMRequest) -> LLMResponse:
        """One participant's full non-streaming turn: timed call plus tool loop."""
        response = await self._request_with_timeout(participant.id, adapter, request)
        if response.tool_calls and request.tools:
            response = await self._tool_loop.run(
                participant.id,
                request,
                response,
                lambda follow_up: self._request_with_timeout(participant.id, adapter, follow_up),
            )
        logger.debug(f"[{participant.id}] response: {truncate_log_text(response.content, 400)}")
        if self.interaction_logger is not None:
            self.interaction_logger.log_interaction(
                request.metadata.conversation_id or "", participant.id, request.messages, response
            )
        return response

    async def _handle_failure(self, participant_id: str, error: Exception, conversation_id: str = "") -> None:
        logger.warning(f"Model {participant_id} failed: {extract_error_message(error)}")
        if self.interaction_logger is not None:
            self.interaction_logger.log_error(conversation_id, participant_id, error)
        await self.events.emit(
            ModelErrorEvent(
                participant_id=participant_id,
                error=extract_error_message(error),
                error_code=getattr(error, "code", None),
            )
        )
        if not self.config.error_isolation:
            try:
                await self.pause_model(participant_id)
            except OrchestratorError as pause_error:
                logger.warning(f"Could not pause {participant_id} after failure: {pause_error}")

    async def _record_metric(self, message_id: str, response: LLMResponse) -> None:
        if self.performance_recorder is None:
            return
        usage = response.usage
        metric = PerformanceMetric(
            id=f"perf_{message_id}_{response.model_id}",
            message_id=message_id,
            model_id=response.model_id,
            processing_time=response.metadata.processing_time_ms,
            token_count=response.metadata.token_count,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
            error=response.metadata.error,
        )
        try:
            await call_maybe_async(self.performance_recorder.create, metric)
        except Exception:
            logger.exception(f"Failed to record performance metric {metric.id}")

    def _build_fanout_messages(
        self, messages: Sequence[ChatMessage], participant_names: Sequence[str], system_prompt: Optional[str]
    ) -> List[RequestMessage]:
        preamble = build_multi_agent_system_prompt(participant_names, system_prompt)
        return [RequestMessage(role="system", content=preamble), *chat_to_request_messages(messages)]

    # ---- fan-out turns ----

    async def send_to_all_models(
        self,
        messages: Sequence[ChatMessage],
        conversation_id: str,
        message_id: str,
        system_prompt: Optional[str] = None,
    ) -> OrchestratorResponse:
        """
        Send one turn to every active participant concurrently.

        Args:
            messages: Conversation history, oldest first
            conversation_id: Conversation the turn belongs to
            message_id: Id of the message that triggered the turn
            system_prompt: Extra context appended to the multi-agent preamble

        Returns:
            OrchestratorResponse with successes and per-participant failures

        Raises:
            NoActiveModelsError: If no participant is active
        """
        started = time.perf_counter()
        active = await self._active_snapshot()
        if not active:
            raise NoActiveModelsError()

        names = [participant.display_name for participant, _ in active]
        request_messages = self._build_fanout_messages(messages, names, system_prompt)
        tools = self._tool_definitions()
        metadata = RequestMetadata(
            conversation_id=conversation_id, message_id=message_id, participant_names=names
        )

        responses: List[LLMResponse] = []
        errors: List[ModelFailure] = []

        async def run_participant(participant: Participant, adapter: BaseLLMAdapter) -> None:
            request = LLMRequest(
                messages=list(request_messages),
                tools=tools,
                tool_choice="auto" if tools else None,
                metadata=metadata,
            )
            try:
                response = await self._complete(participant, adapter, request)
            except Exception as e:
                errors.append(ModelFailure(model_id=participant.id, error=e))
                await self._handle_failure(participant.id, e, conversation_id)
                return
            responses.append(response)
            await self._record_metric(message_id, response)

        outcomes = await asyncio.gather(
            *(run_participant(participant, adapter) for participant, adapter in active),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, Exception):
                logger.error(f"Unexpected fan-out failure: {outcome!r}")

        return OrchestratorResponse(
            conversation_id=conversation_id,
            message_id=message_id,
            responses=responses,
            errors=errors,
            metadata=OrchestratorMetadata(
                total_processing_time_ms=(time.perf_counter() - started) * 1000,
                success_count=len(responses),
                failure_count=len(errors),
            ),
        )

    async def _stream_participant(
        self,
        participant: Participant,
        adapter: BaseLLMAdapter,
        request: LLMRequest,
        message_id: str,
        on_chunk: Optional[ModelChunkCallback],
        on_complete: Optional[ModelCompleteCallback],
        on_error: Optional[ModelErrorCallback],
    ) -> Tuple[Optional[LLMResponse], Optional[Exception]]:
        failure: List[Exception] = []
        async with self._request_slots:
            response = await adapter.send_streaming_request(
                request,
                on_chunk=lambda chunk: call_maybe_async(on_chunk, participant.id, chunk),
                on_complete=None,
                on_error=failure.append,
            )
        if response is None:
            error = failure[0] if failure else ProviderError("Stream failed", participant.id)
            await self._handle_failure(participant.id, error, request.metadata.conversation_id or "")
            await call_maybe_async(on_error, participant.id, error)
            return None, error
        await self._record_metric(message_id, response)
        await call_maybe_async(on_complete, participant.id, response)
        return response, None

    async def send_streaming_to_all_models(
        self,
        messages: Sequence[ChatMessage],
        conversation_id: str,
        message_id: str,
        on_chunk: Optional[ModelChunkCallback] = None,
        on_complete: Optional[ModelCompleteCallback] = None,
        on_error: Optional[ModelErrorCallback] = None,
        system_prompt: Optional[str] = None,
    ) -> OrchestratorResponse:
        """
        Streaming variant of ``send_to_all_models``.

        Chunks are forwarded as ``on_chunk(model_id, text)``. Tool calls are
        not resolved on this path.
        """
        started = time.perf_counter()
        active = await self._active_snapshot()
        if not active:
            raise NoActiveModelsError()

        names = [participant.display_name for participant, _ in active]
        request_messages = self._build_fanout_messages(messages, names, system_prompt)
        metadata = RequestMetadata(
            conversation_id=conversation_id, message_id=message_id, participant_names=names
        )

        outcomes = await asyncio.gather(
            *(
                self._stream_participant(
                    participant,
                    adapter,
                    LLMRequest(messages=list(request_messages), metadata=metadata),
                    message_id,
                    on_chunk,
                    on_complete,
                    on_error,
                )
                for participant, adapter in active
            ),
            return_exceptions=True,
        )

        responses: List[LLMResponse] = []
        errors: List[ModelFailure] = []
        for (participant, _), outcome in zip(active, outcomes):
            if isinstance(outcome, Exception):
                errors.append(ModelFailure(model_id=participant.id, error=outcome))
                continue
            response, error = outcome
            if response is not None:
                responses.append(response)
            elif error is not None:
                errors.append(ModelFailure(model_id=participant.id, error=error))

        return OrchestratorResponse(
            conversation_id=conversation_id,
            message_id=message_id,
            responses=responses,
            errors=errors,
            metadata=OrchestratorMetadata(
                total_processing_time_ms=(time.perf_counter() - started) * 1000,
                success_count=len(responses),
                failure_count=len(errors),
            ),
        )

    # ---- routed messages ----

    async def _prepare_routing(
        self,
        message: ChatMessage,
        conversation_history: Sequence[ChatMessage],
        reply_to: Optional[ChatMessage],
    ) -> Tuple[MessageRouting, str, DiscussionContext, Dict[str, Tuple[Participant, BaseLLMAdapter]]]:
        active = await self._active_snapshot()
        if not active:
            raise NoActiveModelsError()
        participants = [participant for participant, _ in active]

        routing = self.communication.create_message_routing(message, participants, reply_to)
        thread_id = self.communication.create_or_update_thread(
            message.id, message.sender, routing.target_ids, reply_to.id if reply_to else None
        )
        self.communication.add_message_to_thread(thread_id, message)

        context = self.communication.get_discussion_context(thread_id)
        if context is None:
            context = self.communication.create_discussion_context(
                thread_id, conversation_history, participants
            )
        if not any(m.id == message.id for m in context.conversation_history):
            self.communication.update_discussion_context(thread_id, message, participants)
        else:
            context.active_participants = participants

        return routing, thread_id, context, {p.id: (p, adapter) for p, adapter in active}

    async def send_message_with_routing(
        self,
        message: ChatMessage,
        conversation_history: Sequence[ChatMessage],
        reply_to: Optional[ChatMessage] = None,
        system_prompt: Optional[str] = None,
    ) -> RoutedResponse:
        """
        Deliver a message only to the participants its routing selects.

        Args:
            message: Message to deliver
            conversation_history: Prior messages, used to seed a new thread's context
            reply_to: Message being replied to, if any
            system_prompt: Extra system-prompt context

        Returns:
            RoutedResponse with one response (possibly an error response) per target

        Raises:
            NoActiveModelsError: If no participant is active
        """
        routing, thread_id, context, bound = await self._prepare_routing(
            message, conversation_history, reply_to
        )
        tools = self._tool_definitions()

        async def send(target_id: str, request: LLMRequest) -> LLMResponse:
            if target_id not in bound:
                raise ParticipantNotFoundError(target_id)
            participant, adapter = bound[target_id]
            request = request.model_copy(
                update={"tools": tools, "tool_choice": "auto" if tools else None}
            )
            try:
                return await self._complete(participant, adapter, request)
            except Exception as e:
                await self._handle_failure(target_id, e, thread_id)
                raise

        logger.info(
            f"Routing {message.id} ({routing.routing_type.value}) to {routing.target_ids} in {thread_id}"
        )
        responses = await self.communication.route_message(
            routing, message, context, send, system_prompt
        )
        return RoutedResponse(responses=responses, routing=routing, thread_id=thread_id)

    async def send_streaming_message_with_routing(
        self,
        message: ChatMessage,
        conversation_history: Sequence[ChatMessage],
        on_chunk: Optional[ModelChunkCallback] = None,
        on_complete: Optional[ModelCompleteCallback] = None,
        on_error: Optional[ModelErrorCallback] = None,
        reply_to: Optional[ChatMessage] = None,
        system_prompt: Optional[str] = None,
    ) -> RoutedResponse:
        """Streaming variant of ``send_message_with_routing``; non-model targets are skipped."""
        routing, thread_id, context, bound = await self._prepare_routing(
            message, conversation_history, reply_to
        )
        request_messages = self.communication.build_routed_messages(
            routing, message, context, system_prompt
        )
        metadata = RequestMetadata(
            conversation_id=thread_id,
            message_id=message.id,
            participant_names=[p.display_name for p in context.active_participants],
        )

        targets = [bound[target_id] for target_id in routing.target_ids if target_id in bound]
        outcomes = await asyncio.gather(
            *(
                self._stream_participant(
                    participant,
                    adapter,
                    LLMRequest(messages=list(request_messages), metadata=metadata),
                    message.id,
                    on_chunk,
                    on_complete,
                    on_error,
                )
                for participant, adapter in targets
            ),
            return_exceptions=True,
        )

        responses: Dict[str, LLMResponse] = {}
        for (participant, _), outcome in zip(targets, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Unexpected streaming failure for {participant.id}: {outcome!r}")
                continue
            response, _ = outcome
            if response is not None:
                responses[participant.id] = response
        return RoutedResponse(responses=responses, routing=routing, thread_id=thread_id)

    async def handle_llm_response(
        self, response: LLMResponse, thread_id: str, original_message: ChatMessage
    ) -> ChatMessage:
        """Turn a model response into a reply message and fold it into the thread."""
        participant = self._participants.get(response.model_id)
        metadata: Dict[str, Any] = {
            "model": response.model_id,
            "provider": participant.provider.value if participant else "unknown",
            "processing_time_ms": response.metadata.processing_time_ms,
            "token_count": response.metadata.token_count,
        }
        if response.metadata.error:
            metadata["error"] = response.metadata.error
        if response.tool_results:
            metadata["tool_results"] = [result.model_dump() for result in response.tool_results]

        reply = ChatMessage(
            id=_new_message_id(),
            content=response.content,
            sender=response.model_id,
            reply_to=original_message.id,
            metadata=metadata,
        )
        await self._record_metric(reply.id, response)
        self.communication.add_message_to_thread(thread_id, reply)
        self.communication.update_discussion_context(thread_id, reply)
        return reply

    # ---- thread access ----

    def get_active_threads(self) -> List[ConversationThread]:
        return self.communication.get_active_threads()

    def get_thread(self, thread_id: str) -> Optional[ConversationThread]:
        return self.communication.get_thread(thread_id)

    def get_discussion_context(self, thread_id: str) -> Optional[DiscussionContext]:
        return self.communication.get_discussion_context(thread_id)

    def close_thread(self, thread_id: str) -> None:
        self.communication.close_thread(thread_id)

    def parse_mentions(self, content: str) -> List[ParsedMention]:
        return self.communication.parse_mentions(
            content, [p for p in self._participants.values() if p.is_active]
        )
