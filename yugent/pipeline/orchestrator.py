"""
Pipeline orchestrator: drives one execution cycle per execute() call.

    human message
         ↓
    LLM layer.send(history, tools) ──→ plain Message ──→ DONE
         ↓ ToolCallRequest(s)                              ↓
    ToolRegistry.invoke()                       commit turn, notify loggers
         ↓ tool Message
    back to the LLM layer (bounded by max_tool_iterations)

Every cycle runs through explicit states:

    IDLE → AWAITING_LLM → (TOOL_REQUESTED → AWAITING_TOOL → AWAITING_LLM)* → DONE
    any state → FAILED

Design decisions:
- The turn is staged on the cycle and committed to the conversation's
  MessageStore only when the cycle reaches DONE. A failed or cancelled
  cycle leaves the store exactly as it was, so there is never a tool
  result without the request that triggered it.
- The tool loop is a while-loop with an iteration counter. The LLM asking
  for tools more than max_tool_iterations times fails the cycle with
  MaxToolIterationsExceeded instead of looping forever.
- Tool failures are passed back to the LLM as error text by default so the
  model can degrade gracefully. With recover_tool_errors=False they abort
  the cycle.
- The LLM call and the tool call are the only suspension points. Both are
  bounded by a timeout and both react to the caller's cancel_event.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from contextlib import AsyncExitStack
from typing import Any, TypeVar

from yugent.config.logging import get_logger, setup_logging
from yugent.config.settings import PipelineSettings, Settings
from yugent.errors import (
    BusyError,
    CycleCancelledError,
    DuplicateIdError,
    LogError,
    LLMTimeoutError,
    MaxToolIterationsExceeded,
    NotFoundError,
    ParseError,
    ProviderError,
    ToolExecutionError,
    ToolTimeoutError,
    YugentError,
)
from yugent.layers import Layer, LayerRole, LLMLayer, LogLayer, ToolLayer
from yugent.loggers.dispatch import LoggerDispatch
from yugent.models import (
    CycleState,
    LogEvent,
    LogEventKind,
    Message,
    Role,
    ToolCallRequest,
    new_id,
)
from yugent.pipeline.store import MessageStore
from yugent.tools.registry import ToolRegistry, consume_result

logger = get_logger(__name__)

T = TypeVar("T")

_TRANSITIONS: dict[CycleState, set[CycleState]] = {
    CycleState.IDLE: {CycleState.AWAITING_LLM, CycleState.FAILED},
    CycleState.AWAITING_LLM: {CycleState.TOOL_REQUESTED, CycleState.DONE, CycleState.FAILED},
    CycleState.TOOL_REQUESTED: {CycleState.AWAITING_TOOL, CycleState.FAILED},
    # Several tool calls in one LLM reply go back to TOOL_REQUESTED
    CycleState.AWAITING_TOOL: {CycleState.AWAITING_LLM, CycleState.TOOL_REQUESTED, CycleState.FAILED},
    CycleState.DONE: set(),
    CycleState.FAILED: set(),
}


class Conversation:
    """
    A caller-owned conversation: its message history plus the guard that
    keeps one execution cycle in flight at a time.

    Args:
        messages: Initial history (e.g. restored from elsewhere)
        id: Conversation id used in log events
    """

    def __init__(self, messages: Iterable[Message] | None = None, id: str | None = None):
        self.id = id or new_id("conv")
        self.store = MessageStore(messages)
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def history(self) -> tuple[Message, ...]:
        return self.store.history()

    def __repr__(self) -> str:
        return f"Conversation(id={self.id!r}, messages={len(self.store)})"


class ExecutionCycle:
    """
    Bookkeeping for one execute() call.

    Holds the state machine, the tool iteration counter, the messages staged
    for commit and the log events emitted so far. Discarded when execute()
    returns; Pipeline.last_cycle keeps the most recent one for inspection.
    """

    def __init__(self, conversation: Conversation):
        self.id = new_id("cycle")
        self.conversation = conversation
        self.state = CycleState.IDLE
        self.tool_iterations = 0
        self.staged: list[Message] = []
        self.events: list[LogEvent] = []
        self.result: Message | None = None
        self.error: BaseException | None = None

    def transition(self, new_state: CycleState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal cycle transition {self.state.value} -> {new_state.value}"
            )
        logger.debug(f"Cycle {self.id}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def stage(self, message: Message) -> None:
        self.staged.append(message)

    def history(self) -> tuple[Message, ...]:
        """Committed history plus this cycle's staged messages."""
        return self.conversation.history() + tuple(self.staged)

    def commit(self) -> None:
        self.conversation.store.extend(self.staged)

    def fail(self, error: BaseException) -> None:
        self.error = error
        if self.state is not CycleState.FAILED:
            self.transition(CycleState.FAILED)


class Pipeline:
    """
    Composes layers into an agent execution pipeline.

    Layers are registered once, here, and sorted by their role tag. The
    first LLM layer is the default driver; tool layers go into a
    ToolRegistry; log layers into a LoggerDispatch.

    Args:
        layers: LLM, tool and log layers. Ids must be unique.
        settings: Cycle limits, timeouts and logger mode
        on_log_error: Called with each LogError (out-of-band diagnostics)

    Raises:
        DuplicateIdError: Two layers share an id
        ValueError: No LLM layer was given
    """

    def __init__(
        self,
        layers: Iterable[Layer],
        settings: PipelineSettings | None = None,
        *,
        on_log_error: Callable[[LogError], None] | None = None,
    ):
        self.settings = settings or PipelineSettings()
        self._layers: list[Layer] = []
        self._llm_layers: dict[str, LLMLayer] = {}
        self._registry = ToolRegistry(default_timeout=self.settings.tool_timeout)
        log_layers: list[LogLayer] = []

        seen: set[str] = set()
        for layer in layers:
            if layer.id in seen:
                raise DuplicateIdError(layer.id)
            seen.add(layer.id)

            role = getattr(layer, "role", None)
            if role is LayerRole.LLM and isinstance(layer, LLMLayer):
                self._llm_layers[layer.id] = layer
            elif role is LayerRole.TOOL and isinstance(layer, ToolLayer):
                self._registry.register(layer)
            elif role is LayerRole.LOG and isinstance(layer, LogLayer):
                log_layers.append(layer)
            else:
                raise TypeError(f"Not a pipeline layer: {layer!r}")
            self._layers.append(layer)

        if not self._llm_layers:
            raise ValueError("Pipeline requires an LLM layer")

        self._dispatch = LoggerDispatch(
            log_layers,
            mode=self.settings.logger_mode,
            timeout=self.settings.logger_timeout,
            on_error=on_log_error,
        )
        self._exit_stack: AsyncExitStack | None = None
        self.last_cycle: ExecutionCycle | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        tools: Iterable[ToolLayer] = (),
        loggers: Iterable[LogLayer] | None = None,
        system_prompt: str | None = None,
        on_log_error: Callable[[LogError], None] | None = None,
        configure_logging: bool = False,
    ) -> "Pipeline":
        """
        Build a pipeline with a LiteLLM driver configured from `settings`.

        When `loggers` is None a ConsoleLogger is added, plus a WebhookLogger
        if WEBHOOK_URL is configured. With configure_logging=True the yugent
        logger tree is set up from settings.log_level / settings.log_file.
        """
        from yugent.llm.litellm_layer import LiteLLMLayer
        from yugent.loggers.console import ConsoleLogger
        from yugent.loggers.webhook import WebhookLogger

        if configure_logging:
            setup_logging(settings)

        if loggers is None:
            loggers = [ConsoleLogger()]
            if settings.webhook.url:
                loggers.append(WebhookLogger.from_settings(settings.webhook))

        layers: list[Layer] = [LiteLLMLayer(settings.llm, system_prompt=system_prompt)]
        layers.extend(tools)
        layers.extend(loggers)
        return cls(layers, settings.pipeline, on_log_error=on_log_error)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def layers(self) -> list[Layer]:
        return list(self._layers)

    @property
    def driver(self) -> LLMLayer:
        return next(iter(self._llm_layers.values()))

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def dispatch(self) -> LoggerDispatch:
        return self._dispatch

    def conversation(self, messages: Iterable[Message] | None = None, id: str | None = None) -> Conversation:
        return Conversation(messages, id=id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Initialize every layer. Layers initialized so far are shut down on failure."""
        stack = AsyncExitStack()
        try:
            for layer in self._layers:
                await stack.enter_async_context(layer)
        except BaseException:
            await stack.aclose()
            raise
        self._exit_stack = stack

    async def flush(self) -> None:
        """Wait for background log deliveries."""
        await self._dispatch.flush()

    async def aclose(self) -> None:
        await self._dispatch.aclose()
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
            self._exit_stack = None

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        conversation: Conversation,
        message: str | Message,
        *,
        driver: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Message:
        """
        Run one cycle: from a human message to the final assistant message.

        Args:
            conversation: The conversation to extend
            message: Human message text (or a Message with role=human)
            driver: Id of the LLM layer to use (default: the first one)
            cancel_event: Setting this event cancels the cycle at its next
                          suspension point

        Returns:
            The final assistant Message (also appended to the conversation)

        Raises:
            ValueError: Empty message or non-human Message
            BusyError: The conversation already has a cycle in flight
            ProviderError / ParseError: The LLM layer failed
            UnknownToolError / InvalidParamsError: The LLM asked for an
                unknown tool or passed bad parameters
            ToolExecutionError / ToolTimeoutError: A tool failed and
                recover_tool_errors is off
            MaxToolIterationsExceeded: Too many tool rounds
            CycleCancelledError: cancel_event was set
        """
        human = self._as_human_message(message)
        llm = self._select_driver(driver)

        if conversation.busy and self.settings.concurrency == "reject":
            raise BusyError(f"Conversation {conversation.id} already has a cycle in flight")

        async with conversation._lock:
            cycle = ExecutionCycle(conversation)
            self.last_cycle = cycle
            try:
                return await self._run_cycle(cycle, llm, human, cancel_event)
            except YugentError as e:
                cycle.fail(e)
                logger.warning(f"Cycle {cycle.id} failed at stage '{e.stage}': {e.message}")
                await self._emit(
                    cycle,
                    LogEventKind.FAILED,
                    e.message,
                    error=type(e).__name__,
                    stage=e.stage,
                )
                raise
            except asyncio.CancelledError as e:
                cycle.fail(e)
                logger.info(f"Cycle {cycle.id} cancelled; staged turn discarded")
                raise

    async def _run_cycle(
        self,
        cycle: ExecutionCycle,
        llm: LLMLayer,
        human: Message,
        cancel_event: asyncio.Event | None,
    ) -> Message:
        cycle.transition(CycleState.AWAITING_LLM)
        cycle.stage(human)
        await self._emit(cycle, LogEventKind.CYCLE_STARTED, human.content, driver=llm.id)

        tool_definitions = self._registry.definitions() or None

        while True:
            reply = await self._call_llm(llm, cycle.history(), tool_definitions, cancel_event)

            if isinstance(reply, Message):
                if reply.role != Role.ASSISTANT:
                    raise ParseError(f"LLM layer returned a '{reply.role.value}' message")
                cycle.stage(reply)
                cycle.transition(CycleState.DONE)
                cycle.result = reply
                cycle.commit()
                await self._emit(
                    cycle,
                    LogEventKind.COMPLETED,
                    reply.content,
                    tool_iterations=cycle.tool_iterations,
                )
                return reply

            if isinstance(reply, ToolCallRequest):
                requests = [reply]
            elif isinstance(reply, (list, tuple)):
                requests = list(reply)
            else:
                raise ParseError(f"LLM layer returned an unsupported reply: {reply!r}")
            if not requests or not all(isinstance(r, ToolCallRequest) for r in requests):
                raise ParseError(f"LLM layer returned an unsupported reply: {reply!r}")

            cycle.tool_iterations += 1
            if cycle.tool_iterations > self.settings.max_tool_iterations:
                raise MaxToolIterationsExceeded(self.settings.max_tool_iterations)

            for request in requests:
                await self._run_tool(cycle, request, cancel_event)

            cycle.transition(CycleState.AWAITING_LLM)

    async def _run_tool(
        self,
        cycle: ExecutionCycle,
        request: ToolCallRequest,
        cancel_event: asyncio.Event | None,
    ) -> None:
        cycle.transition(CycleState.TOOL_REQUESTED)
        await self._emit(
            cycle,
            LogEventKind.TOOL_REQUESTED,
            {"tool_id": request.tool_id, "params": request.params},
            tool_call_id=request.id,
        )

        cycle.transition(CycleState.AWAITING_TOOL)
        # The registry enforces tool_timeout_ms itself
        result = await self._await_layer(
            self._registry.invoke(request, timeout=self.settings.tool_timeout),
            timeout=None,
            cancel_event=cancel_event,
            on_timeout=None,
        )

        if result.error is not None:
            await self._emit(
                cycle,
                LogEventKind.TOOL_ERROR,
                result.error.detail,
                tool_call_id=request.id,
                tool_id=request.tool_id,
                kind=result.error.kind,
            )
            if not self.settings.recover_tool_errors:
                error_cls = ToolTimeoutError if result.error.kind == "timeout" else ToolExecutionError
                raise error_cls(result.error.detail, tool_id=request.tool_id)
        else:
            await self._emit(
                cycle,
                LogEventKind.TOOL_RESULT,
                result.content,
                tool_call_id=request.id,
                tool_id=request.tool_id,
            )

        cycle.stage(Message.assistant(tool_call=request))
        cycle.stage(result)

    async def _call_llm(
        self,
        llm: LLMLayer,
        history: tuple[Message, ...],
        tools: list[dict[str, Any]] | None,
        cancel_event: asyncio.Event | None,
    ):
        timeout = self.settings.llm_timeout
        try:
            return await self._await_layer(
                llm.send(history, tools),
                timeout=timeout,
                cancel_event=cancel_event,
                on_timeout=lambda: LLMTimeoutError(
                    f"LLM layer '{llm.id}' did not answer within {timeout}s"
                ),
            )
        except YugentError:
            raise
        except Exception as e:
            raise ProviderError(f"LLM layer '{llm.id}' failed: {e}", cause=e) from e

    @staticmethod
    async def _await_layer(
        awaitable: Awaitable[T],
        *,
        timeout: float | None,
        cancel_event: asyncio.Event | None,
        on_timeout: Callable[[], YugentError] | None,
    ) -> T:
        """Await a layer call, bounded by `timeout` and interruptible by `cancel_event`."""
        if cancel_event is not None and cancel_event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise CycleCancelledError("Cycle cancelled before the layer call started")

        task = asyncio.ensure_future(awaitable)
        waiters: set[asyncio.Future] = {task}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        task.add_done_callback(consume_result)
        if cancel_waiter is not None and cancel_waiter in done:
            raise CycleCancelledError("Cycle cancelled while awaiting a layer")
        if on_timeout is None:
            raise RuntimeError("Layer call timed out without a timeout handler")
        raise on_timeout()

    async def _emit(self, cycle: ExecutionCycle, event_kind: LogEventKind, content: Any, **metadata: Any) -> None:
        event = LogEvent(
            kind=event_kind,
            cycle_id=cycle.id,
            conversation_id=cycle.conversation.id,
            content=content,
            metadata=metadata,
        )
        cycle.events.append(event)
        await self._dispatch.dispatch(event)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _select_driver(self, driver: str | None) -> LLMLayer:
        if driver is None:
            return self.driver
        try:
            return self._llm_layers[driver]
        except KeyError:
            raise NotFoundError(f"No LLM layer with id '{driver}'") from None

    @staticmethod
    def _as_human_message(message: str | Message) -> Message:
        if isinstance(message, Message):
            if message.role != Role.HUMAN:
                raise ValueError("execute() expects a human message")
            if message.content is None or (isinstance(message.content, str) and not message.content.strip()):
                raise ValueError("Message cannot be empty")
            return message

        text = message.strip()
        if not text:
            raise ValueError("Message cannot be empty")
        return Message.human(text)
