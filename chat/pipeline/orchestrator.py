"""Conversation orchestrator: one state machine run per queued chat request.

    PREPARE ──► MERGE_HISTORY ──► FORMAT ──► INVOKE_MODEL ──► RESPOND ──► COMPLETED
       │                            │             │
       ▼                            ▼             ▼
    FAILED_PREPARE            FAILED_FORMAT   FAILED_INVOKE

PREPARE loads history and the prompt template concurrently and waits for
both. RESPOND delivers the reply and saves the new turn concurrently; each
branch records its own outcome and neither cancels the other. The whole run
is bounded by an execution timeout (FAILED_TIMEOUT); partial effects are not
rolled back.
"""
from __future__ import annotations

import asyncio
import random
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, FrozenSet, List, Optional

import structlog

from chat.exceptions import (
    ExecutionTimeout,
    HistoryStoreError,
    InvalidTransitionError,
    InvokeFailure,
    ModelInvocationError,
    OrchestrationFailure,
    PrepareFailure,
    ReplyDeliveryError,
    ReplyFailure,
    SaveFailure,
)
from chat.gateways import HistoryGateway, ModelGateway, ReplyGateway, TemplateGateway
from chat.models import (
    ChatRequest,
    ExecutionOutcome,
    ExecutionState,
    FailureKind,
    HistoryLookup,
    HistoryPresent,
    HistorySource,
    PromptTemplate,
    SamplingParams,
)
from chat.prompts import format_prompt, format_turn
from chat.retry import RetryPolicy, call_with_retry

logger = structlog.get_logger(__name__)

S = ExecutionState

TRANSITIONS: Dict[ExecutionState, FrozenSet[ExecutionState]] = {
    S.PREPARE: frozenset({S.MERGE_HISTORY, S.FAILED_PREPARE}),
    S.MERGE_HISTORY: frozenset({S.FORMAT}),
    S.FORMAT: frozenset({S.INVOKE_MODEL, S.FAILED_FORMAT}),
    S.INVOKE_MODEL: frozenset({S.RESPOND, S.FAILED_INVOKE}),
    S.RESPOND: frozenset({S.COMPLETED}),
}

FAILURE_KINDS: Dict[ExecutionState, FailureKind] = {
    S.FAILED_PREPARE: FailureKind.PREPARE,
    S.FAILED_FORMAT: FailureKind.FORMAT,
    S.FAILED_INVOKE: FailureKind.INVOKE,
    S.FAILED_TIMEOUT: FailureKind.TIMEOUT,
}


@dataclass
class ExecutionContext:
    """Mutable working state of a single execution."""

    request: ChatRequest
    execution_id: str
    state: ExecutionState = S.PREPARE
    trace: List[ExecutionState] = field(default_factory=lambda: [S.PREPARE])
    history_lookup: Optional[HistoryLookup] = None
    template: Optional[PromptTemplate] = None
    merged_history: Optional[str] = None
    history_source: Optional[HistorySource] = None
    prompt: Optional[str] = None
    completion: Optional[str] = None
    replied: bool = False
    persisted: bool = False
    reply_attempts: int = 0
    failure: Optional[OrchestrationFailure] = None
    reply_failure: Optional[ReplyFailure] = None
    save_failure: Optional[SaveFailure] = None


StateHandler = Callable[[ExecutionContext], Awaitable[ExecutionState]]


class ConversationOrchestrator:
    def __init__(
        self,
        *,
        history_gateway: HistoryGateway,
        template_gateway: TemplateGateway,
        model_gateway: ModelGateway,
        reply_gateway: ReplyGateway,
        template_name: str,
        sampling: SamplingParams,
        reply_retry_policy: RetryPolicy,
        retention_window_seconds: int = 3600,
        execution_timeout_seconds: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.history_gateway = history_gateway
        self.template_gateway = template_gateway
        self.model_gateway = model_gateway
        self.reply_gateway = reply_gateway
        self.template_name = template_name
        self.sampling = sampling
        self.reply_retry_policy = reply_retry_policy
        self.retention_window_seconds = retention_window_seconds
        self.execution_timeout_seconds = execution_timeout_seconds
        self._sleep = sleep
        self._rng = rng
        self._handlers: Dict[ExecutionState, StateHandler] = {
            S.PREPARE: self._prepare,
            S.MERGE_HISTORY: self._merge_history,
            S.FORMAT: self._format,
            S.INVOKE_MODEL: self._invoke_model,
            S.RESPOND: self._respond,
        }

    async def run(self, request: ChatRequest) -> ExecutionOutcome:
        """Drive ``request`` to a terminal state and return the outcome record."""
        ctx = ExecutionContext(request=request, execution_id=uuid.uuid4().hex)
        with structlog.contextvars.bound_contextvars(
            execution_id=ctx.execution_id,
            conversation_key=request.conversation_key,
        ):
            logger.info(
                "orchestrator.started",
                message_id=request.message_id,
                mode=request.mode,
                message_chars=len(request.message_text),
            )
            try:
                await asyncio.wait_for(
                    self._drive(ctx), timeout=self.execution_timeout_seconds
                )
            except asyncio.TimeoutError:
                ctx.failure = ExecutionTimeout(self.execution_timeout_seconds)
                logger.error(
                    "orchestrator.timeout",
                    state=ctx.state.value,
                    timeout_seconds=self.execution_timeout_seconds,
                )
                ctx.state = S.FAILED_TIMEOUT
                ctx.trace.append(S.FAILED_TIMEOUT)

            outcome = self._build_outcome(ctx)
            logger.info(
                "orchestrator.finished",
                state=outcome.state.value,
                replied=outcome.replied,
                persisted=outcome.persisted,
                failure=outcome.failure.value if outcome.failure else None,
                reply_attempts=outcome.reply_attempts,
            )
        return outcome

    async def _drive(self, ctx: ExecutionContext) -> None:
        while not ctx.state.is_terminal:
            handler = self._handlers[ctx.state]
            next_state = await handler(ctx)
            self._transition(ctx, next_state)

    def _transition(self, ctx: ExecutionContext, target: ExecutionState) -> None:
        allowed = TRANSITIONS.get(ctx.state, frozenset())
        if target not in allowed:
            raise InvalidTransitionError(ctx.state.value, target.value)
        logger.debug("orchestrator.transition", from_state=ctx.state.value, to_state=target.value)
        ctx.state = target
        ctx.trace.append(target)

    # State handlers

    async def _prepare(self, ctx: ExecutionContext) -> ExecutionState:
        history_result, template_result = await asyncio.gather(
            self.history_gateway.load(ctx.request.conversation_key),
            self.template_gateway.load(self.template_name),
            return_exceptions=True,
        )
        for result in (history_result, template_result):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result

        if isinstance(history_result, Exception):
            ctx.failure = PrepareFailure("history load", history_result)
        elif isinstance(template_result, Exception):
            ctx.failure = PrepareFailure("template load", template_result)
        if ctx.failure is not None:
            logger.error(
                "orchestrator.prepare_failed",
                stage=ctx.failure.stage,
                error=str(ctx.failure.cause),
                error_type=type(ctx.failure.cause).__name__,
            )
            return S.FAILED_PREPARE

        ctx.history_lookup = history_result
        ctx.template = template_result
        return S.MERGE_HISTORY

    async def _merge_history(self, ctx: ExecutionContext) -> ExecutionState:
        # Presence decides the branch, not content: an empty stored history is still "existing".
        if isinstance(ctx.history_lookup, HistoryPresent):
            ctx.merged_history = ctx.history_lookup.record.history_text
            ctx.history_source = HistorySource.EXISTING
        else:
            ctx.merged_history = ""
            ctx.history_source = HistorySource.FIRST_TURN
        logger.info(
            "orchestrator.history_merged",
            history_source=ctx.history_source.value,
            history_chars=len(ctx.merged_history),
        )
        return S.FORMAT

    async def _format(self, ctx: ExecutionContext) -> ExecutionState:
        try:
            ctx.prompt = format_prompt(ctx.template, ctx.merged_history, ctx.request.message_text)
        except (IndexError, KeyError, ValueError) as e:
            ctx.failure = OrchestrationFailure(
                f"prompt formatting failed: {e}", "FORMAT_FAILURE", e
            )
            logger.error("orchestrator.format_failed", error=str(e))
            return S.FAILED_FORMAT
        return S.INVOKE_MODEL

    async def _invoke_model(self, ctx: ExecutionContext) -> ExecutionState:
        try:
            ctx.completion = await self.model_gateway.invoke(ctx.prompt, self.sampling)
        except ModelInvocationError as e:
            ctx.failure = InvokeFailure(e)
            logger.error(
                "orchestrator.invoke_failed", error=str(e), error_code=e.error_code
            )
            return S.FAILED_INVOKE
        return S.RESPOND

    async def _respond(self, ctx: ExecutionContext) -> ExecutionState:
        reply_result, save_result = await asyncio.gather(
            self._deliver_reply(ctx),
            self._persist_turn(ctx),
            return_exceptions=True,
        )
        for result in (reply_result, save_result):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result

        # Unclassified errors still only fail their own branch
        if isinstance(reply_result, Exception):
            ctx.reply_failure = ReplyFailure(reply_result, ctx.reply_attempts)
            logger.error(
                "orchestrator.reply_crashed",
                error=str(reply_result),
                error_type=type(reply_result).__name__,
            )
        if isinstance(save_result, Exception):
            ctx.save_failure = SaveFailure(save_result)
            logger.error(
                "orchestrator.save_crashed",
                error=str(save_result),
                error_type=type(save_result).__name__,
            )
        return S.COMPLETED

    # Respond branches

    async def _deliver_reply(self, ctx: ExecutionContext) -> bool:
        async def attempt() -> None:
            ctx.reply_attempts += 1
            await self.reply_gateway.send(ctx.request.reply_token, ctx.completion)

        try:
            await call_with_retry(
                attempt,
                self.reply_retry_policy,
                sleep=self._sleep,
                rng=self._rng,
                label="reply",
            )
        except ReplyDeliveryError as e:
            ctx.reply_failure = ReplyFailure(e, ctx.reply_attempts)
            logger.warning(
                "orchestrator.reply_failed",
                error_code=e.error_code,
                attempts=ctx.reply_attempts,
            )
            return False
        ctx.replied = True
        return True

    async def _persist_turn(self, ctx: ExecutionContext) -> bool:
        # Built from the history merged for this turn; the store is not re-read.
        history_text = format_turn(
            ctx.merged_history, ctx.request.message_text, ctx.completion
        )
        expires_at = ctx.request.received_at_epoch_seconds + self.retention_window_seconds
        try:
            await self.history_gateway.save(
                ctx.request.conversation_key, history_text, expires_at
            )
        except HistoryStoreError as e:
            ctx.save_failure = SaveFailure(e)
            logger.error("orchestrator.save_failed", error=str(e))
            return False
        ctx.persisted = True
        return True

    def _build_outcome(self, ctx: ExecutionContext) -> ExecutionOutcome:
        return ExecutionOutcome(
            execution_id=ctx.execution_id,
            conversation_key=ctx.request.conversation_key,
            state=ctx.state,
            replied=ctx.replied,
            persisted=ctx.persisted,
            failure=FAILURE_KINDS.get(ctx.state),
            failure_message=ctx.failure.message if ctx.failure else None,
            reply_failure_kind=FailureKind.REPLY if ctx.reply_failure else None,
            reply_error=ctx.reply_failure.message if ctx.reply_failure else None,
            save_failure_kind=FailureKind.SAVE if ctx.save_failure else None,
            save_error=ctx.save_failure.message if ctx.save_failure else None,
            reply_attempts=ctx.reply_attempts,
            history_source=ctx.history_source,
            trace=list(ctx.trace),
        )
