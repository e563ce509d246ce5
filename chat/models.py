"""Domain models for the conversation pipeline."""
from __future__ import annotations

import string
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

PROMPT_SLOT_COUNT = 3


class ChatRequest(BaseModel):
    """One inbound chat message, queued by ingress and consumed once by the orchestrator."""

    model_config = ConfigDict(frozen=True)

    message_id: str = Field(default="", description="Channel message identifier")
    conversation_key: str = Field(
        min_length=1, description="SHA-256 of the group id, or of the user id outside groups"
    )
    user_id: str = Field(default="", description="Sender user id")
    group_id: str = Field(default="", description="Group id, empty outside groups")
    reply_token: str = Field(description="Single-use reply credential")
    message_text: str = Field(description="Text of the inbound message")
    received_at_epoch_seconds: int = Field(ge=0)
    timestamp: int = Field(default=0, ge=0, description="Channel timestamp in ms")
    mode: str = Field(default="chat")


class HistoryRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    conversation_key: str
    history_text: str = ""
    expires_at_epoch_seconds: int


class HistoryPresent(BaseModel):
    """A stored history record was found for the conversation."""

    model_config = ConfigDict(frozen=True)

    record: HistoryRecord


class HistoryAbsent(BaseModel):
    """No history record exists for the conversation (first turn)."""

    model_config = ConfigDict(frozen=True)

    conversation_key: str


HistoryLookup = Union[HistoryPresent, HistoryAbsent]


def count_positional_slots(text: str) -> int:
    """Count replacement fields; raise ValueError on named fields or bad syntax."""

    slots = 0
    auto = False
    manual = set()
    for _, field_name, _, _ in string.Formatter().parse(text):
        if field_name is None:
            continue
        if field_name == "":
            auto = True
        elif field_name.isdigit():
            manual.add(int(field_name))
        else:
            raise ValueError(f"named slot {{{field_name}}} is not allowed")
        slots += 1
    if auto and manual:
        raise ValueError("cannot mix automatic and numbered slots")
    if manual and manual != set(range(PROMPT_SLOT_COUNT)):
        raise ValueError("numbered slots must be {0}, {1} and {2}")
    return slots if auto else len(manual)


class PromptTemplate(BaseModel):
    """Prompt layout with three ordered slots: prose, history, new message."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    text: str = Field(description="Format string with three positional slots")
    prose: str = Field(default="", description="Instructions inserted in the first slot")

    @field_validator("text")
    @classmethod
    def validate_slots(cls, value: str) -> str:
        slots = count_positional_slots(value)
        if slots != PROMPT_SLOT_COUNT:
            raise ValueError(
                f"template must have exactly {PROMPT_SLOT_COUNT} positional slots, found {slots}"
            )
        return value


class SamplingParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_tokens: int = Field(default=500, gt=0)
    temperature: float = Field(default=0.5, ge=0)
    top_p: float = Field(default=1.0, gt=0, le=1)
    top_k: int = Field(default=250, gt=0)


class ExecutionState(str, Enum):
    PREPARE = "prepare"
    MERGE_HISTORY = "merge_history"
    FORMAT = "format"
    INVOKE_MODEL = "invoke_model"
    RESPOND = "respond"
    COMPLETED = "completed"
    FAILED_PREPARE = "failed_prepare"
    FAILED_FORMAT = "failed_format"
    FAILED_INVOKE = "failed_invoke"
    FAILED_TIMEOUT = "failed_timeout"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        ExecutionState.COMPLETED,
        ExecutionState.FAILED_PREPARE,
        ExecutionState.FAILED_FORMAT,
        ExecutionState.FAILED_INVOKE,
        ExecutionState.FAILED_TIMEOUT,
    }
)


class FailureKind(str, Enum):
    PREPARE = "prepare_failure"
    FORMAT = "format_failure"
    INVOKE = "invoke_failure"
    REPLY = "reply_failure"
    SAVE = "save_failure"
    TIMEOUT = "timeout"


class HistorySource(str, Enum):
    EXISTING = "existing"
    FIRST_TURN = "first_turn"


class ExecutionOutcome(BaseModel):
    """Terminal record of one orchestrator run. Not persisted."""

    execution_id: str
    conversation_key: str
    state: ExecutionState
    replied: bool = False
    persisted: bool = False
    failure: Optional[FailureKind] = None
    failure_message: Optional[str] = None
    reply_failure_kind: Optional[FailureKind] = None
    reply_error: Optional[str] = None
    save_failure_kind: Optional[FailureKind] = None
    save_error: Optional[str] = None
    reply_attempts: int = 0
    history_source: Optional[HistorySource] = None
    trace: List[ExecutionState] = Field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.state == ExecutionState.COMPLETED
