"""DTOs for the LINE webhook payload."""
from typing import List, Optional

from pydantic import ConfigDict, Field

from api.shared.dtos import BaseDTO


class WebhookDTO(BaseDTO):
    """LINE sends camelCase keys and adds fields over time; unknown keys are kept."""

    model_config = ConfigDict(from_attributes=True, extra="allow")


class EventSource(WebhookDTO):
    type: str = Field(description="user, group or room")
    userId: Optional[str] = Field(default=None)
    groupId: Optional[str] = Field(default=None)
    roomId: Optional[str] = Field(default=None)


class EventMessage(WebhookDTO):
    id: str = Field(default="")
    type: str = Field(description="Message type: text, image, sticker, ...")
    text: Optional[str] = Field(default=None)


class WebhookEvent(WebhookDTO):
    type: str = Field(description="Event type: message, follow, join, ...")
    timestamp: int = Field(default=0, description="Event time in milliseconds")
    replyToken: Optional[str] = Field(default=None)
    source: Optional[EventSource] = Field(default=None)
    message: Optional[EventMessage] = Field(default=None)


class WebhookRequestBody(WebhookDTO):
    destination: Optional[str] = Field(default=None)
    events: List[WebhookEvent] = Field(default_factory=list)


class WebhookResult(BaseDTO):
    accepted: int = Field(default=0, description="Events enqueued")
    skipped: int = Field(default=0, description="Events ignored (non-text, non-message)")
    failed: int = Field(default=0, description="Events that could not be enqueued")
