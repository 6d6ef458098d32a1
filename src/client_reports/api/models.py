"""API models for the Client Reports backend."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from client_reports.models import Message
from client_reports.utils import normalize_date


class ClientEmailsResponse(BaseModel):
    emails: list[Message]
    count: int
    from_external_provider: bool
    similarity_search_used: bool
    # Set when the live mailbox could not be used; local results are still returned.
    error: str | None = None


class QueuedTaskResponse(BaseModel):
    success: bool
    message: str
    task_id: str


class TaskResponse(BaseModel):
    id: str
    type: str
    params: dict[str, Any]
    status: str
    created_at: str
    updated_at: str
    result: dict[str, Any] | None = None
    error: str | None = None


class AdminCheckResponse(BaseModel):
    is_admin: bool


class InboundAttachment(BaseModel):
    name: str
    type: str
    size: int = Field(ge=0)


class InboundEmail(BaseModel):
    """Email pushed by the mail agent webhook."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    subject: str
    from_address: str = Field(alias="from")
    to: str
    date: str
    body: str
    attachments: list[InboundAttachment] = Field(default_factory=list)
    cc: str | None = None
    bcc: str | None = None
    user_id: str | None = None

    def to_message(self) -> Message:
        return Message(
            id=self.id,
            subject=self.subject or "(No Subject)",
            from_address=self.from_address,
            to=self.to,
            cc=self.cc,
            bcc=self.bcc,
            date=normalize_date(self.date),
            body=self.body,
            user_id=self.user_id,
        )


class WebhookResponse(BaseModel):
    status: str
    inserted: bool
    task_id: str | None = None


class FeedbackResponse(BaseModel):
    success: bool
    message: str
    id: str | None = None


class FeedbackActionRequest(BaseModel):
    feedback_id: str = Field(min_length=1)
    action: str
    value: Any = None
