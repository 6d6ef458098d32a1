"""Data models for Client Reports.

This module contains Pydantic models for data validation and serialization.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from client_reports.exceptions import ValidationError
from client_reports.utils import parse_datetime, to_utc_iso


class MessageSource(str, Enum):
    """Who sent a message, relative to the current user and client."""

    USER = "user"
    CLIENT = "client"
    OTHER = "other"


def split_addresses(value: str | None) -> list[str]:
    """Split a comma-joined recipient string into lowercase addresses."""

    if not value:
        return []
    return [part.strip().lower() for part in value.split(",") if part.strip()]


class Message(BaseModel):
    """A single email as stored locally and returned to report generation."""

    id: str = Field(description="Provider message id; stable across re-fetch")
    subject: str = Field(default="", description="Email subject")
    from_address: str = Field(default="", description="Sender email address")
    to: str = Field(default="", description="Comma-joined To recipients")
    cc: str | None = Field(default=None, description="Comma-joined Cc recipients, if stored")
    bcc: str | None = Field(default=None, description="Comma-joined Bcc recipients, if stored")
    date: str = Field(default="", description="ISO-8601 UTC timestamp")
    body: str = Field(default="", description="Plain-text body")
    summary: str = Field(default="", description="Generated summary, empty until processed")
    labels: list[str] = Field(default_factory=list, description="Short labels")
    embedding: list[float] | None = Field(default=None, description="Stored vector, if loaded")
    processed_for_vector: bool = Field(
        default=False, description="Whether an embedding has been stored"
    )
    user_id: str | None = Field(default=None, description="Mailbox owner")
    source: MessageSource | None = Field(
        default=None, description="Query-time annotation; never persisted"
    )

    @model_validator(mode="after")
    def _embedding_implies_processed(self) -> "Message":
        if self.embedding is not None:
            self.processed_for_vector = True
        return self

    @property
    def sender(self) -> str:
        return self.from_address.strip().lower()

    def recipients(self) -> list[str]:
        """All To/Cc/Bcc addresses that are known for this message."""

        return split_addresses(self.to) + split_addresses(self.cc) + split_addresses(self.bcc)


class Client(BaseModel):
    """A counterparty whose domains and addresses define relevance."""

    id: str = Field(description="Client id")
    name: str = Field(description="Display name")
    domains: list[str] = Field(default_factory=list, description="Client domains")
    emails: list[str] = Field(default_factory=list, description="Specific client addresses")
    user_id: str | None = Field(default=None, description="Owner; None for shared records")

    @field_validator("domains", "emails", mode="before")
    @classmethod
    def _dedupe(cls, v: object) -> object:
        if not isinstance(v, (list, tuple, set)):
            return v
        seen: dict[str, None] = {}
        for item in v:
            cleaned = str(item).strip().lower()
            if cleaned:
                seen.setdefault(cleaned, None)
        return list(seen)


class DateRange(BaseModel):
    """Inclusive date window used by every fetch path."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _ordered(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self

    @classmethod
    def parse(cls, start: str | datetime, end: str | datetime) -> "DateRange":
        """Build a range from user input.

        A date-only ``end`` covers the whole day.

        Raises:
            ValidationError: If either bound is unparseable or the range is inverted.
        """

        try:
            return cls(start=parse_datetime(start), end=parse_datetime(end, end_of_day=True))
        except (TypeError, ValueError, PydanticValidationError) as exc:
            raise ValidationError(f"Invalid date range {start!r}..{end!r}: {exc}") from exc

    @property
    def start_iso(self) -> str:
        return to_utc_iso(self.start)

    @property
    def end_iso(self) -> str:
        return to_utc_iso(self.end)

    def contains(self, iso_date: str) -> bool:
        return self.start_iso <= iso_date <= self.end_iso


from client_reports.models.feedback import FeedbackAction, ReportFeedback, ReportParameters  # noqa: E402
from client_reports.models.fetch import EmailFetchParams, EmailFetchResult  # noqa: E402

__all__ = [
    "Client",
    "DateRange",
    "EmailFetchParams",
    "EmailFetchResult",
    "FeedbackAction",
    "Message",
    "MessageSource",
    "ReportFeedback",
    "ReportParameters",
    "split_addresses",
]
