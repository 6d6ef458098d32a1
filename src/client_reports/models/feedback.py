"""Models for feedback on generated client reports."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ReportParameters(BaseModel):
    """How the rated report was produced."""

    start_date: str = Field(description="Report window start")
    end_date: str = Field(description="Report window end")
    vector_search_used: bool = Field(description="Whether similarity search supplied the emails")
    search_query: str | None = Field(default=None, description="Similarity query, if any")
    email_count: int = Field(ge=0, description="Emails the report was built from")


class ReportFeedback(BaseModel):
    """A user's rating of one generated report."""

    report_id: str = Field(description="Id of the generated report")
    client_id: str | None = Field(default=None, description="Client the report was for")
    rating: int = Field(ge=1, le=5, description="Rating from 1 to 5")
    feedback_text: str = Field(default="", description="Free-text comment")
    actions_taken: list[str] = Field(default_factory=list, description="Follow-up actions")
    report_parameters: ReportParameters
    timestamp: datetime | None = Field(default=None, description="Client-side submission time")


class FeedbackAction(str, Enum):
    """Follow-up events recorded against existing feedback."""

    COPIED_TO_CLIPBOARD = "copied_to_clipboard"
    GENERATION_TIME = "generation_time"
