"""Request/response models for client email retrieval."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from client_reports.exceptions import ValidationError
from client_reports.models import DateRange, Message


class EmailFetchParams(BaseModel):
    """Parameters for a single client email fetch."""

    date_range: DateRange = Field(description="Inclusive date window")
    client_domains: list[str] = Field(default_factory=list, description="Client domains")
    client_emails: list[str] = Field(default_factory=list, description="Client addresses")
    max_results: int = Field(default=1000, gt=0, description="Maximum messages returned")
    search_query: str | None = Field(default=None, description="Free-text similarity query")
    use_similarity_search: bool = Field(
        default=False, description="Try vector search before keyword filtering"
    )
    skip_provider: bool = Field(default=False, description="Never call the live mailbox")
    user_email: str | None = Field(default=None, description="Mailbox owner address")
    exclude_service_emails: bool = Field(
        default=False, description="Drop automated/technical messages from the result"
    )

    @classmethod
    def build(
        cls,
        *,
        start_date: str | date | datetime,
        end_date: str | date | datetime,
        **kwargs: object,
    ) -> "EmailFetchParams":
        """Build params from loosely typed request input.

        Raises:
            ValidationError: If the dates or any other field are malformed.
        """

        date_range = DateRange.parse(start_date, end_date)
        try:
            return cls(date_range=date_range, **kwargs)
        except PydanticValidationError as exc:
            raise ValidationError(str(exc)) from exc


class EmailFetchResult(BaseModel):
    """Outcome of a client email fetch; never carries an exception."""

    emails: list[Message] = Field(default_factory=list)
    from_external_provider: bool = False
    similarity_search_used: bool = False
    error: str | None = None
