"""Unit tests for data models."""

from datetime import datetime, timezone

import pytest

from client_reports.exceptions import ValidationError
from client_reports.models import Client, DateRange, EmailFetchParams, Message


class TestMessage:
    """Test suite for Message model."""

    def test_minimal_message(self) -> None:
        message = Message(id="m1")

        assert message.subject == ""
        assert message.summary == ""
        assert message.labels == []
        assert message.embedding is None
        assert message.processed_for_vector is False
        assert message.source is None

    def test_embedding_implies_processed(self) -> None:
        message = Message(id="m1", embedding=[0.1, 0.2])

        assert message.processed_for_vector is True

    def test_recipients_combine_to_cc_bcc(self) -> None:
        message = Message(id="m1", to="A@x.com, b@y.com", cc="c@z.com", bcc=None)

        assert message.recipients() == ["a@x.com", "b@y.com", "c@z.com"]

    def test_sender_is_normalized(self) -> None:
        assert Message(id="m1", from_address=" Jane@Acme.com ").sender == "jane@acme.com"


class TestClient:
    def test_domains_and_emails_are_deduplicated(self) -> None:
        client = Client(
            id="c1",
            name="Acme",
            domains=["Acme.com", "acme.com", " "],
            emails=["Bob@Acme.com", "bob@acme.com"],
        )

        assert client.domains == ["acme.com"]
        assert client.emails == ["bob@acme.com"]


class TestDateRange:
    def test_date_only_end_covers_whole_day(self) -> None:
        date_range = DateRange.parse("2024-01-01", "2024-01-31")

        assert date_range.start == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert date_range.start_iso == "2024-01-01T00:00:00Z"
        assert date_range.end_iso == "2024-01-31T23:59:59Z"

    def test_offsets_are_converted_to_utc(self) -> None:
        date_range = DateRange.parse("2024-01-01T10:00:00+02:00", "2024-01-02T00:00:00Z")

        assert date_range.start_iso == "2024-01-01T08:00:00Z"

    def test_inverted_range_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DateRange.parse("2024-02-01", "2024-01-01")

    def test_garbage_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DateRange.parse("last week", "2024-01-01")

    def test_contains_is_inclusive(self) -> None:
        date_range = DateRange.parse("2024-01-01", "2024-01-31")

        assert date_range.contains("2024-01-01T00:00:00Z")
        assert date_range.contains("2024-01-31T23:59:59Z")
        assert not date_range.contains("2024-02-01T00:00:00Z")


class TestEmailFetchParams:
    def test_build_defaults(self) -> None:
        params = EmailFetchParams.build(
            start_date="2024-01-01", end_date="2024-01-31", client_domains=["acme.com"]
        )

        assert params.max_results == 1000
        assert params.use_similarity_search is False
        assert params.skip_provider is False
        assert params.client_domains == ["acme.com"]

    def test_build_rejects_non_positive_max_results(self) -> None:
        with pytest.raises(ValidationError):
            EmailFetchParams.build(start_date="2024-01-01", end_date="2024-01-31", max_results=0)
