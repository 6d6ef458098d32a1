"""Unit tests for service email detection and content redaction."""

from client_reports.models import Message
from client_reports.sanitizer import (
    is_service_or_technical_email,
    sanitize_content,
    sanitize_report,
    should_sanitize_email,
)


class TestServiceDetection:
    def test_automated_sender(self) -> None:
        assert is_service_or_technical_email("Your receipt", "no-reply@vendor.com")

    def test_technical_subject(self) -> None:
        assert is_service_or_technical_email("Upcoming update to GPT-4", "news@vendor.com")

    def test_ordinary_client_email(self) -> None:
        assert not is_service_or_technical_email(
            "Project kickoff notes", "jane@acme.com", "Let's meet Tuesday to review the draft."
        )

    def test_body_with_many_model_mentions(self) -> None:
        body = "We compared claude and gpt-4o and text-embedding-3-small outputs."

        assert is_service_or_technical_email("Comparison results", "analyst@acme.com", body)
        assert not is_service_or_technical_email(
            "Comparison results", "analyst@acme.com", "We compared claude and gpt-4o outputs."
        )


class TestShouldSanitize:
    def test_message_to_user_without_client_recipient(self) -> None:
        message = Message(id="m1", subject="Lunch", from_address="friend@other.org", to="me@firm.com")

        assert should_sanitize_email(message, [], ["acme.com"], "me@firm.com")

    def test_user_to_client_message(self) -> None:
        message = Message(id="m2", subject="Proposal", from_address="me@firm.com", to="jane@acme.com")

        assert not should_sanitize_email(message, [], ["acme.com"], "me@firm.com")


class TestSanitizeContent:
    def test_model_names_and_dates_in_update_context(self) -> None:
        text = "Switching from gpt-4o-mini to claude-2 on March 5th"

        assert sanitize_content(text) == "Switching from [AI MODEL] to [AI MODEL] on [DATE]"

    def test_dates_kept_without_update_context(self) -> None:
        assert sanitize_content("Meeting moved to March 5th") == "Meeting moved to March 5th"

    def test_idempotent(self) -> None:
        text = "The gpt-3.5-turbo-16k model update ships January 3rd, 2025."
        once = sanitize_content(text)

        assert once == "The [AI MODEL] model update ships [DATE]."
        assert sanitize_content(once) == once

    def test_empty(self) -> None:
        assert sanitize_content("") == ""


class TestSanitizeReport:
    def test_private_emails_and_technical_terms(self) -> None:
        report = "Contact jane@acme.com or bob@gmail.com about the API key rotation."

        assert sanitize_report(report, client_domains=["acme.com"]) == (
            "Contact jane@acme.com or [PRIVATE EMAIL] about the [TECHNICAL TERM] rotation."
        )

    def test_client_subdomain_email_is_kept(self) -> None:
        assert sanitize_report("Ask ops@mail.acme.com", client_domains=["acme"]) == "Ask ops@mail.acme.com"

    def test_no_client_domains_redacts_every_email(self) -> None:
        assert sanitize_report("Write to jane@acme.com") == "Write to [PRIVATE EMAIL]"

    def test_client_name_is_protected(self) -> None:
        report = "Turbo Logistics approved the budget."

        assert sanitize_report(report, client_name="Turbo Logistics") == report
        assert sanitize_report(report) == "[MODEL] Logistics approved the budget."

    def test_final_replacements(self) -> None:
        report = "Posted on 2024-05-01 by the OpenAI Team."

        assert sanitize_report(report) == "Posted on [DATE] by the [ORGANIZATION]."
