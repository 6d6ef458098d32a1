"""Live mailbox retrieval with persistence of newly seen messages."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from client_reports.exceptions import ProviderError, StorageError
from client_reports.graph.client import GraphClient
from client_reports.graph.parsing import graph_message_to_message
from client_reports.models import DateRange, Message
from client_reports.relevance import ClientMatcher, expand_domains
from client_reports.repository import EmailRepository

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProviderBatch:
    """Relevant messages from one provider call plus the ids stored for the first time."""

    messages: list[Message] = field(default_factory=list)
    inserted_ids: list[str] = field(default_factory=list)


class MailProvider:
    """Fetches client-relevant messages from Microsoft Graph.

    Unlike the local read paths this is not best-effort: transport, auth and
    payload failures raise ``ProviderError`` and the caller decides what to do.
    """

    def __init__(self, client: GraphClient, repository: EmailRepository) -> None:
        self._client = client
        self._repository = repository
        self._user_address: str | None = None

    async def current_user_address(self) -> str:
        """Address of the signed-in mailbox owner, cached after the first call.

        Raises:
            ProviderError: If Graph cannot be reached or returns no address.
        """

        if self._user_address is None:
            profile = await self._client.get_me()
            address = profile.get("mail") or profile.get("userPrincipalName")
            if not address:
                raise ProviderError("Graph profile has neither mail nor userPrincipalName")
            self._user_address = str(address).strip().lower()
        return self._user_address

    async def fetch_range(
        self,
        date_range: DateRange,
        client_domains: Sequence[str],
        client_emails: Sequence[str],
        limit: int,
        user_email: str | None = None,
    ) -> ProviderBatch:
        """Fetch, filter and persist messages for one client and date range.

        Args:
            date_range: Inclusive window on ``receivedDateTime``.
            client_domains: Client domains.
            client_emails: Specific client addresses.
            limit: ``$top`` for the single Graph call.
            user_email: Mailbox owner; resolved from ``/me`` when omitted.

        Returns:
            ProviderBatch with relevant messages (newest first) and newly stored ids.

        Raises:
            ProviderError: On any Graph failure.
        """

        raw_messages = await self._client.list_messages(date_range.start_iso, date_range.end_iso, limit)
        user = user_email.strip().lower() if user_email else await self.current_user_address()

        parsed: list[Message] = []
        for raw in raw_messages:
            try:
                parsed.append(graph_message_to_message(raw))
            except ValueError as exc:
                logger.warning("graph_message_skipped", error=str(exc))

        domains = expand_domains(client_domains, client_emails)
        matcher = ClientMatcher.build(domains, client_emails, user)
        relevant = [] if matcher.empty else matcher.filter(parsed)

        inserted: list[str] = []
        if relevant:
            try:
                inserted = await asyncio.to_thread(self._repository.insert_if_absent, relevant, user_id=user)
            except StorageError as exc:
                logger.exception("provider_persist_failed", error=str(exc)[:150])

        logger.info(
            "provider_fetch_completed",
            fetched=len(raw_messages),
            relevant=len(relevant),
            inserted=len(inserted),
        )
        return ProviderBatch(
            messages=[m.model_copy(update={"user_id": user}) for m in relevant],
            inserted_ids=inserted,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
