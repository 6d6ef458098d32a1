"""Client email retrieval: local storage first, live mailbox second.

The orchestrator decides which local path to trust (similarity search or the
keyword/domain query), whether the live mailbox needs to be asked at all, and
how to merge the two without duplicates. It is a read path, so it degrades to
whatever data it has instead of raising.
"""

from __future__ import annotations

import asyncio

import structlog

from client_reports.exceptions import ProviderError, StorageError, ValidationError
from client_reports.graph.provider import MailProvider, ProviderBatch
from client_reports.models import EmailFetchParams, EmailFetchResult, Message
from client_reports.relevance import ClientMatcher, expand_domains
from client_reports.repository import EmailRepository
from client_reports.results import Result
from client_reports.sanitizer import is_service_or_technical_email
from client_reports.tasks.queue import BackgroundTaskQueue, QueueClosedError, TaskType
from client_reports.utils import truncate_error
from client_reports.vector.search import SimilarityOptions, SimilaritySearchEngine

logger = structlog.get_logger()


def merge_messages(local: list[Message], remote: list[Message]) -> list[Message]:
    """Local first, then remote messages whose id is not already present."""

    seen: set[str] = set()
    merged: list[Message] = []
    for message in [*local, *remote]:
        if message.id in seen:
            continue
        seen.add(message.id)
        merged.append(message)
    return merged


class EmailFetchOrchestrator:
    """Composes similarity search, the local repository and the live mail provider."""

    def __init__(
        self,
        repository: EmailRepository,
        provider: MailProvider | None = None,
        search: SimilaritySearchEngine | None = None,
        queue: BackgroundTaskQueue | None = None,
        *,
        default_user_email: str | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            repository: Local message storage.
            provider: Live mailbox; when None every fetch is local-only.
            search: Similarity search; when None the keyword path is always used.
            queue: Where follow-up processing of new messages is enqueued.
            default_user_email: Mailbox owner used when a request names none.
        """

        self._repository = repository
        self._provider = provider
        self._search = search
        self._queue = queue
        self._default_user_email = default_user_email

    async def get_client_emails(self, params: EmailFetchParams) -> EmailFetchResult:
        """Return a bounded, deduplicated list of client emails.

        Raises:
            ValidationError: Only for malformed parameters; every other failure
                is reported through ``EmailFetchResult.error``.
        """

        try:
            return await self._get_client_emails(params)
        except ValidationError:
            raise
        except Exception as exc:  # noqa: BLE001 - read path degrades to empty
            logger.exception("client_email_fetch_failed", error=truncate_error(exc))
            return EmailFetchResult(emails=[], from_external_provider=False, error=truncate_error(exc))

    async def _resolve_user(self, params: EmailFetchParams) -> str | None:
        if params.user_email:
            return params.user_email.strip().lower()
        if self._default_user_email:
            return self._default_user_email.strip().lower()
        if params.skip_provider or self._provider is None:
            return None
        try:
            return await self._provider.current_user_address()
        except ProviderError as exc:
            logger.warning("user_address_unavailable", error=truncate_error(exc))
            return None

    async def _local_messages(
        self,
        params: EmailFetchParams,
        domains: list[str],
        emails: list[str],
        user: str | None,
    ) -> tuple[list[Message], bool]:
        similar: list[Message] = []
        if params.search_query and params.use_similarity_search and self._search is not None:
            found = await self._search.find_similar(
                params.search_query,
                SimilarityOptions(
                    date_range=params.date_range,
                    allowed_domains=tuple(domains),
                    allowed_addresses=tuple(emails),
                    limit=params.max_results,
                    user_id=user,
                ),
            )
            # Same relevance rule and source annotation as the keyword path.
            similar = ClientMatcher.build(domains, emails, user).filter(found.value)

        try:
            keyword = await asyncio.to_thread(
                self._repository.query_by_filters,
                params.date_range,
                domains,
                emails,
                user,
                params.max_results,
            )
        except StorageError as exc:
            logger.warning("local_query_failed", error=truncate_error(exc))
            keyword = []

        logger.info("local_messages_loaded", similar=len(similar), keyword=len(keyword))
        if similar:
            return similar, True
        return keyword, False

    def _finish(self, messages: list[Message], params: EmailFetchParams) -> list[Message]:
        if params.exclude_service_emails:
            messages = [
                m
                for m in messages
                if not is_service_or_technical_email(m.subject, m.from_address, m.body)
            ]
        return messages[: params.max_results]

    def _enqueue_new(self, inserted_ids: list[str]) -> None:
        if not inserted_ids or self._queue is None:
            return
        try:
            task_id = self._queue.enqueue(TaskType.PROCESS_NEW_EMAILS, {"email_ids": inserted_ids})
        except QueueClosedError:
            logger.warning("new_email_processing_not_queued", count=len(inserted_ids))
            return
        logger.info("new_email_processing_queued", task_id=task_id, count=len(inserted_ids))

    async def _get_client_emails(self, params: EmailFetchParams) -> EmailFetchResult:
        emails = [e.strip().lower() for e in params.client_emails if e.strip()]
        domains = expand_domains(params.client_domains, emails)
        if not domains and not emails:
            return EmailFetchResult(emails=[])

        user = await self._resolve_user(params)
        local, similarity_used = await self._local_messages(params, domains, emails, user)

        if len(local) >= params.max_results or params.skip_provider or self._provider is None:
            return EmailFetchResult(
                emails=self._finish(local, params),
                from_external_provider=False,
                similarity_search_used=similarity_used,
            )

        fetched: Result[ProviderBatch] = await Result.capture(
            self._provider.fetch_range(params.date_range, domains, emails, params.max_results, user),
            default=ProviderBatch(),
            catch=(ProviderError,),
        )
        if not fetched.ok:
            logger.warning("provider_unavailable_using_local", error=fetched.error, local=len(local))
            return EmailFetchResult(
                emails=self._finish(local, params),
                from_external_provider=False,
                similarity_search_used=similarity_used,
                error=f"Mailbox provider unavailable: {fetched.error}",
            )

        batch = fetched.value
        merged = merge_messages(local, batch.messages)
        if not similarity_used:
            merged.sort(key=lambda m: m.date, reverse=True)

        self._enqueue_new(batch.inserted_ids)

        result = EmailFetchResult(
            emails=self._finish(merged, params),
            from_external_provider=bool(batch.messages),
            similarity_search_used=similarity_used,
        )
        logger.info(
            "client_emails_fetched",
            local=len(local),
            remote=len(batch.messages),
            returned=len(result.emails),
            inserted=len(batch.inserted_ids),
        )
        return result
