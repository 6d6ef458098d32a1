"""FastAPI application.

Routes are thin: they translate HTTP input into typed parameters and hand
off to the services built once per process.
"""

from __future__ import annotations

import asyncio
import hmac
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Header, HTTPException, Query, Request

from client_reports.api.models import (
    AdminCheckResponse,
    ClientEmailsResponse,
    FeedbackActionRequest,
    FeedbackResponse,
    InboundEmail,
    QueuedTaskResponse,
    TaskResponse,
    WebhookResponse,
)
from client_reports.config import Settings, get_settings
from client_reports.db import ensure_schema
from client_reports.exceptions import StorageError, ValidationError
from client_reports.logging_setup import configure_logging
from client_reports.models import EmailFetchParams, ReportFeedback
from client_reports.services import Services, build_services
from client_reports.tasks import QueueClosedError, TaskType

logger = structlog.get_logger()


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _services(request: Request) -> Services:
    return request.app.state.services


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Application settings. If None, uses default settings.
        services: Pre-built services (tests). If None, built from settings at startup.
    """

    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = services is None
        built = services or build_services(settings)
        app.state.services = built

        ensure_schema(built.engine)
        try:
            built.store.ensure_collection()
        except StorageError as exc:
            logger.warning("vector_collection_unavailable", error=str(exc)[:150])

        built.queue.start()
        logger.info("api_started", debug=settings.debug)
        try:
            yield
        finally:
            if owned:
                await built.aclose()
            else:
                await built.queue.shutdown()
            logger.info("api_stopped")

    app = FastAPI(title="Client Reports Backend", lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/reports/emails", response_model=ClientEmailsResponse)
    async def client_emails(
        request: Request,
        start_date: str,
        end_date: str,
        client_id: str | None = None,
        client_domains: list[str] = Query(default=[]),
        client_emails: list[str] = Query(default=[]),
        max_results: int | None = None,
        search_query: str | None = None,
        use_similarity_search: bool = False,
        skip_provider: bool = False,
        exclude_service_emails: bool = False,
        x_user_email: str | None = Header(default=None),
        authorization: str | None = Header(default=None),
    ) -> ClientEmailsResponse:
        if not x_user_email:
            raise HTTPException(status_code=401, detail="Missing X-User-Email header")
        svc = _services(request)

        domains = list(client_domains)
        emails = list(client_emails)
        if client_id:
            client = await asyncio.to_thread(svc.clients.get, client_id, x_user_email)
            if client is None:
                raise HTTPException(status_code=404, detail=f"Client {client_id} not found")
            domains += client.domains
            emails += client.emails

        try:
            params = EmailFetchParams.build(
                start_date=start_date,
                end_date=end_date,
                client_domains=domains,
                client_emails=emails,
                max_results=max_results or svc.settings.email_fetch_limit,
                search_query=search_query,
                use_similarity_search=use_similarity_search,
                skip_provider=skip_provider,
                user_email=x_user_email,
                exclude_service_emails=exclude_service_emails,
            )
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        async with svc.orchestrator_for(_bearer_token(authorization)) as orchestrator:
            result = await orchestrator.get_client_emails(params)

        return ClientEmailsResponse(
            emails=result.emails,
            count=len(result.emails),
            from_external_provider=result.from_external_provider,
            similarity_search_used=result.similarity_search_used,
            error=result.error,
        )

    @app.post("/api/system/process-summaries", response_model=QueuedTaskResponse)
    async def process_summaries(
        request: Request,
        limit: int | None = None,
        x_user_email: str | None = Header(default=None),
    ) -> QueuedTaskResponse:
        if not x_user_email:
            raise HTTPException(status_code=401, detail="Missing X-User-Email header")

        try:
            task_id = _services(request).queue.enqueue(
                TaskType.SUMMARIZE_EMAILS, {"user_id": x_user_email, "limit": limit}
            )
        except QueueClosedError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return QueuedTaskResponse(
            success=True, message="Email summary processing started", task_id=task_id
        )

    @app.get("/api/tasks/{task_id}", response_model=TaskResponse)
    async def task_status(request: Request, task_id: str) -> TaskResponse:
        task = _services(request).queue.get_task(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return TaskResponse(**task.to_dict())

    @app.post("/api/webhooks/agent", response_model=WebhookResponse)
    async def inbound_email(
        request: Request,
        email: InboundEmail,
        x_webhook_secret: str | None = Header(default=None),
    ) -> WebhookResponse:
        if not x_webhook_secret:
            raise HTTPException(status_code=401, detail="Missing signature header")
        expected = settings.webhook_secret
        if not expected or not hmac.compare_digest(x_webhook_secret.encode(), expected.encode()):
            logger.warning("webhook_rejected", message_id=email.id)
            raise HTTPException(status_code=401, detail="Unauthorized")

        svc = _services(request)
        try:
            inserted = await asyncio.to_thread(svc.repository.insert_if_absent, [email.to_message()])
        except StorageError as exc:
            logger.exception("webhook_persist_failed", message_id=email.id)
            raise HTTPException(status_code=500, detail="Internal server error") from exc

        task_id = None
        if inserted:
            try:
                task_id = svc.queue.enqueue(TaskType.PROCESS_NEW_EMAILS, {"email_ids": inserted})
            except QueueClosedError:
                logger.warning("webhook_processing_not_queued", message_id=email.id)
        logger.info(
            "webhook_email_received",
            message_id=email.id,
            inserted=bool(inserted),
            attachments=len(email.attachments),
        )
        return WebhookResponse(status="success", inserted=bool(inserted), task_id=task_id)

    @app.post("/api/feedback", response_model=FeedbackResponse)
    async def record_feedback(
        request: Request,
        feedback: ReportFeedback,
        x_user_email: str | None = Header(default=None),
        user_agent: str | None = Header(default=None),
        x_forwarded_for: str | None = Header(default=None),
        x_real_ip: str | None = Header(default=None),
    ) -> FeedbackResponse:
        if not x_user_email:
            raise HTTPException(status_code=401, detail="Missing X-User-Email header")

        client_host = request.client.host if request.client else None
        try:
            feedback_id = await asyncio.to_thread(
                _services(request).feedback.record,
                feedback,
                user_agent=user_agent or "",
                ip_address=x_forwarded_for or x_real_ip or client_host or "0.0.0.0",
            )
        except StorageError as exc:
            raise HTTPException(status_code=500, detail="Failed to save feedback") from exc
        return FeedbackResponse(success=True, message="Feedback recorded", id=feedback_id)

    @app.post("/api/feedback/action", response_model=FeedbackResponse)
    async def record_feedback_action(
        request: Request,
        body: FeedbackActionRequest,
        x_user_email: str | None = Header(default=None),
    ) -> FeedbackResponse:
        if not x_user_email:
            raise HTTPException(status_code=401, detail="Missing X-User-Email header")

        try:
            found = await asyncio.to_thread(
                _services(request).feedback.record_action, body.feedback_id, body.action, body.value
            )
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except StorageError as exc:
            raise HTTPException(status_code=500, detail="Failed to record feedback action") from exc
        if not found:
            raise HTTPException(status_code=404, detail="Feedback not found")
        return FeedbackResponse(success=True, message=f"Feedback action {body.action} recorded")

    @app.get("/api/admin/check", response_model=AdminCheckResponse)
    async def admin_check(
        request: Request, x_user_email: str | None = Header(default=None)
    ) -> AdminCheckResponse:
        return AdminCheckResponse(is_admin=_services(request).admin.is_admin(x_user_email))

    return app
