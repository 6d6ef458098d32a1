"""Relational storage for report feedback."""

from __future__ import annotations

import json
import uuid
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from client_reports.exceptions import StorageError, ValidationError
from client_reports.models import FeedbackAction, ReportFeedback

logger = structlog.get_logger()


class FeedbackRepository:
    """Repository for ``report_feedback`` rows."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def record(self, feedback: ReportFeedback, *, user_agent: str = "", ip_address: str = "") -> str:
        """Store one rating and return its generated id.

        Raises:
            StorageError: If the insert fails.
        """

        feedback_id = str(uuid.uuid4())
        parameters = feedback.report_parameters
        params = {
            "id": feedback_id,
            "report_id": feedback.report_id,
            "client_id": feedback.client_id,
            "rating": feedback.rating,
            "feedback_text": feedback.feedback_text,
            "actions_taken": json.dumps(feedback.actions_taken),
            "start_date": parameters.start_date,
            "end_date": parameters.end_date,
            "vector_search_used": parameters.vector_search_used,
            "search_query": parameters.search_query or "",
            "email_count": parameters.email_count,
            "user_agent": user_agent,
            "ip_address": ip_address,
        }
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    text(
                        """
                        INSERT INTO report_feedback (
                            id, report_id, client_id, rating, feedback_text,
                            actions_taken, start_date, end_date,
                            vector_search_used, search_query, email_count,
                            copied_to_clipboard, generation_time_ms,
                            user_agent, ip_address
                        ) VALUES (
                            :id, :report_id, :client_id, :rating, :feedback_text,
                            :actions_taken, :start_date, :end_date,
                            :vector_search_used, :search_query, :email_count,
                            FALSE, 0,
                            :user_agent, :ip_address
                        )
                        """
                    ),
                    params,
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"Feedback insert failed: {exc}") from exc

        logger.info(
            "report_feedback_recorded",
            feedback_id=feedback_id,
            report_id=feedback.report_id,
            rating=feedback.rating,
            vector_search_used=parameters.vector_search_used,
        )
        return feedback_id

    def get(self, feedback_id: str) -> dict[str, Any] | None:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    text("SELECT * FROM report_feedback WHERE id = :id"), {"id": feedback_id}
                ).mappings().first()
        except SQLAlchemyError as exc:
            raise StorageError(f"Feedback lookup failed: {exc}") from exc
        return dict(row) if row is not None else None

    def record_action(self, feedback_id: str, action: FeedbackAction | str, value: Any) -> bool:
        """Attach a follow-up event to existing feedback.

        Returns:
            False when no feedback with ``feedback_id`` exists.

        Raises:
            ValidationError: For an unknown action or a non-numeric generation time.
            StorageError: If the update fails.
        """

        try:
            action = FeedbackAction(action)
        except ValueError as exc:
            raise ValidationError(f"Invalid feedback action: {action}") from exc

        if action is FeedbackAction.COPIED_TO_CLIPBOARD:
            sql = "UPDATE report_feedback SET copied_to_clipboard = :value WHERE id = :id"
            bound: Any = bool(value)
        else:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError("Value must be a number for generation_time action")
            sql = "UPDATE report_feedback SET generation_time_ms = :value WHERE id = :id"
            bound = int(value)

        try:
            with self._engine.begin() as conn:
                result = conn.execute(text(sql), {"id": feedback_id, "value": bound})
        except SQLAlchemyError as exc:
            raise StorageError(f"Feedback update failed: {exc}") from exc

        if result.rowcount == 0:
            return False
        logger.info("report_feedback_action", feedback_id=feedback_id, action=action.value)
        return True
