"""Persistence boundary for messages, clients and report feedback."""

from client_reports.repository.client_repository import ClientRepository
from client_reports.repository.email_repository import EmailRepository, row_to_message
from client_reports.repository.feedback_repository import FeedbackRepository

__all__ = ["ClientRepository", "EmailRepository", "FeedbackRepository", "row_to_message"]
