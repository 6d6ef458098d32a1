"""Access control collaborators."""

from client_reports.auth.admin import AdminPolicy

__all__ = ["AdminPolicy"]
