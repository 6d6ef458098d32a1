"""HTTP API."""

from client_reports.api.app import create_app

__all__ = ["create_app"]
