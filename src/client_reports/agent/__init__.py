"""Client email retrieval orchestration."""

from client_reports.agent.orchestrator import EmailFetchOrchestrator, merge_messages

__all__ = ["EmailFetchOrchestrator", "merge_messages"]
