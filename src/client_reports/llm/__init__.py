"""LLM-backed message summaries."""

from client_reports.llm.summarizer import OpenAISummarizer, Summarizer, build_summarizer

__all__ = ["OpenAISummarizer", "Summarizer", "build_summarizer"]
