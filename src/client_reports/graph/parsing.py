"""Helpers for parsing Graph message payloads into internal models."""

from __future__ import annotations

import re
from typing import Any

from bs4 import BeautifulSoup

from client_reports.models import Message
from client_reports.utils import normalize_date

_BLANK_LINES = re.compile(r"\n\s*\n+")


def html_to_text(html: str | None) -> str:
    """Strip markup, scripts and styles; collapse runs of blank lines."""

    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "head"]):
        tag.decompose()
    text = soup.get_text("\n")
    lines = (line.strip() for line in text.splitlines())
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


def _address(entry: Any) -> str:
    if not isinstance(entry, dict):
        return ""
    email = entry.get("emailAddress") or {}
    if not isinstance(email, dict):
        return ""
    return str(email.get("address") or "").strip()


def flatten_recipients(entries: Any) -> str:
    """``[{"emailAddress": {"address": "a@x"}}, ...]`` -> ``"a@x, ..."``."""

    if not isinstance(entries, list):
        return ""
    return ", ".join(addr for addr in (_address(e) for e in entries) if addr)


def graph_message_to_message(raw: dict[str, Any]) -> Message:
    """Convert a Graph API message to a ``Message``.

    Args:
        raw: Graph message dict (``$select`` as in ``MESSAGE_FIELDS``).

    Returns:
        Message: Canonical message with plain-text body and no summary/embedding.

    Raises:
        ValueError: If the payload has no id.
    """

    message_id = str(raw.get("id") or "")
    if not message_id:
        raise ValueError("Graph message without id")

    body = raw.get("body") or {}
    content = body.get("content") if isinstance(body, dict) else None
    if isinstance(body, dict) and str(body.get("contentType", "")).lower() == "text":
        text = (content or "").strip()
    else:
        text = html_to_text(content)
    if not text:
        text = str(raw.get("bodyPreview") or "")

    return Message(
        id=message_id,
        subject=str(raw.get("subject") or ""),
        from_address=_address(raw.get("from")),
        to=flatten_recipients(raw.get("toRecipients")),
        cc=flatten_recipients(raw.get("ccRecipients")),
        bcc=flatten_recipients(raw.get("bccRecipients")),
        date=normalize_date(raw.get("receivedDateTime")),
        body=text,
    )
