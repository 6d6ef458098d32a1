"""Admin access policy."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

logger = structlog.get_logger()


class AdminPolicy:
    """Case-insensitive allow-list of admin addresses."""

    def __init__(self, admin_emails: Iterable[str]) -> None:
        self._admins = frozenset(e.strip().lower() for e in admin_emails if e and e.strip())

    def is_admin(self, email: str | None) -> bool:
        if not email or not email.strip():
            return False
        is_admin = email.strip().lower() in self._admins
        logger.debug("admin_check", is_admin=is_admin)
        return is_admin
