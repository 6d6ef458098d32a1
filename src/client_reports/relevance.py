"""Client relevance rules shared by local and live retrieval."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from client_reports.models import Message, MessageSource


def normalize_domain(domain: str) -> str:
    """Normalize a user-entered domain.

    ``@Acme`` becomes ``acme.com``; names that already contain a dot are only
    stripped and lowercased.
    """

    cleaned = domain.strip().lstrip("@").lower()
    if cleaned and "." not in cleaned and cleaned != "localhost":
        cleaned = f"{cleaned}.com"
    return cleaned


def domain_of(address: str) -> str:
    """Return the lowercase domain part of an address, or ``""``."""

    _, sep, domain = address.strip().lower().rpartition("@")
    return domain if sep else ""


def parent_domains(domain: str) -> list[str]:
    """``mail.acme.co.uk`` -> ``[mail.acme.co.uk, acme.co.uk, co.uk]``."""

    parts = domain.split(".")
    return [".".join(parts[i:]) for i in range(len(parts) - 1)] if len(parts) > 1 else [domain]


def expand_domains(client_domains: Iterable[str], client_emails: Iterable[str]) -> list[str]:
    """Normalize domains and add the domains of client emails not already covered."""

    expanded: list[str] = []
    for raw in client_domains:
        domain = normalize_domain(raw)
        if domain and domain not in expanded:
            expanded.append(domain)

    for email in client_emails:
        domain = domain_of(email)
        if domain and not any(_domain_matches(domain, d) for d in expanded):
            expanded.append(domain)
    return expanded


def _domain_matches(domain: str, client_domain: str) -> bool:
    return domain == client_domain or domain.endswith("." + client_domain)


@dataclass(frozen=True)
class ClientMatcher:
    """Evaluates the four-way relevance rule for one client."""

    domains: tuple[str, ...]
    emails: tuple[str, ...]
    user_address: str | None = None

    @classmethod
    def build(
        cls,
        client_domains: Sequence[str],
        client_emails: Sequence[str],
        user_address: str | None = None,
    ) -> "ClientMatcher":
        return cls(
            domains=tuple(d for d in (normalize_domain(x) for x in client_domains) if d),
            emails=tuple(e.strip().lower() for e in client_emails if e.strip()),
            user_address=user_address.strip().lower() if user_address else None,
        )

    @property
    def empty(self) -> bool:
        return not self.domains and not self.emails

    def is_client_address(self, address: str) -> bool:
        address = address.strip().lower()
        if not address:
            return False
        if address in self.emails:
            return True
        domain = domain_of(address)
        return bool(domain) and any(_domain_matches(domain, d) for d in self.domains)

    def is_client_sender(self, message: Message) -> bool:
        return self.is_client_address(message.sender)

    def is_client_recipient(self, message: Message) -> bool:
        return any(self.is_client_address(addr) for addr in message.recipients())

    def is_user_to_client(self, message: Message) -> bool:
        if not self.user_address or message.sender != self.user_address:
            return False
        return self.is_client_recipient(message)

    def is_client_to_user(self, message: Message) -> bool:
        if not self.user_address or self.user_address not in message.recipients():
            return False
        return self.is_client_sender(message)

    def is_relevant(self, message: Message) -> bool:
        return (
            self.is_client_sender(message)
            or self.is_client_recipient(message)
            or self.is_user_to_client(message)
            or self.is_client_to_user(message)
        )

    def source_of(self, message: Message) -> MessageSource:
        if self.user_address and message.sender == self.user_address:
            return MessageSource.USER
        if self.is_client_sender(message):
            return MessageSource.CLIENT
        return MessageSource.OTHER

    def filter(self, messages: Iterable[Message]) -> list[Message]:
        """Keep relevant messages and annotate each with its ``source``."""

        kept: list[Message] = []
        for message in messages:
            if self.is_relevant(message):
                kept.append(message.model_copy(update={"source": self.source_of(message)}))
        return kept
