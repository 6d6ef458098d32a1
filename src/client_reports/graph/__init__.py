"""Microsoft Graph mailbox access."""

from client_reports.graph.client import GraphClient, IdentityProvider, StaticTokenProvider
from client_reports.graph.provider import MailProvider, ProviderBatch

__all__ = ["GraphClient", "IdentityProvider", "MailProvider", "ProviderBatch", "StaticTokenProvider"]
