"""Microsoft Graph API client.

Only the two delegated endpoints this project needs are wrapped: ``/me`` and
``/me/messages``. Token acquisition is someone else's job; the client asks an
``IdentityProvider`` for a bearer token on every request.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog

from client_reports.exceptions import AuthenticationError, ProviderError

logger = structlog.get_logger()

MESSAGE_FIELDS = (
    "id",
    "subject",
    "from",
    "toRecipients",
    "ccRecipients",
    "bccRecipients",
    "receivedDateTime",
    "body",
    "bodyPreview",
)


class IdentityProvider(Protocol):
    """Supplies a Graph access token for the current user, or None."""

    async def get_access_token(self) -> str | None: ...


class StaticTokenProvider:
    """Identity provider returning a fixed token (settings, CLI flag or request header)."""

    def __init__(self, token: str | None) -> None:
        self._token = token

    async def get_access_token(self) -> str | None:
        return self._token


class GraphClient:
    """Async Graph client for mailbox reads."""

    def __init__(
        self,
        identity: IdentityProvider,
        *,
        base_url: str = "https://graph.microsoft.com/v1.0",
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._identity = identity
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        token = await self._identity.get_access_token()
        if not token:
            raise AuthenticationError("No Microsoft Graph access token available")

        try:
            response = await self._http.get(
                path,
                params=params,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.warning("graph_request_failed", path=path, error=str(exc)[:150])
            raise ProviderError(f"Graph request to {path} failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Graph rejected the access token ({response.status_code}) for {path}"
            )
        if response.is_error:
            raise ProviderError(
                f"Graph returned {response.status_code} for {path}: {response.text[:150]}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(f"Graph returned invalid JSON for {path}") from exc
        if not isinstance(data, dict):
            raise ProviderError(f"Graph returned an unexpected payload for {path}")
        return data

    async def get_me(self) -> dict[str, Any]:
        """Return the signed-in user's profile."""

        return await self._get("/me", params={"$select": "mail,userPrincipalName,displayName"})

    async def list_messages(self, start_iso: str, end_iso: str, top: int) -> list[dict[str, Any]]:
        """List messages received within ``[start_iso, end_iso]``, newest first.

        Args:
            start_iso: Inclusive lower bound (``YYYY-MM-DDTHH:MM:SSZ``).
            end_iso: Inclusive upper bound.
            top: Maximum number of messages.

        Returns:
            Raw Graph message dicts.

        Raises:
            AuthenticationError: If no token is available or Graph rejects it.
            ProviderError: On transport errors or malformed responses.
        """

        params = {
            "$select": ",".join(MESSAGE_FIELDS),
            "$filter": f"receivedDateTime ge {start_iso} and receivedDateTime le {end_iso}",
            "$orderby": "receivedDateTime desc",
            "$top": int(top),
        }
        logger.info("graph_listing_messages", start=start_iso, end=end_iso, top=top)
        data = await self._get("/me/messages", params=params)

        value = data.get("value")
        if not isinstance(value, list):
            raise ProviderError("Graph message list response has no 'value' array")
        return [item for item in value if isinstance(item, dict)]
