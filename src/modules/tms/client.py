"""TMS order API client (OAuth client-credentials over httpx)."""

from __future__ import annotations

import logging
import time

import httpx
from pydantic import ValidationError

from src.config import settings
from src.exceptions import TmsUnavailableException, ValidationException
from src.modules.tms.constants import (
    DEFAULT_TOKEN_TTL_SECONDS,
    TOKEN_REFRESH_MARGIN_SECONDS,
)
from src.modules.tms.schemas import TmsOrderSnapshot

logger = logging.getLogger(__name__)


class TmsClient:
    """Fetches order snapshots from the TMS.

    There is no retry here. A failed fetch raises
    :class:`TmsUnavailableException` and the caller (webhook, Celery task)
    decides whether to try again.
    """

    def __init__(
        self,
        base_url: str | None = None,
        auth_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or settings.tms_base_url
        self.auth_url = auth_url or settings.tms_auth_url
        self.client_id = client_id if client_id is not None else settings.tms_client_id
        self.client_secret = (
            client_secret if client_secret is not None else settings.tms_client_secret
        )
        self.timeout = timeout or settings.tms_timeout_seconds
        self._transport = transport
        self._token: str | None = None
        self._token_expires_at: float = 0
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def _ensure_token(self) -> str:
        if self._token and time.time() < self._token_expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
            return self._token
        client = await self._get_client()
        try:
            response = await client.post(
                self.auth_url,
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
            )
        except httpx.RequestError as exc:
            raise TmsUnavailableException(f"TMS token request failed: {exc}") from exc
        if response.status_code >= 400:
            raise TmsUnavailableException(
                "TMS token request rejected",
                details=[{"status_code": response.status_code}],
            )
        token_data = response.json()
        self._token = token_data["access_token"]
        self._token_expires_at = time.time() + token_data.get(
            "expires_in", DEFAULT_TOKEN_TTL_SECONDS
        )
        return self._token

    def invalidate_token(self) -> None:
        self._token = None
        self._token_expires_at = 0

    async def get_order(self, external_id: str) -> TmsOrderSnapshot | None:
        """Fetch the current snapshot of an order.

        Returns None when the TMS answers successfully but carries no order
        object. Non-2xx answers and transport errors raise
        :class:`TmsUnavailableException`; a payload that does not parse
        raises :class:`ValidationException`.
        """
        client = await self._get_client()
        token = await self._ensure_token()
        path = f"/orders/{external_id}"
        try:
            response = await client.get(path, headers={"Authorization": f"Bearer {token}"})
        except httpx.RequestError as exc:
            logger.warning("TMS GET %s failed: %s", path, exc)
            raise TmsUnavailableException(f"TMS request failed: {exc}") from exc

        if response.status_code == 401:
            self.invalidate_token()
        if response.status_code >= 300:
            logger.warning("TMS GET %s returned %d", path, response.status_code)
            raise TmsUnavailableException(
                f"TMS returned {response.status_code} for order {external_id}",
                details=[{"status_code": response.status_code, "external_id": external_id}],
            )

        body = response.json() or {}
        order = (body.get("data") or {}).get("object")
        if not order:
            logger.warning("TMS returned no order object for %s", external_id)
            return None

        try:
            return TmsOrderSnapshot.model_validate(order)
        except ValidationError as exc:
            raise ValidationException(
                f"Malformed TMS snapshot for order {external_id}",
                details=[{"errors": exc.errors(include_url=False)}],
            ) from exc

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None


_instance: TmsClient | None = None


def get_tms_client() -> TmsClient:
    global _instance
    if _instance is None:
        _instance = TmsClient()
    return _instance


async def close_tms_client() -> None:
    """Close the cached client's httpx session.

    Must be called at the end of each asyncio.run() invocation in Celery tasks
    so no client outlives its event loop.
    """
    if _instance is not None:
        await _instance.close()
