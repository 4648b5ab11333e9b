"""
HTTP transport to the storefront backend.

Every boundary client (coupons, gift cards, orders, payment provider) shares
one StorefrontClient so they agree on base URL, timeout, auth and error mapping.

Example usage:
    ```python
    from digistore_checkout.client import StorefrontClient

    async with StorefrontClient(settings, token_provider=session.access_token) as client:
        body = await client.request("POST", "/coupons/validate", json={"code": "SAVE10"})
    ```
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

import httpx

from digistore_checkout.config import CheckoutSettings, load_settings
from digistore_checkout.exceptions import (
    BoundaryAuthenticationError,
    BoundaryError,
    BoundaryRateLimited,
    BoundaryUnavailable,
)
from digistore_checkout.logging import mask_sensitive_data

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]


class StorefrontClient:
    """
    Storefront backend client.

    Args:
        settings: Checkout settings (defaults to the process settings)
        token_provider: Returns the buyer's access token, or None for guests
        transport: Optional httpx transport override
        retry_backoff: Base delay in seconds between retries of idempotent calls
    """

    USER_AGENT = "digistore-checkout/0.1.0"

    def __init__(
        self,
        settings: Optional[CheckoutSettings] = None,
        token_provider: Optional[TokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_backoff: float = 0.5,
    ):
        self.settings = settings or load_settings()
        self._base_url = self.settings.api_base_url.rstrip("/")
        self._token_provider = token_provider
        self._transport = transport
        self._retry_backoff = retry_backoff
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": self.USER_AGENT,
                },
                timeout=self.settings.request_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    def _auth_headers(self) -> dict[str, str]:
        if self._token_provider is None:
            return {}
        token = self._token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        idempotent: bool = False,
    ) -> dict[str, Any]:
        """
        Send a request and return the response body.

        A ``{"data": ...}`` envelope is unwrapped. Only idempotent calls are
        retried, and only on transport failures; an error status is final.

        Raises:
            BoundaryUnavailable: timeout or connection failure
            BoundaryAuthenticationError: 401
            BoundaryRateLimited: 429
            BoundaryError: any other error status
        """
        client = await self._get_client()
        attempts = 1 + (self.settings.max_retries if idempotent else 0)
        url = path if path.startswith("/") else f"/{path}"

        for attempt in range(attempts):
            try:
                logger.debug(
                    "%s %s %s", method, url, mask_sensitive_data(json) if json else ""
                )
                response = await client.request(
                    method=method,
                    url=url,
                    json=json,
                    params=params,
                    headers=self._auth_headers(),
                )
            except (httpx.TimeoutException, httpx.RequestError) as e:
                if attempt < attempts - 1:
                    delay = self._retry_backoff * (2 ** attempt)
                    logger.warning(
                        "Transport failure on %s %s (attempt %d/%d), retrying in %.2fs: %s",
                        method, url, attempt + 1, attempts, delay, type(e).__name__,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise BoundaryUnavailable(
                    f"Service unavailable: {type(e).__name__}",
                ) from e

            return self._handle_response(response)

        raise RuntimeError("Unexpected error in request retry loop")

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        if response.status_code == 401:
            raise BoundaryAuthenticationError(
                "Authentication required", status_code=401
            )

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise BoundaryRateLimited(
                "Too many requests, please try again later",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {"detail": response.text}
            raise BoundaryError.from_response(response.status_code, body)

        if not response.content:
            return {}

        try:
            body = response.json()
        except ValueError as e:
            raise BoundaryError(
                "Malformed response from server", status_code=response.status_code
            ) from e

        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            return body["data"]
        return body if isinstance(body, dict) else {"data": body}

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "StorefrontClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
