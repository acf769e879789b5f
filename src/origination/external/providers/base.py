"""
Shared REST client for third-party providers (bureau, identity, signature, funding)
"""
import asyncio
import httpx
from typing import Any, Dict, Optional

from origination.core.config import ProviderConfig
from origination.utils.exceptions import ProviderAPIError
from origination.utils.logging import get_logger

logger = get_logger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class ProviderClient:
    """
    Client for a provider REST API.
    Handles authentication, requests, and error handling.

    Reads (GET) are retried with exponential backoff on 429/5xx and transport
    errors. Side-effecting calls (POST) are attempted exactly once.
    """

    provider_name = "provider"

    def __init__(self, config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = config.base_url.rstrip("/")
        self.api_key = config.api_key
        self.timeout = config.timeout
        self.max_retries = config.max_retries
        self.backoff_base = config.backoff_base
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _send_once(self, method: str, endpoint: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self._url(endpoint)
        logger.debug(f"[cyan]{self.provider_name} {method}[/cyan] {url}")
        try:
            async with self._client() as client:
                response = await client.request(method, url, json=data, headers=self._get_headers())
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"[red]❌ {self.provider_name} API error:[/red] "
                f"[yellow]{e.response.status_code}[/yellow] {method} {endpoint} - {e.response.text[:300]}"
            )
            raise ProviderAPIError(
                detail=f"{self.provider_name} API error {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"[red]❌ HTTP error calling {self.provider_name}:[/red] {e!r}")
            raise ProviderAPIError(detail=f"{self.provider_name} unreachable") from e

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def post(self, endpoint: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Side-effecting call: one attempt, no retry"""
        return await self._send_once("POST", endpoint, data)

    async def get(self, endpoint: str) -> Dict[str, Any]:
        """Idempotent read, retried on throttling, server errors and transport failures"""
        attempt = 0
        while True:
            try:
                return await self._send_once("GET", endpoint)
            except ProviderAPIError as e:
                cause = e.__cause__
                retryable = (
                    isinstance(cause, httpx.TransportError)
                    or (isinstance(cause, httpx.HTTPStatusError) and cause.response.status_code in RETRYABLE_STATUS)
                )
                if not retryable or attempt >= self.max_retries:
                    raise
                delay = self.backoff_base * (2 ** attempt)
                attempt += 1
                logger.warning(
                    f"[yellow]⚠️  Retrying {self.provider_name} GET {endpoint}[/yellow] "
                    f"(attempt {attempt}/{self.max_retries}, in {delay:.1f}s)"
                )
                await asyncio.sleep(delay)
