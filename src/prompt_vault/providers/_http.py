"""Shared httpx plumbing for HTTP providers."""

import logging
from typing import Any, Dict, Optional

import httpx

from .base import Provider, ProviderFailure

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


class HTTPProvider(Provider):
    """Provider that POSTs JSON to one endpoint and extracts text from the reply.

    Transport errors, HTTP error statuses, timeouts and malformed bodies all
    surface as ProviderFailure so the chain executor can fall back.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float = DEFAULT_TIMEOUT,
        name: str = "http",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.name = name
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create a reusable client (one connection pool per provider)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = await self._get_client().post(url, json=payload, headers=self._headers())
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as exc:
            raise ProviderFailure(f"request to {url} timed out", self.name) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise ProviderFailure(f"HTTP {status} from {url}", self.name) from exc
        except httpx.HTTPError as exc:
            raise ProviderFailure(f"request to {url} failed: {exc}", self.name) from exc
        except ValueError as exc:
            raise ProviderFailure(f"invalid JSON from {url}", self.name) from exc
        if not isinstance(data, dict):
            raise ProviderFailure(f"unexpected JSON body from {url}", self.name)
        return data
