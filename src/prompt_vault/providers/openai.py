# OpenAI-compatible chat completion backend (/v1/chat/completions).
# Works against api.openai.com or any server exposing the same route.

import logging
from typing import Dict, Optional

import httpx

from ._http import DEFAULT_TIMEOUT, HTTPProvider
from .base import ProviderFailure

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_URL = "https://api.openai.com"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


class OpenAIProvider(HTTPProvider):
    """Single-turn chat completion: the rendered prompt is sent as one user message."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_OPENAI_MODEL,
        base_url: str = DEFAULT_OPENAI_URL,
        timeout: float = DEFAULT_TIMEOUT,
        name: str = "openai",
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError("OpenAIProvider requires an API key")
        super().__init__(base_url=base_url, model=model, timeout=timeout, name=name, client=client)
        self._api_key = api_key

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def complete(self, text: str) -> str:
        data = await self._post_json(
            "/v1/chat/completions",
            {"model": self.model, "messages": [{"role": "user", "content": text}]},
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderFailure("reply has no choices[0].message.content", self.name) from exc
        if content is None:
            raise ProviderFailure("reply content is empty", self.name)
        usage = data.get("usage") or {}
        logger.debug(f"OpenAI {self.model}: {usage.get('total_tokens', 0)} tokens")
        return content
