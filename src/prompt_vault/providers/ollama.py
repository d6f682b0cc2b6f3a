# Local generation backend speaking Ollama's /api/generate endpoint
# (non-streaming). Base URL and model fall back to OLLAMA_URL and
# OLLAMA_MODEL, then to the local defaults.

import logging
import os
from typing import Optional

import httpx

from ._http import DEFAULT_TIMEOUT, HTTPProvider
from .base import ProviderFailure

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3.1:8b"


class OllamaProvider(HTTPProvider):
    """Local LLM backend using Ollama's REST API.

    Usage::

        provider = OllamaProvider(model="mistral:7b")
        text = await provider.complete("Summarize: ...")
    """

    def __init__(
        self,
        base_url: str = "",
        model: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        name: str = "ollama",
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(
            base_url=base_url or os.environ.get("OLLAMA_URL", "") or DEFAULT_OLLAMA_URL,
            model=model or os.environ.get("OLLAMA_MODEL", "") or DEFAULT_OLLAMA_MODEL,
            timeout=timeout,
            name=name,
            client=client,
        )

    async def complete(self, text: str) -> str:
        data = await self._post_json(
            "/api/generate",
            {"model": self.model, "prompt": text, "stream": False},
        )
        if "error" in data:
            raise ProviderFailure(f"Ollama error: {data['error']}", self.name)
        response = data.get("response")
        if not isinstance(response, str):
            raise ProviderFailure("Ollama reply has no 'response' text", self.name)
        logger.debug(f"Ollama {self.model}: {data.get('eval_count', 0)} tokens generated")
        return response
