"""
Provider capability: the one operation a chain step needs from a backend.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)


class ProviderFailure(Exception):
    """Ordinary, recoverable backend failure (HTTP error, timeout, bad response)."""

    def __init__(self, message: str, provider: Optional[str] = None):
        self.provider = provider
        prefix = f"[{provider}] " if provider else ""
        super().__init__(f"{prefix}{message}")


class Provider(ABC):
    """
    Abstract base class for generation backends.

    Implementations raise ProviderFailure for anything a fallback could
    recover from. Any other exception is treated by the chain executor as
    a fatal fault and aborts the run.
    """

    name: str = "provider"

    @abstractmethod
    async def complete(self, text: str) -> str:
        """Return the backend's completion for ``text``."""

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""


class CallableProvider(Provider):
    """Adapt a plain function (sync or async) to the Provider interface.

    Usage::

        upper = CallableProvider(lambda text: text.upper(), name="upper")
    """

    def __init__(
        self,
        func: Callable[[str], Union[str, Awaitable[str]]],
        name: str = "callable",
    ):
        self._func = func
        self.name = name

    async def complete(self, text: str) -> str:
        result = self._func(text)
        if inspect.isawaitable(result):
            result = await result
        return result
