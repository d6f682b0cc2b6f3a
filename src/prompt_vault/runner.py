"""Render or run a single stored prompt outside of a chain."""

import asyncio
import logging
from typing import Mapping, Optional

from .providers.base import Provider
from .templating import render

logger = logging.getLogger(__name__)


def render_prompt(store, id_or_title: str, variables: Optional[Mapping[str, str]] = None) -> str:
    """Render the current content of a stored prompt.

    ``store`` is a VaultStore or VaultSnapshot.

    Raises:
        NotFound / AmbiguousTitle: No single prompt matches ``id_or_title``
        MissingVariable: A placeholder has no value in ``variables``
    """
    prompt = store.find_prompt(id_or_title)
    return render(prompt.content, variables or {})


async def run_prompt(
    store,
    id_or_title: str,
    variables: Optional[Mapping[str, str]] = None,
    provider: Optional[Provider] = None,
) -> str:
    """Render a stored prompt and, when a provider is given, return its completion."""
    text = render_prompt(store, id_or_title, variables)
    if provider is None:
        return text
    logger.info(f"Running prompt '{id_or_title}' with provider '{provider.name}'")
    return await provider.complete(text)


def run_prompt_sync(
    store,
    id_or_title: str,
    variables: Optional[Mapping[str, str]] = None,
    provider: Optional[Provider] = None,
) -> str:
    return asyncio.run(run_prompt(store, id_or_title, variables, provider))
