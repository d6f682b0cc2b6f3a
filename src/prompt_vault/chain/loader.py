"""
YAML chain documents.

Shape::

    title: Research digest        # optional
    vars:
      query: "..."
    steps:
      - id: topic
        prompt: Extract Topic       # stored prompt id or title
        provider: local
      - parallel:
          - id: summary
            prompt: Summarizer
            provider: local
          - id: keywords
            raw: "Keywords for {{topic}}"   # literal template instead of a stored prompt
            provider: local
            on_error:
              prompt: Basic Keyword Extractor
      - id: tweet
        prompt: Generate Tweet
        provider: local
        if:
          variable: summary
          contains: safety
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from .exceptions import ChainValidationError
from .planner import validate_steps
from .steps import Condition, Fallback, PromptSource, StepSpec


@dataclass
class ChainDocument:
    """Parsed chain file: steps plus default variables."""
    steps: List[StepSpec]
    variables: Dict[str, str] = field(default_factory=dict)
    title: Optional[str] = None


def load_chain_yaml(source: Union[str, Path]) -> ChainDocument:
    """Parse a chain document from a path or from YAML text.

    Raises:
        ChainValidationError: Invalid YAML, unknown shape, or a step list
            that cannot be planned
    """
    if isinstance(source, Path):
        text = source.read_text(encoding="utf-8")
    else:
        text = source

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ChainValidationError(f"Invalid YAML chain document: {e}") from e

    if not isinstance(data, Mapping):
        raise ChainValidationError("Chain document must be a mapping with a 'steps' list")
    raw_steps = data.get("steps")
    if not isinstance(raw_steps, list) or not raw_steps:
        raise ChainValidationError("Chain document needs a non-empty 'steps' list")

    variables = data.get("vars") or {}
    if not isinstance(variables, Mapping):
        raise ChainValidationError("'vars' must be a mapping")
    variables = {str(k): str(v) for k, v in variables.items()}

    steps: List[StepSpec] = []
    group_count = 0
    for position, item in enumerate(raw_steps, start=1):
        if isinstance(item, Mapping) and "parallel" in item:
            members = item["parallel"]
            if not isinstance(members, list) or not members:
                raise ChainValidationError(f"Entry {position}: 'parallel' needs a non-empty list")
            group_count += 1
            group = str(item.get("group") or f"group-{group_count}")
            steps.extend(_parse_step(member, position, group) for member in members)
        else:
            steps.append(_parse_step(item, position, None))

    validate_steps(steps, reserved=variables.keys())
    title = data.get("title")
    return ChainDocument(steps=steps, variables=variables, title=str(title) if title else None)


def _parse_step(item: Any, position: int, group: Optional[str]) -> StepSpec:
    if not isinstance(item, Mapping):
        raise ChainValidationError(f"Entry {position}: a step must be a mapping")
    if "id" not in item:
        raise ChainValidationError(f"Entry {position}: step is missing 'id'")
    key = str(item["id"])

    condition = item.get("if")
    fallback = item.get("on_error")
    return StepSpec(
        key=key,
        source=_parse_source(item, f"step '{key}'"),
        provider_ref=str(item["provider"]) if item.get("provider") else None,
        group=group,
        condition=_parse_condition(condition, key) if condition is not None else None,
        fallback=_parse_fallback(fallback, key) if fallback is not None else None,
    )


def _parse_source(item: Mapping, where: str) -> PromptSource:
    if "prompt" in item and "raw" in item:
        raise ChainValidationError(f"{where}: use either 'prompt' or 'raw', not both")
    if "prompt" in item:
        return PromptSource.stored(str(item["prompt"]))
    if "raw" in item:
        return PromptSource.literal(str(item["raw"]))
    raise ChainValidationError(f"{where}: needs 'prompt' (stored) or 'raw' (literal)")


def _parse_condition(data: Any, key: str) -> Condition:
    if not isinstance(data, Mapping) or "variable" not in data:
        raise ChainValidationError(f"step '{key}': 'if' needs a 'variable'")
    if "equals" in data and "contains" in data:
        raise ChainValidationError(f"step '{key}': 'if' takes 'equals' or 'contains', not both")
    return Condition(
        variable=str(data["variable"]),
        equals=str(data["equals"]) if "equals" in data else None,
        contains=str(data["contains"]) if "contains" in data else None,
        negate=bool(data.get("not", False)),
    )


def _parse_fallback(data: Any, key: str) -> Fallback:
    if not isinstance(data, Mapping):
        raise ChainValidationError(f"step '{key}': 'on_error' must be a mapping")
    provider = data.get("provider")
    return Fallback(
        source=_parse_source(data, f"fallback of step '{key}'"),
        provider_ref=str(provider) if provider else None,
    )
