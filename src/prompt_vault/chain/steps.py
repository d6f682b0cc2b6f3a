"""
Chain step definitions.

A chain is a flat, serializable list of StepSpec. Parallel phases are
expressed by consecutive steps sharing a ``group`` identifier.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

STORED = "stored"
LITERAL = "literal"


@dataclass(frozen=True)
class PromptSource:
    """Where a step's template comes from: a stored prompt or literal text."""
    kind: str
    value: str

    def __post_init__(self):
        if self.kind not in (STORED, LITERAL):
            raise ValueError(f"Unknown prompt source kind '{self.kind}'")

    @classmethod
    def stored(cls, id_or_title: str) -> "PromptSource":
        return cls(STORED, id_or_title)

    @classmethod
    def literal(cls, text: str) -> "PromptSource":
        return cls(LITERAL, text)

    @property
    def is_stored(self) -> bool:
        return self.kind == STORED

    def describe(self) -> str:
        if self.is_stored:
            return f"prompt '{self.value}'"
        return "literal template"

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "value": self.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PromptSource":
        return cls(str(data["kind"]), str(data["value"]))


@dataclass(frozen=True)
class Condition:
    """Serializable predicate over the run context.

    With ``equals`` the variable must equal the value; with ``contains`` it
    must contain the substring; with neither it only has to be present.
    A missing variable is always false before ``negate`` is applied.
    """
    variable: str
    equals: Optional[str] = None
    contains: Optional[str] = None
    negate: bool = False

    def evaluate(self, context: Mapping[str, str]) -> bool:
        value = context.get(self.variable)
        if value is None:
            result = False
        elif self.equals is not None:
            result = value == self.equals
        elif self.contains is not None:
            result = self.contains in value
        else:
            result = True
        return not result if self.negate else result

    __call__ = evaluate

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"variable": self.variable}
        if self.equals is not None:
            data["equals"] = self.equals
        if self.contains is not None:
            data["contains"] = self.contains
        if self.negate:
            data["negate"] = True
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Condition":
        return cls(
            variable=str(data["variable"]),
            equals=data.get("equals"),
            contains=data.get("contains"),
            negate=bool(data.get("negate", False)),
        )


ConditionLike = Union[Condition, Callable[[Mapping[str, str]], bool]]


@dataclass(frozen=True)
class Fallback:
    """Alternate source run once when the primary attempt fails.

    ``provider_ref`` of None means the step's own provider.
    """
    source: PromptSource
    provider_ref: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"source": self.source.to_dict()}
        if self.provider_ref is not None:
            data["provider"] = self.provider_ref
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Fallback":
        return cls(
            source=PromptSource.from_dict(data["source"]),
            provider_ref=data.get("provider"),
        )


@dataclass
class StepSpec:
    """One unit of chain execution."""
    key: str
    source: PromptSource
    provider_ref: Optional[str] = None
    group: Optional[str] = None
    condition: Optional[ConditionLike] = None
    fallback: Optional[Fallback] = None

    @property
    def is_serializable(self) -> bool:
        return self.condition is None or isinstance(self.condition, Condition)

    def should_run(self, context: Mapping[str, str]) -> bool:
        if self.condition is None:
            return True
        return bool(self.condition(context))

    def to_dict(self) -> Dict[str, Any]:
        if not self.is_serializable:
            raise TypeError(
                f"Step '{self.key}' has a callable condition and cannot be serialized"
            )
        data: Dict[str, Any] = {
            "key": self.key,
            "source": self.source.to_dict(),
            "provider": self.provider_ref,
            "group": self.group,
        }
        if self.condition is not None:
            data["condition"] = self.condition.to_dict()
        if self.fallback is not None:
            data["fallback"] = self.fallback.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StepSpec":
        condition = data.get("condition")
        fallback = data.get("fallback")
        return cls(
            key=str(data["key"]),
            source=PromptSource.from_dict(data["source"]),
            provider_ref=data.get("provider"),
            group=data.get("group"),
            condition=Condition.from_dict(condition) if condition else None,
            fallback=Fallback.from_dict(fallback) if fallback else None,
        )


def steps_to_list(steps: List[StepSpec]) -> List[Dict[str, Any]]:
    return [step.to_dict() for step in steps]


def steps_from_list(items: List[Mapping[str, Any]]) -> List[StepSpec]:
    return [StepSpec.from_dict(item) for item in items]
