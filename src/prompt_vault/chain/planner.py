"""
Execution planning: partition a flat step list into ordered phases.

A maximal run of consecutive steps sharing the same non-None group is one
concurrent phase. Every ungrouped step, and every group boundary, starts a
new phase.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .exceptions import ChainValidationError
from .steps import StepSpec


@dataclass(frozen=True)
class Phase:
    """One barrier-synchronized unit of execution."""
    index: int
    steps: tuple
    group: Optional[str] = None

    @property
    def keys(self) -> List[str]:
        return [step.key for step in self.steps]

    @property
    def is_parallel(self) -> bool:
        return self.group is not None


def validate_steps(
    steps: Sequence[StepSpec],
    reserved: Iterable[str] = (),
    require_serializable: bool = False,
) -> None:
    """Check that a step list can be planned.

    Raises:
        ChainValidationError: Empty or duplicate step key, a key colliding
            with an initial variable, an empty group name, or (when
            ``require_serializable``) a callable condition
    """
    reserved = set(reserved)
    seen = set()
    for position, step in enumerate(steps, start=1):
        if not isinstance(step, StepSpec):
            raise ChainValidationError(f"Step {position} is not a StepSpec: {step!r}")
        if not step.key or not step.key.strip():
            raise ChainValidationError(f"Step {position} has an empty key")
        if step.key in seen:
            raise ChainValidationError(f"Duplicate step key '{step.key}'")
        if step.key in reserved:
            raise ChainValidationError(
                f"Step key '{step.key}' collides with an initial variable of the same name"
            )
        if step.group is not None and not str(step.group).strip():
            raise ChainValidationError(f"Step '{step.key}' has an empty group name")
        if require_serializable and not step.is_serializable:
            raise ChainValidationError(
                f"Step '{step.key}' uses a callable condition and cannot be stored; "
                "use Condition(...) instead"
            )
        seen.add(step.key)


def plan_phases(steps: Sequence[StepSpec], reserved: Iterable[str] = ()) -> List[Phase]:
    """Validate ``steps`` and split them into phases, preserving order."""
    validate_steps(steps, reserved=reserved)

    phases: List[Phase] = []
    current: List[StepSpec] = []
    current_group: Optional[str] = None

    def flush():
        if current:
            phases.append(Phase(len(phases), tuple(current), current_group))

    for step in steps:
        if step.group is not None and step.group == current_group:
            current.append(step)
            continue
        flush()
        current = [step]
        current_group = step.group

    flush()
    return phases
