"""
Fluent construction of step lists.

The builder only assembles StepSpec data; it never runs anything. Hand the
result of ``build()`` (and ``variables``) to ChainExecutor, or save it with
``VaultStore.save_chain``.

Usage::

    steps = (
        ChainBuilder()
        .step("topic", "Extract Topic").with_provider("local")
        .parallel(lambda g: g.step("summary", "Summarizer")
                             .step("keywords", "Keyword Extractor"))
        .with_provider("local")
        .on_error_stored("Basic Keyword Extractor")
        .step_if("tweet", "Generate Tweet", Condition("summary", contains="safety"))
        .with_provider("local")
        .vars(query="...")
    )
"""

from dataclasses import replace
from typing import Callable, Dict, List, Mapping, Optional, Union

from .planner import validate_steps
from .steps import ConditionLike, Fallback, PromptSource, StepSpec


class ParallelGroup:
    """Steps added here run concurrently as one phase."""

    def __init__(self):
        self.steps: List[StepSpec] = []

    def step(self, key: str, id_or_title: str) -> "ParallelGroup":
        self.steps.append(StepSpec(key, PromptSource.stored(id_or_title)))
        return self

    def step_raw(self, key: str, template: str) -> "ParallelGroup":
        self.steps.append(StepSpec(key, PromptSource.literal(template)))
        return self

    def step_if(self, key: str, id_or_title: str, condition: ConditionLike) -> "ParallelGroup":
        self.steps.append(StepSpec(key, PromptSource.stored(id_or_title), condition=condition))
        return self

    def with_provider(self, provider_ref: str) -> "ParallelGroup":
        """Set the provider of the most recently added step."""
        self._update_last(provider_ref=provider_ref)
        return self

    def on_error_stored(self, id_or_title: str, provider_ref: Optional[str] = None) -> "ParallelGroup":
        self._update_last(fallback=Fallback(PromptSource.stored(id_or_title), provider_ref))
        return self

    def on_error_raw(self, template: str, provider_ref: Optional[str] = None) -> "ParallelGroup":
        self._update_last(fallback=Fallback(PromptSource.literal(template), provider_ref))
        return self

    def _update_last(self, **changes) -> None:
        if not self.steps:
            raise ValueError("Add a step to the group before configuring it")
        self.steps[-1] = replace(self.steps[-1], **changes)


_Node = Union[StepSpec, ParallelGroup]


class ChainBuilder:
    """Accumulates sequential steps and parallel groups in order."""

    def __init__(self):
        self._nodes: List[_Node] = []
        self._vars: Dict[str, str] = {}

    # ── Steps ────────────────────────────────────────────────────────

    def step(self, key: str, id_or_title: str) -> "ChainBuilder":
        """Sequential step running a stored prompt."""
        self._nodes.append(StepSpec(key, PromptSource.stored(id_or_title)))
        return self

    def step_raw(self, key: str, template: str) -> "ChainBuilder":
        """Sequential step running literal template text."""
        self._nodes.append(StepSpec(key, PromptSource.literal(template)))
        return self

    def step_if(self, key: str, id_or_title: str, condition: ConditionLike) -> "ChainBuilder":
        """Sequential stored-prompt step that runs only when ``condition`` holds."""
        self._nodes.append(StepSpec(key, PromptSource.stored(id_or_title), condition=condition))
        return self

    def parallel(self, build_group: Callable[[ParallelGroup], Optional[ParallelGroup]]) -> "ChainBuilder":
        """Add a concurrent phase; ``build_group`` fills the group it is given."""
        group = ParallelGroup()
        build_group(group)
        if not group.steps:
            raise ValueError("A parallel group needs at least one step")
        self._nodes.append(group)
        return self

    # ── Modifiers for the last node ──────────────────────────────────

    def with_provider(self, provider_ref: str) -> "ChainBuilder":
        """Provider for the last step, or for every step of the last group that has none."""
        node = self._last()
        if isinstance(node, ParallelGroup):
            node.steps = [
                step if step.provider_ref else replace(step, provider_ref=provider_ref)
                for step in node.steps
            ]
        else:
            self._nodes[-1] = replace(node, provider_ref=provider_ref)
        return self

    def when(self, condition: ConditionLike) -> "ChainBuilder":
        """Attach a condition to the last step (or to every step of the last group)."""
        return self._modify_last(condition=condition)

    def on_error_stored(self, id_or_title: str, provider_ref: Optional[str] = None) -> "ChainBuilder":
        """Fallback to a stored prompt for the last step (last group member after parallel())."""
        return self._modify_last_step(fallback=Fallback(PromptSource.stored(id_or_title), provider_ref))

    def on_error_raw(self, template: str, provider_ref: Optional[str] = None) -> "ChainBuilder":
        """Fallback to literal text for the last step (last group member after parallel())."""
        return self._modify_last_step(fallback=Fallback(PromptSource.literal(template), provider_ref))

    def vars(self, variables: Optional[Mapping[str, str]] = None, **kwargs: str) -> "ChainBuilder":
        """Merge initial variables."""
        self._vars.update(variables or {})
        self._vars.update(kwargs)
        return self

    # ── Output ───────────────────────────────────────────────────────

    @property
    def variables(self) -> Dict[str, str]:
        return dict(self._vars)

    def build(self) -> List[StepSpec]:
        """Flatten to a validated StepSpec list; groups get ids ``group-1``, ``group-2``..."""
        steps: List[StepSpec] = []
        group_count = 0
        for node in self._nodes:
            if isinstance(node, ParallelGroup):
                group_count += 1
                group_id = f"group-{group_count}"
                steps.extend(replace(step, group=group_id) for step in node.steps)
            else:
                steps.append(replace(node))
        validate_steps(steps, reserved=self._vars.keys())
        return steps

    def _last(self) -> _Node:
        if not self._nodes:
            raise ValueError("Add a step before configuring it")
        return self._nodes[-1]

    def _modify_last(self, **changes) -> "ChainBuilder":
        node = self._last()
        if isinstance(node, ParallelGroup):
            node.steps = [replace(step, **changes) for step in node.steps]
        else:
            self._nodes[-1] = replace(node, **changes)
        return self

    def _modify_last_step(self, **changes) -> "ChainBuilder":
        node = self._last()
        if isinstance(node, ParallelGroup):
            node._update_last(**changes)
        else:
            self._nodes[-1] = replace(node, **changes)
        return self
