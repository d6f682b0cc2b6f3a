"""Tests for step data: sources, conditions and serialization."""

import pytest

from prompt_vault.chain.steps import (
    Condition,
    Fallback,
    PromptSource,
    StepSpec,
    steps_from_list,
    steps_to_list,
)


class TestCondition:
    def test_presence(self):
        assert Condition("x").evaluate({"x": ""})
        assert not Condition("x").evaluate({})

    def test_equals(self):
        cond = Condition("mode", equals="fast")
        assert cond({"mode": "fast"})
        assert not cond({"mode": "slow"})

    def test_contains(self):
        cond = Condition("summary", contains="safety")
        assert cond({"summary": "memory safety first"})
        assert not cond({"summary": "speed"})

    def test_negate(self):
        cond = Condition("x", equals="1", negate=True)
        assert cond({"x": "2"})
        assert cond({})
        assert not cond({"x": "1"})

    def test_dict_roundtrip(self):
        cond = Condition("x", contains="y", negate=True)
        assert Condition.from_dict(cond.to_dict()) == cond


class TestStepSpec:
    def test_should_run_without_condition(self):
        assert _literal("a").should_run({})

    def test_should_run_with_callable(self):
        step = StepSpec("a", PromptSource.literal("t"), condition=lambda ctx: "go" in ctx)
        assert step.should_run({"go": "1"})
        assert not step.should_run({})
        assert not step.is_serializable

    def test_callable_condition_not_serializable(self):
        step = StepSpec("a", PromptSource.literal("t"), condition=lambda ctx: True)
        with pytest.raises(TypeError):
            step.to_dict()

    def test_list_roundtrip(self):
        steps = [
            StepSpec("a", PromptSource.stored("Summarizer"), provider_ref="p"),
            StepSpec(
                "b",
                PromptSource.literal("{{a}}"),
                group="g",
                condition=Condition("a", equals="x"),
                fallback=Fallback(PromptSource.stored("Backup"), "q"),
            ),
        ]
        assert steps_from_list(steps_to_list(steps)) == steps

    def test_unknown_source_kind(self):
        with pytest.raises(ValueError):
            PromptSource("file", "x")


def _literal(key):
    return StepSpec(key, PromptSource.literal(key))
