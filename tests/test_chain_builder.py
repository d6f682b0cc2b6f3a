"""Tests for the fluent chain builder."""

import pytest

from prompt_vault.chain.builder import ChainBuilder
from prompt_vault.chain.exceptions import ChainValidationError
from prompt_vault.chain.executor import ChainExecutor
from prompt_vault.chain.planner import plan_phases
from prompt_vault.chain.steps import Condition, Fallback, PromptSource
from prompt_vault.providers.base import CallableProvider, ProviderFailure


class TestChainBuilder:
    def test_sequential_steps(self):
        steps = ChainBuilder().step("a", "Prompt A").step_raw("b", "raw {{a}}").build()
        assert [s.key for s in steps] == ["a", "b"]
        assert steps[0].source == PromptSource.stored("Prompt A")
        assert steps[1].source == PromptSource.literal("raw {{a}}")
        assert all(s.group is None for s in steps)

    def test_with_provider_targets_last_step(self):
        steps = ChainBuilder().step("a", "A").step("b", "B").with_provider("p").build()
        assert steps[0].provider_ref is None
        assert steps[1].provider_ref == "p"

    def test_parallel_group(self):
        steps = (
            ChainBuilder()
            .step("topic", "T")
            .parallel(lambda g: g.step("summary", "S").step_raw("kw", "K").with_provider("other"))
            .with_provider("main")
            .build()
        )
        phases = plan_phases(steps)
        assert [p.keys for p in phases] == [["topic"], ["summary", "kw"]]
        by_key = {s.key: s for s in steps}
        assert by_key["summary"].provider_ref == "main"
        assert by_key["kw"].provider_ref == "other"
        assert by_key["summary"].group == by_key["kw"].group == "group-1"

    def test_two_groups_get_distinct_ids(self):
        steps = (
            ChainBuilder()
            .parallel(lambda g: g.step("a", "A").step("b", "B"))
            .parallel(lambda g: g.step("c", "C"))
            .build()
        )
        assert [p.keys for p in plan_phases(steps)] == [["a", "b"], ["c"]]

    def test_on_error_after_parallel_targets_last_member(self):
        steps = (
            ChainBuilder()
            .parallel(lambda g: g.step("summary", "S").step("kw", "K"))
            .on_error_stored("Basic KW")
            .build()
        )
        assert steps[0].fallback is None
        assert steps[1].fallback == Fallback(PromptSource.stored("Basic KW"))

    def test_on_error_raw_with_provider(self):
        steps = ChainBuilder().step("a", "A").on_error_raw("fallback", provider_ref="p2").build()
        assert steps[0].fallback == Fallback(PromptSource.literal("fallback"), "p2")

    def test_step_if_and_when(self):
        cond = Condition("a", contains="x")
        steps = ChainBuilder().step("a", "A").step_if("b", "B", cond).step("c", "C").when(cond).build()
        assert steps[1].condition == cond
        assert steps[2].condition == cond
        assert steps[0].condition is None

    def test_vars(self):
        builder = ChainBuilder().vars({"a": "1"}, b="2").step("x", "X")
        assert builder.variables == {"a": "1", "b": "2"}

    def test_build_validates(self):
        with pytest.raises(ChainValidationError):
            ChainBuilder().step("a", "A").step("a", "B").build()
        with pytest.raises(ChainValidationError):
            ChainBuilder().vars(a="1").step("a", "A").build()

    def test_modifier_without_step(self):
        with pytest.raises(ValueError):
            ChainBuilder().with_provider("p")

    def test_empty_parallel_group(self):
        with pytest.raises(ValueError):
            ChainBuilder().parallel(lambda g: None)

    def test_build_returns_fresh_list(self):
        builder = ChainBuilder().step("a", "A")
        first = builder.build()
        first[0].provider_ref = "mutated"
        assert builder.build()[0].provider_ref is None

    def test_built_chain_runs(self):
        def down(text):
            raise ProviderFailure("down")

        builder = (
            ChainBuilder()
            .step_raw("topic", "topic of {{query}}").with_provider("echo")
            .parallel(
                lambda g: g.step_raw("summary", "sum {{topic}}").with_provider("echo")
                .step_raw("kw", "kw {{topic}}").with_provider("down")
            )
            .on_error_raw("basic kw {{topic}}", provider_ref="echo")
            .step_raw("tweet", "tweet {{summary}}")
            .when(Condition("summary", contains="sum"))
            .with_provider("echo")
            .vars(query="rust")
        )
        providers = {"echo": CallableProvider(lambda t: t), "down": CallableProvider(down)}
        result = ChainExecutor(providers).run_sync(builder.build(), builder.variables)
        assert result.outputs == {
            "topic": "topic of rust",
            "summary": "sum topic of rust",
            "kw": "basic kw topic of rust",
            "tweet": "tweet sum topic of rust",
        }
        assert result.used_fallback == ["kw"]
