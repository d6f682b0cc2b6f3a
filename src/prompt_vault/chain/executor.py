"""
Chain Executor - runs a planned step list against provider backends.

Phases run strictly in order. Inside a phase every step is an asyncio task
bounded by a semaphore, and the phase finishes only when all of them have
reached an outcome (output, skip, or recorded failure). Ordinary step
errors are isolated to their step; anything else aborts the run.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..core.audit_log import AuditLogger, EventSeverity, EventType, get_audit_logger
from ..providers.base import Provider, ProviderFailure
from ..templating import MissingVariable, render
from ..vault.exceptions import AmbiguousTitle, NotFound
from .exceptions import ChainAborted, ChainExecutionFailed
from .planner import Phase, plan_phases
from .steps import PromptSource, StepSpec

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 8

# Errors a step (or its fallback) may recover from. Anything else is fatal.
STEP_ERRORS = (MissingVariable, ProviderFailure, NotFound, AmbiguousTitle, asyncio.TimeoutError)


class ChainMode(str, Enum):
    """What a failed step means for the rest of the chain"""
    BEST_EFFORT = "best_effort"  # Record the failure, keep going
    STRICT = "strict"            # Stop after the phase that failed


@dataclass
class StepFailure:
    """A step whose outcome is a failure with no successful fallback"""
    key: str
    error: Exception
    fallback_attempted: bool = False

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass
class ChainResult:
    """Final state of one chain run"""
    context: Dict[str, str]
    outputs: Dict[str, str] = field(default_factory=dict)
    failures: List[StepFailure] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    used_fallback: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failed_keys(self) -> List[str]:
        return [f.key for f in self.failures]

    def __getitem__(self, key: str) -> str:
        return self.context[key]


class RunContext:
    """Shared key -> text mapping for one run.

    Writes go through a lock. Readers take ``snapshot()``, which is what
    conditions and rendering see for the whole of a phase.
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def snapshot(self) -> Mapping[str, str]:
        with self._lock:
            return MappingProxyType(dict(self._data))

    def as_dict(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._data)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._data


@dataclass
class _Outcome:
    key: str
    output: Optional[str] = None
    skipped: bool = False
    failure: Optional[StepFailure] = None
    used_fallback: bool = False


class ChainExecutor:
    """
    Executes StepSpec sequences.

    Args:
        providers: Table of provider_ref -> Provider
        store: VaultStore or VaultSnapshot used to resolve stored prompts.
            A VaultStore is snapshotted once at the start of every run.
        mode: ChainMode.BEST_EFFORT (default) or ChainMode.STRICT
        max_concurrency: Upper bound on steps running at once
        default_provider: provider_ref used by steps that name none
    """

    def __init__(
        self,
        providers: Optional[Mapping[str, Provider]] = None,
        store: Any = None,
        mode: Union[ChainMode, str] = ChainMode.BEST_EFFORT,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        default_provider: Optional[str] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.providers: Dict[str, Provider] = dict(providers or {})
        self.store = store
        self.mode = ChainMode(mode)
        self.max_concurrency = max_concurrency
        self.default_provider = default_provider
        self.audit = audit_logger or get_audit_logger()

    async def run(
        self,
        steps: Sequence[StepSpec],
        variables: Optional[Mapping[str, str]] = None,
        chain_id: Optional[str] = None,
    ) -> ChainResult:
        """
        Run ``steps`` with ``variables`` as the initial context.

        Returns:
            ChainResult with the final context and per-step outcomes

        Raises:
            ChainValidationError: Duplicate/empty step keys, or a step key
                shadowing an initial variable
            ChainExecutionFailed: Strict mode, after the first phase with
                a failed step
            ChainAborted: A fatal, non-step error stopped the run
        """
        variables = dict(variables or {})
        phases = plan_phases(steps, reserved=variables.keys())
        sources = self._resolver()
        context = RunContext(variables)
        result = ChainResult(context={})
        semaphore = asyncio.Semaphore(self.max_concurrency)

        self.audit.log_chain_event(
            EventType.CHAIN_RUN_STARTED,
            "Chain run started",
            details={
                "chain_id": chain_id,
                "steps": len(steps),
                "phases": len(phases),
                "mode": self.mode.value,
            },
        )
        logger.info(f"Running chain: {len(steps)} steps in {len(phases)} phases ({self.mode.value})")

        for phase in phases:
            outcomes = await self._run_phase(phase, context, sources, semaphore, chain_id)
            phase_failures = self._collect(outcomes, result, chain_id)

            if phase_failures and self.mode is ChainMode.STRICT:
                result.context = context.as_dict()
                self.audit.log_chain_event(
                    EventType.CHAIN_RUN_ABORTED,
                    f"Strict chain stopped after phase {phase.index}",
                    details={
                        "chain_id": chain_id,
                        "phase": phase.index,
                        "failed": [f.key for f in phase_failures],
                    },
                    severity=EventSeverity.INVESTIGATE,
                )
                raise ChainExecutionFailed(phase_failures, result.context, phase.index)

        result.context = context.as_dict()
        self.audit.log_chain_event(
            EventType.CHAIN_RUN_COMPLETED,
            "Chain run completed",
            details={
                "chain_id": chain_id,
                "outputs": len(result.outputs),
                "failed": result.failed_keys,
                "skipped": result.skipped,
                "used_fallback": result.used_fallback,
            },
        )
        return result

    async def run_chain(self, chain, variables: Optional[Mapping[str, str]] = None) -> ChainResult:
        """Run a stored ChainDefinition."""
        return await self.run(chain.steps, variables, chain_id=chain.id)

    def run_sync(
        self,
        steps: Sequence[StepSpec],
        variables: Optional[Mapping[str, str]] = None,
        chain_id: Optional[str] = None,
    ) -> ChainResult:
        """Blocking wrapper around ``run()`` for callers without an event loop."""
        return asyncio.run(self.run(steps, variables, chain_id=chain_id))

    # ── Phase execution ──────────────────────────────────────────────

    async def _run_phase(
        self,
        phase: Phase,
        context: RunContext,
        sources,
        semaphore: asyncio.Semaphore,
        chain_id: Optional[str],
    ) -> List[_Outcome]:
        snapshot = context.snapshot()
        tasks = [
            asyncio.create_task(self._guarded(step, snapshot, context, sources, semaphore))
            for step in phase.steps
        ]

        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        fatal = next((t for t in tasks if t in done and t.exception() is not None), None)
        if fatal is None:
            return [t.result() for t in tasks]

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        error = fatal.exception()
        step_key = phase.steps[tasks.index(fatal)].key
        logger.error(f"Chain aborted in step '{step_key}': {error!r}")
        self.audit.log_chain_event(
            EventType.CHAIN_RUN_ABORTED,
            f"Fatal error in step '{step_key}'",
            details={
                "chain_id": chain_id,
                "phase": phase.index,
                "step": step_key,
                "error": type(error).__name__,
            },
            severity=EventSeverity.ALERT,
        )
        raise ChainAborted(f"Step '{step_key}' failed fatally: {error}", step_key=step_key) from error

    async def _guarded(self, step, snapshot, context, sources, semaphore) -> _Outcome:
        async with semaphore:
            return await self._run_step(step, snapshot, context, sources)

    async def _run_step(
        self,
        step: StepSpec,
        snapshot: Mapping[str, str],
        context: RunContext,
        sources,
    ) -> _Outcome:
        if not step.should_run(snapshot):
            logger.debug(f"Step '{step.key}' skipped: condition is false")
            return _Outcome(step.key, skipped=True)

        try:
            output = await self._attempt(step.source, step.provider_ref, snapshot, sources)
        except STEP_ERRORS as exc:
            if step.fallback is None:
                logger.warning(f"Step '{step.key}' failed: {exc}")
                return _Outcome(step.key, failure=StepFailure(step.key, exc))

            logger.warning(f"Step '{step.key}' failed ({exc}); running fallback")
            provider_ref = step.fallback.provider_ref or step.provider_ref
            try:
                output = await self._attempt(step.fallback.source, provider_ref, snapshot, sources)
            except STEP_ERRORS as fallback_exc:
                logger.warning(f"Fallback for step '{step.key}' failed: {fallback_exc}")
                return _Outcome(
                    step.key,
                    failure=StepFailure(step.key, fallback_exc, fallback_attempted=True),
                )
            context.set(step.key, output)
            return _Outcome(step.key, output=output, used_fallback=True)

        context.set(step.key, output)
        return _Outcome(step.key, output=output)

    async def _attempt(
        self,
        source: PromptSource,
        provider_ref: Optional[str],
        snapshot: Mapping[str, str],
        sources,
    ) -> str:
        """Resolve, render and complete one source. Raises a STEP_ERRORS member on failure."""
        if source.is_stored:
            if sources is None:
                raise NotFound("prompt", source.value)
            template = sources.find_prompt(source.value).content
        else:
            template = source.value

        text = render(template, snapshot)
        provider = self._provider(provider_ref)
        return await provider.complete(text)

    def _provider(self, provider_ref: Optional[str]) -> Provider:
        ref = provider_ref or self.default_provider
        if ref is None:
            raise ProviderFailure("step names no provider and no default is configured")
        try:
            return self.providers[ref]
        except KeyError:
            raise ProviderFailure(f"provider '{ref}' is not configured") from None

    def _resolver(self):
        if self.store is None:
            return None
        snapshot = getattr(self.store, "snapshot", None)
        return snapshot() if callable(snapshot) else self.store

    def _collect(self, outcomes: List[_Outcome], result: ChainResult, chain_id) -> List[StepFailure]:
        failures = []
        for outcome in outcomes:
            if outcome.skipped:
                result.skipped.append(outcome.key)
            elif outcome.failure is not None:
                failures.append(outcome.failure)
                self.audit.log_chain_event(
                    EventType.CHAIN_STEP_FAILED,
                    f"Step '{outcome.key}' failed",
                    details={
                        "chain_id": chain_id,
                        "step": outcome.key,
                        "error": type(outcome.failure.error).__name__,
                        "fallback_attempted": outcome.failure.fallback_attempted,
                    },
                    severity=EventSeverity.INVESTIGATE,
                )
            else:
                result.outputs[outcome.key] = outcome.output
                if outcome.used_fallback:
                    result.used_fallback.append(outcome.key)
        result.failures.extend(failures)
        return failures
