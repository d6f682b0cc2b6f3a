"""
Chain Exception Classes
"""

from typing import Dict, List, Optional


class ChainError(Exception):
    """Base exception for chain planning and execution"""
    pass


class ChainValidationError(ChainError, ValueError):
    """Raised when a step list cannot be planned (duplicate or reserved keys, unstorable steps)"""
    pass


class ChainExecutionFailed(ChainError):
    """Raised in strict mode when a phase finishes with failed steps.

    Carries the failures and the context as it stood after that phase.
    """

    def __init__(self, failures: List["StepFailure"], context: Dict[str, str], phase: int):
        self.failures = failures
        self.context = context
        self.phase = phase
        keys = ", ".join(f.key for f in failures)
        super().__init__(f"Chain stopped after phase {phase}: failed step(s) {keys}")


class ChainAborted(ChainError):
    """Raised when a fatal, non-step error stops a run in progress"""

    def __init__(self, message: str, step_key: Optional[str] = None):
        self.step_key = step_key
        super().__init__(message)

