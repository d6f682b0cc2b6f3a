# Chain module: step data, planning, execution and construction helpers.

from .steps import Condition, Fallback, PromptSource, StepSpec
from .exceptions import ChainAborted, ChainError, ChainExecutionFailed, ChainValidationError
from .planner import Phase, plan_phases, validate_steps
from .executor import ChainExecutor, ChainMode, ChainResult, RunContext, StepFailure
from .builder import ChainBuilder, ParallelGroup
from .loader import ChainDocument, load_chain_yaml

__all__ = [
    # Step data
    "Condition",
    "Fallback",
    "PromptSource",
    "StepSpec",
    # Errors
    "ChainError",
    "ChainValidationError",
    "ChainExecutionFailed",
    "ChainAborted",
    # Planning & execution
    "Phase",
    "plan_phases",
    "validate_steps",
    "ChainExecutor",
    "ChainMode",
    "ChainResult",
    "RunContext",
    "StepFailure",
    # Construction
    "ChainBuilder",
    "ParallelGroup",
    "ChainDocument",
    "load_chain_yaml",
]
