"""
Prompt Vault - encrypted, versioned prompt storage with a chain executor.

    from prompt_vault import open_vault, ChainBuilder, ChainExecutor

    store = open_vault("vault.pvault", "correct horse battery staple")
    steps = ChainBuilder().step("summary", "Summarizer").with_provider("local").build()
    result = ChainExecutor(providers, store=store).run_sync(steps, {"text": "..."})
"""

__version__ = "0.3.0"

from .chain import (
    ChainAborted,
    ChainBuilder,
    ChainError,
    ChainExecutionFailed,
    ChainExecutor,
    ChainMode,
    ChainResult,
    ChainValidationError,
    Condition,
    Fallback,
    PromptSource,
    StepFailure,
    StepSpec,
    load_chain_yaml,
)
from .providers import CallableProvider, Provider, ProviderFailure
from .runner import render_prompt, run_prompt
from .templating import MissingVariable, render
from .vault import (
    AmbiguousTitle,
    AuthenticationFailed,
    ChainDefinition,
    CorruptContainer,
    InvalidVersion,
    KdfParams,
    NotFound,
    Prompt,
    VaultError,
    VaultExists,
    VaultLocked,
    VaultSnapshot,
    VaultStore,
    VersionRecord,
    create_vault,
    open_vault,
)

__all__ = [
    "__version__",
    # Vault
    "VaultStore",
    "VaultSnapshot",
    "create_vault",
    "open_vault",
    "KdfParams",
    "Prompt",
    "VersionRecord",
    "ChainDefinition",
    "VaultError",
    "AuthenticationFailed",
    "CorruptContainer",
    "VaultExists",
    "VaultLocked",
    "NotFound",
    "AmbiguousTitle",
    "InvalidVersion",
    # Templates
    "render",
    "MissingVariable",
    "render_prompt",
    "run_prompt",
    # Chains
    "ChainBuilder",
    "ChainExecutor",
    "ChainMode",
    "ChainResult",
    "StepFailure",
    "StepSpec",
    "PromptSource",
    "Condition",
    "Fallback",
    "load_chain_yaml",
    "ChainError",
    "ChainValidationError",
    "ChainExecutionFailed",
    "ChainAborted",
    # Providers
    "Provider",
    "ProviderFailure",
    "CallableProvider",
]
