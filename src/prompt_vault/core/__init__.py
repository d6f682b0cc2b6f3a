# Core module: audit logging and configuration shared by vault and chain code.

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
    set_audit_logger,
)
from .config import (
    CHAIN_MODE_BEST_EFFORT,
    CHAIN_MODE_STRICT,
    ConfigError,
    ProviderConfig,
    Settings,
    load_provider_configs,
    load_settings,
    resolve_secret,
)

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
    "set_audit_logger",
    # Configuration
    "CHAIN_MODE_BEST_EFFORT",
    "CHAIN_MODE_STRICT",
    "ConfigError",
    "ProviderConfig",
    "Settings",
    "load_provider_configs",
    "load_settings",
    "resolve_secret",
]
