# Prompt Vault - Audit Logging
#
# Append-only structured audit log for vault and chain events.
# Events carry ids, titles, counts and version numbers only; prompt
# content, passwords and keys are never logged.

import logging
import os
import socket
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog


class EventType(str, Enum):
    """Types of events written to the audit log."""
    # Vault lifecycle
    VAULT_CREATED = "vault.created"
    VAULT_OPENED = "vault.opened"
    VAULT_UNLOCK_FAILED = "vault.unlock.failed"
    VAULT_KEY_ROTATED = "vault.key.rotated"
    VAULT_EXPORTED = "vault.exported"
    VAULT_IMPORTED = "vault.imported"
    VAULT_ERROR = "vault.error"

    # Prompts
    PROMPT_CREATED = "prompt.created"
    PROMPT_EDITED = "prompt.edited"
    PROMPT_REVERTED = "prompt.reverted"
    PROMPT_RENAMED = "prompt.renamed"
    PROMPT_DELETED = "prompt.deleted"
    PROMPT_PRUNED = "prompt.pruned"

    # Chains
    CHAIN_SAVED = "chain.saved"
    CHAIN_UPDATED = "chain.updated"
    CHAIN_RENAMED = "chain.renamed"
    CHAIN_DELETED = "chain.deleted"
    CHAIN_RUN_STARTED = "chain.run.started"
    CHAIN_RUN_COMPLETED = "chain.run.completed"
    CHAIN_STEP_FAILED = "chain.step.failed"
    CHAIN_RUN_ABORTED = "chain.run.aborted"


class EventSeverity(str, Enum):
    """
    Severity levels for audit events.

    - INFO: normal activity
    - INVESTIGATE: recoverable failure worth a look (step failed, fallback used)
    - ALERT: failed unlock, strict-mode chain failure
    - CRITICAL: fatal error, operation aborted
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


class AuditLogger:
    """
    Append-only audit logger for vault and chain events.

    Writes one JSON object per line into a daily file
    ``audit_YYYY-MM-DD.log`` inside ``log_dir``.
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Args:
            log_dir: Directory for audit logs (default: ./audit_logs)
        """
        self.log_dir = Path(log_dir) if log_dir else Path("./audit_logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=False,
        )

        self.log_file = self._setup_file_handler()
        self.logger = structlog.get_logger("prompt_vault.audit")

    def _setup_file_handler(self) -> Path:
        """Attach a file handler for today's log to the audit logger."""
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = self.log_dir / f"audit_{today}.log"

        std_logger = logging.getLogger("prompt_vault.audit")
        for handler in list(std_logger.handlers):
            if getattr(handler, "_prompt_vault_audit", False):
                std_logger.removeHandler(handler)
                handler.close()

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))  # structlog renders JSON
        file_handler._prompt_vault_audit = True

        std_logger.addHandler(file_handler)
        std_logger.setLevel(logging.INFO)
        return log_file

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Log an event (append-only).

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable description
            details: Additional details (ids, counts; never secrets or content)

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())
        self.logger.info(
            "audit_event",
            event_id=event_id,
            event_type=event_type.value,
            severity=severity.value,
            message=message,
            timestamp=datetime.now(timezone.utc).isoformat(),
            details=details or {},
            user_context=self._get_default_user_context(),
        )
        return event_id

    def log_vault_event(
        self,
        event_type: EventType,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: EventSeverity = EventSeverity.INFO,
    ) -> str:
        """Log a vault event. Details must never carry prompt content or secrets."""
        return self.log_event(
            event_type=event_type,
            severity=severity,
            message=f"Vault: {message}",
            details=details,
        )

    def log_chain_event(
        self,
        event_type: EventType,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: EventSeverity = EventSeverity.INFO,
    ) -> str:
        """Log a chain execution event."""
        return self.log_event(
            event_type=event_type,
            severity=severity,
            message=f"Chain: {message}",
            details=details,
        )

    def _get_default_user_context(self) -> Dict[str, Any]:
        """OS user, hostname and platform."""
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
        }


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get the process-wide audit logger, creating it on first use."""
    global _audit_logger
    if _audit_logger is None:
        log_dir = os.environ.get("PROMPT_VAULT_AUDIT_DIR")
        _audit_logger = AuditLogger(Path(log_dir) if log_dir else None)
    return _audit_logger


def set_audit_logger(instance: Optional[AuditLogger]) -> None:
    """Replace the global audit logger (for testing)."""
    global _audit_logger
    _audit_logger = instance
