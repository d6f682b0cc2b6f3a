"""
Shared pytest fixtures for the Prompt Vault test suite.

The audit logger is redirected to a temp directory for every test so no
test writes into ./audit_logs/. Vault fixtures use cheap scrypt
parameters.
"""

import pytest

from prompt_vault.vault.encryption import KdfParams

# 2**10 iterations keeps each derivation in the low milliseconds.
FAST_KDF = KdfParams(log2_n=10, r=8, p=1)


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test."""
    import prompt_vault.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    orig_init = audit_mod.AuditLogger.__init__

    def patched_init(self, log_dir=None):
        orig_init(self, log_dir=log_dir or tmp_path / "audit_logs")

    monkeypatch.setattr(audit_mod.AuditLogger, "__init__", patched_init)

    yield

    audit_mod._audit_logger = old_logger


@pytest.fixture
def fast_kdf():
    return FAST_KDF


@pytest.fixture
def vault_path(tmp_path):
    return tmp_path / "vault.pvault"


@pytest.fixture
def store(vault_path):
    """Fresh password-protected vault."""
    from prompt_vault.vault import create_vault

    return create_vault(vault_path, "correct horse", kdf_params=FAST_KDF)
