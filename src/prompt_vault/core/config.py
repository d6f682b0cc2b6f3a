# Prompt Vault - Configuration
#
# Settings come from environment variables (optionally loaded from a
# .env file via python-dotenv). Provider definitions live in
# <home>/config.toml.

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_HOME = Path.home() / ".prompt-vault"
DEFAULT_MAX_CONCURRENCY = 8

CHAIN_MODE_BEST_EFFORT = "best_effort"
CHAIN_MODE_STRICT = "strict"


class ConfigError(Exception):
    """Raised for invalid configuration (bad config.toml, unset API key env var)."""


@dataclass
class ProviderConfig:
    """One ``[providers.<name>]`` table from config.toml."""
    name: str
    backend: str
    model: str
    api_key_env: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = 60.0

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ProviderConfig":
        try:
            backend = str(data["backend"]).lower()
            model = str(data["model"])
        except KeyError as e:
            raise ConfigError(f"Provider '{name}' is missing required field {e.args[0]!r}") from e
        return cls(
            name=name,
            backend=backend,
            model=model,
            api_key_env=data.get("api_key_env"),
            base_url=data.get("base_url"),
            timeout=float(data.get("timeout", 60.0)),
        )


@dataclass
class Settings:
    """Resolved runtime settings."""
    home: Path = DEFAULT_HOME
    vault_path: Optional[Path] = None
    key_file: Optional[Path] = None
    audit_dir: Optional[Path] = None
    config_path: Optional[Path] = None
    password: Optional[str] = field(default=None, repr=False)
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    chain_mode: str = CHAIN_MODE_BEST_EFFORT

    def __post_init__(self):
        self.home = Path(self.home)
        if self.vault_path is None:
            self.vault_path = self.home / "vault.pvault"
        if self.key_file is None:
            self.key_file = self.home / "keys" / "key.bin"
        if self.audit_dir is None:
            self.audit_dir = self.home / "audit_logs"
        if self.config_path is None:
            self.config_path = self.home / "config.toml"
        if self.chain_mode not in (CHAIN_MODE_BEST_EFFORT, CHAIN_MODE_STRICT):
            raise ConfigError(
                f"Invalid chain mode '{self.chain_mode}' "
                f"(expected '{CHAIN_MODE_BEST_EFFORT}' or '{CHAIN_MODE_STRICT}')"
            )
        if self.max_concurrency < 1:
            raise ConfigError("max_concurrency must be at least 1")


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """Build Settings from the environment.

    A ``.env`` file (``env_file`` or one found from the working directory)
    is loaded first without overriding variables already set.
    """
    load_dotenv(dotenv_path=env_file, override=False)

    home = Path(os.environ.get("PROMPT_VAULT_HOME", "") or DEFAULT_HOME).expanduser()

    def _path(var: str) -> Optional[Path]:
        value = os.environ.get(var, "")
        return Path(value).expanduser() if value else None

    raw_concurrency = os.environ.get("PROMPT_VAULT_MAX_CONCURRENCY", "")
    try:
        max_concurrency = int(raw_concurrency) if raw_concurrency else DEFAULT_MAX_CONCURRENCY
    except ValueError as e:
        raise ConfigError(
            f"PROMPT_VAULT_MAX_CONCURRENCY must be an integer, got {raw_concurrency!r}"
        ) from e

    return Settings(
        home=home,
        vault_path=_path("PROMPT_VAULT_PATH"),
        key_file=_path("PROMPT_VAULT_KEY_FILE"),
        audit_dir=_path("PROMPT_VAULT_AUDIT_DIR"),
        config_path=_path("PROMPT_VAULT_CONFIG"),
        password=os.environ.get("PROMPT_VAULT_PASSWORD") or None,
        max_concurrency=max_concurrency,
        chain_mode=os.environ.get("PROMPT_VAULT_CHAIN_MODE", "") or CHAIN_MODE_BEST_EFFORT,
    )


def load_provider_configs(config_path: Path) -> Dict[str, ProviderConfig]:
    """Parse the ``[providers]`` tables of config.toml.

    Returns an empty dict when the file does not exist.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        logger.info(f"No provider config at {config_path}; provider table is empty")
        return {}

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse {config_path}: {e}") from e

    providers = data.get("providers", {})
    if not isinstance(providers, dict):
        raise ConfigError(f"'providers' in {config_path} must be a table")

    return {
        name: ProviderConfig.from_dict(name, table)
        for name, table in providers.items()
    }


def resolve_secret(settings: Settings, explicit: Optional[str] = None) -> Union[str, bytes]:
    """Pick the vault secret: explicit password, then PROMPT_VAULT_PASSWORD, then key file.

    The key file is generated (mode 600) on first use. A key-file vault is
    only as safe as the file's permissions.
    """
    from ..vault.encryption import init_key_file, read_key_file

    if explicit:
        return explicit
    if settings.password:
        return settings.password
    init_key_file(settings.key_file)
    return read_key_file(settings.key_file)
