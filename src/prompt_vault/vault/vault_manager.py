# Prompt Vault - Vault Store
#
# One encrypted container holding every prompt and chain with full
# version history. Every mutation builds the new collection on copies,
# writes it atomically (temp file + fsync + rename) and only then swaps
# it in, so a failed write leaves both disk and memory unchanged.

import copy
import json
import logging
import os
import re
import secrets
import string
import tempfile
import threading
from collections import Counter
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from ..chain.planner import validate_steps
from ..chain.steps import StepSpec
from ..core.audit_log import AuditLogger, EventSeverity, EventType, get_audit_logger
from .bundle import export_bundle as write_bundle
from .bundle import read_bundle
from .container import ContainerHeader, Secret, seal, unseal_with_secret
from .encryption import KdfParams
from .exceptions import (
    AmbiguousTitle,
    AuthenticationFailed,
    CorruptContainer,
    InvalidVersion,
    NotFound,
    VaultExists,
    VaultLocked,
)
from .models import ChainDefinition, Prompt, VersionRecord, utc_now

logger = logging.getLogger(__name__)

PAYLOAD_FORMAT = 1
ID_LENGTH = 8
_ID_ALPHABET = string.ascii_lowercase + string.digits

SEARCH_FIELDS = ("title", "content", "tag")


def _find_by_id_or_title(items: Mapping[str, Any], ident: str, kind: str):
    """Exact id first, then case-insensitive title."""
    if ident in items:
        return items[ident]
    wanted = ident.casefold()
    matches = [item for item in items.values() if item.title.casefold() == wanted]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise NotFound(kind, ident)
    raise AmbiguousTitle(kind, ident, sorted(m.id for m in matches))


class VaultSnapshot:
    """Read-only, point-in-time view of the stored prompts.

    One chain run resolves every stored step through the same snapshot,
    so edits made while the run is in flight are not observed.
    """

    def __init__(self, prompts: Mapping[str, Prompt]):
        self._prompts = MappingProxyType({pid: p.copy() for pid, p in prompts.items()})

    def __len__(self) -> int:
        return len(self._prompts)

    def __contains__(self, prompt_id: str) -> bool:
        return prompt_id in self._prompts

    def get_prompt(self, prompt_id: str) -> Prompt:
        try:
            return self._prompts[prompt_id]
        except KeyError:
            raise NotFound("prompt", prompt_id) from None

    def find_prompt(self, id_or_title: str) -> Prompt:
        return _find_by_id_or_title(self._prompts, id_or_title, "prompt")


class VaultStore:
    """
    Encrypted, versioned store of prompts and chain definitions.

    Obtain one with ``create_vault()`` or ``open_vault()``. All mutating
    calls (and key rotation) are serialized behind a single lock and each
    results in exactly one durable container write.
    """

    def __init__(
        self,
        path: Path,
        key: bytes,
        header: ContainerHeader,
        prompts: Optional[Dict[str, Prompt]] = None,
        chains: Optional[Dict[str, ChainDefinition]] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.path = Path(path)
        self._key: Optional[bytes] = key
        self._header = header
        self._prompts: Dict[str, Prompt] = prompts or {}
        self._chains: Dict[str, ChainDefinition] = chains or {}
        self._lock = threading.RLock()
        self.audit = audit_logger or get_audit_logger()

    # ── Lifecycle ────────────────────────────────────────────────────

    @classmethod
    def create(
        cls,
        path: Path,
        secret: Secret,
        kdf_params: KdfParams = KdfParams(),
        audit_logger: Optional[AuditLogger] = None,
    ) -> "VaultStore":
        """Create a new, empty vault at ``path``.

        Args:
            path: Container file to create
            secret: Master password (str) or raw 32-byte key (bytes)
            kdf_params: scrypt cost for password vaults

        Raises:
            VaultExists: A non-empty container already exists at ``path``
        """
        path = Path(path)
        if path.exists() and path.stat().st_size > 0:
            raise VaultExists(f"Vault already exists at {path}. Open it instead.")

        header = ContainerHeader.for_secret(secret, kdf_params)
        store = cls(path, header.derive_key(secret), header, audit_logger=audit_logger)
        store._commit(store._prompts, store._chains)

        store.audit.log_vault_event(
            EventType.VAULT_CREATED,
            "Vault created",
            details={"path": str(path), "password_protected": header.uses_password},
        )
        logger.info(f"Created vault at {path}")
        return store

    @classmethod
    def open(
        cls,
        path: Path,
        secret: Secret,
        audit_logger: Optional[AuditLogger] = None,
    ) -> "VaultStore":
        """Load, authenticate and decrypt an existing vault.

        Raises:
            NotFound: No container at ``path``
            CorruptContainer: Header malformed or version unsupported
            AuthenticationFailed: Wrong password/key, or damaged ciphertext
        """
        path = Path(path)
        audit = audit_logger or get_audit_logger()
        if not path.exists() or path.stat().st_size == 0:
            raise NotFound("vault", str(path))

        data = path.read_bytes()
        try:
            header, key, payload = unseal_with_secret(secret, data)
        except AuthenticationFailed:
            audit.log_vault_event(
                EventType.VAULT_UNLOCK_FAILED,
                "Vault unlock failed",
                details={"path": str(path)},
                severity=EventSeverity.ALERT,
            )
            raise

        prompts, chains = cls._deserialize(payload)
        store = cls(path, key, header, prompts, chains, audit_logger=audit)
        audit.log_vault_event(
            EventType.VAULT_OPENED,
            "Vault opened",
            details={"path": str(path), "prompts": len(prompts), "chains": len(chains)},
        )
        return store

    def close(self) -> None:
        """Drop the key and cached collection. Further calls raise VaultLocked."""
        with self._lock:
            self._key = None
            self._prompts = {}
            self._chains = {}

    @property
    def is_open(self) -> bool:
        return self._key is not None

    def __enter__(self) -> "VaultStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── Serialization & persistence ──────────────────────────────────

    @staticmethod
    def _serialize(prompts: Mapping[str, Prompt], chains: Mapping[str, ChainDefinition]) -> bytes:
        payload = {
            "format": PAYLOAD_FORMAT,
            "prompts": [p.to_dict() for p in prompts.values()],
            "chains": [c.to_dict() for c in chains.values()],
        }
        return json.dumps(payload, ensure_ascii=False, sort_keys=True).encode("utf-8")

    @staticmethod
    def _deserialize(payload: bytes) -> Tuple[Dict[str, Prompt], Dict[str, ChainDefinition]]:
        try:
            data = json.loads(payload.decode("utf-8"))
            if data.get("format") != PAYLOAD_FORMAT:
                raise CorruptContainer(f"Unsupported payload format {data.get('format')!r}")
            prompts = {p["id"]: Prompt.from_dict(p) for p in data.get("prompts", [])}
            chains = {c["id"]: ChainDefinition.from_dict(c) for c in data.get("chains", [])}
        except CorruptContainer:
            raise
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise CorruptContainer(f"Vault payload could not be parsed: {e}") from e
        return prompts, chains

    def _write_atomic(self, blob: bytes) -> None:
        """Write ``blob`` to a temp file beside the container, then rename over it."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            os.chmod(tmp_name, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise
        self._fsync_dir()

    def _fsync_dir(self) -> None:
        if os.name != "posix":
            return
        dir_fd = os.open(self.path.parent, os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)

    def _commit(
        self,
        prompts: Dict[str, Prompt],
        chains: Dict[str, ChainDefinition],
        key: Optional[bytes] = None,
        header: Optional[ContainerHeader] = None,
    ) -> None:
        """Persist a new collection, then make it current."""
        key = key or self._require_key()
        header = header or self._header
        self._write_atomic(seal(key, header, self._serialize(prompts, chains)))
        self._prompts = prompts
        self._chains = chains
        self._key = key
        self._header = header

    def _require_key(self) -> bytes:
        if self._key is None:
            raise VaultLocked("Vault handle is closed")
        return self._key

    def _new_id(self) -> str:
        while True:
            candidate = "".join(secrets.choice(_ID_ALPHABET) for _ in range(ID_LENGTH))
            if candidate not in self._prompts and candidate not in self._chains:
                return candidate

    def _prompt_or_raise(self, prompt_id: str) -> Prompt:
        self._require_key()
        try:
            return self._prompts[prompt_id]
        except KeyError:
            raise NotFound("prompt", prompt_id) from None

    def _chain_or_raise(self, chain_id: str) -> ChainDefinition:
        self._require_key()
        try:
            return self._chains[chain_id]
        except KeyError:
            raise NotFound("chain", chain_id) from None

    def _replace_prompt(self, prompt: Prompt) -> None:
        prompts = dict(self._prompts)
        prompts[prompt.id] = prompt
        self._commit(prompts, self._chains)

    def _replace_chain(self, chain: ChainDefinition) -> None:
        chains = dict(self._chains)
        chains[chain.id] = chain
        self._commit(self._prompts, chains)

    # ── Prompts ──────────────────────────────────────────────────────

    def create_prompt(self, title: str, content: str, tags: Iterable[str] = ()) -> Prompt:
        """Store a new prompt at version 1."""
        title = title.strip()
        if not title:
            raise ValueError("Prompt title cannot be empty")

        with self._lock:
            self._require_key()
            now = utc_now()
            prompt = Prompt(
                id=self._new_id(),
                title=title,
                content=content,
                tags=_normalize_tags(tags),
                created_at=now,
                updated_at=now,
            )
            self._replace_prompt(prompt)

        self.audit.log_vault_event(
            EventType.PROMPT_CREATED,
            f"Prompt created: {prompt.title}",
            details={"prompt_id": prompt.id, "tags": sorted(prompt.tags)},
        )
        return prompt.copy()

    def get_prompt(self, prompt_id: str) -> Prompt:
        with self._lock:
            return self._prompt_or_raise(prompt_id).copy()

    def find_prompt(self, id_or_title: str) -> Prompt:
        """Look up by exact id, falling back to case-insensitive title."""
        with self._lock:
            self._require_key()
            return _find_by_id_or_title(self._prompts, id_or_title, "prompt").copy()

    def list_prompts(self, tags: Optional[Iterable[str]] = None) -> List[Prompt]:
        """All prompts sorted by title, optionally limited to those carrying every tag."""
        wanted = _normalize_tags(tags or ())
        with self._lock:
            self._require_key()
            prompts = [p for p in self._prompts.values() if wanted <= p.tags]
            return [p.copy() for p in sorted(prompts, key=lambda p: (p.title.casefold(), p.id))]

    def edit_prompt(self, prompt_id: str, new_content: str) -> Prompt:
        """Replace content, recording the prior content as a version.

        Identical content is a no-op and writes nothing.
        """
        with self._lock:
            current = self._prompt_or_raise(prompt_id)
            if new_content == current.content:
                return current.copy()
            prompt = self._apply_new_content(current, new_content)
            self._replace_prompt(prompt)

        self.audit.log_vault_event(
            EventType.PROMPT_EDITED,
            f"Prompt edited: {prompt.title}",
            details={"prompt_id": prompt.id, "version": prompt.current_version},
        )
        return prompt.copy()

    def revert_prompt(self, prompt_id: str, version_number: int) -> Prompt:
        """Restore the content of ``version_number`` as a new version.

        History is never truncated: the content being replaced is recorded
        like any other edit.

        Raises:
            NotFound: Unknown prompt id
            InvalidVersion: ``version_number`` outside 1..current_version
        """
        with self._lock:
            current = self._prompt_or_raise(prompt_id)
            target = current.content_at(version_number)
            if target is None:
                raise InvalidVersion(prompt_id, version_number, current.current_version)
            prompt = self._apply_new_content(current, target)
            self._replace_prompt(prompt)

        self.audit.log_vault_event(
            EventType.PROMPT_REVERTED,
            f"Prompt reverted: {prompt.title}",
            details={
                "prompt_id": prompt.id,
                "reverted_to": version_number,
                "version": prompt.current_version,
            },
        )
        return prompt.copy()

    @staticmethod
    def _apply_new_content(current: Prompt, new_content: str) -> Prompt:
        prompt = current.copy()
        now = utc_now()
        prompt.versions.append(
            VersionRecord(current.current_version, current.content, current.updated_at)
        )
        prompt.current_version += 1
        prompt.content = new_content
        prompt.updated_at = now
        return prompt

    def history(self, prompt_id: str) -> List[VersionRecord]:
        """Every recorded version, oldest first, ending with the current content."""
        with self._lock:
            return self._prompt_or_raise(prompt_id).history()

    def prune_history(self, prompt_id: str, keep: int) -> int:
        """Drop all but the newest ``keep`` recorded versions. Returns how many were removed."""
        if keep < 0:
            raise ValueError("keep must be >= 0")
        with self._lock:
            current = self._prompt_or_raise(prompt_id)
            removed = max(len(current.versions) - keep, 0)
            if not removed:
                return 0
            prompt = current.copy()
            prompt.versions = prompt.versions[removed:]
            self._replace_prompt(prompt)

        self.audit.log_vault_event(
            EventType.PROMPT_PRUNED,
            f"Prompt history pruned: {prompt.title}",
            details={"prompt_id": prompt_id, "removed": removed, "kept": len(prompt.versions)},
        )
        return removed

    def rename_prompt(self, prompt_id: str, title: str) -> Prompt:
        """Change the title. Metadata changes do not create versions."""
        title = title.strip()
        if not title:
            raise ValueError("Prompt title cannot be empty")
        with self._lock:
            prompt = self._prompt_or_raise(prompt_id).copy()
            old_title = prompt.title
            prompt.title = title
            prompt.updated_at = utc_now()
            self._replace_prompt(prompt)

        self.audit.log_vault_event(
            EventType.PROMPT_RENAMED,
            f"Prompt renamed: {old_title} -> {title}",
            details={"prompt_id": prompt_id},
        )
        return prompt.copy()

    def set_tags(self, prompt_id: str, tags: Iterable[str]) -> Prompt:
        with self._lock:
            prompt = self._prompt_or_raise(prompt_id).copy()
            prompt.tags = _normalize_tags(tags)
            prompt.updated_at = utc_now()
            self._replace_prompt(prompt)
        return prompt.copy()

    def delete_prompt(self, prompt_id: str) -> None:
        with self._lock:
            prompt = self._prompt_or_raise(prompt_id)
            prompts = dict(self._prompts)
            del prompts[prompt_id]
            self._commit(prompts, self._chains)

        self.audit.log_vault_event(
            EventType.PROMPT_DELETED,
            f"Prompt deleted: {prompt.title}",
            details={"prompt_id": prompt_id},
        )

    def search(
        self,
        query: Optional[str] = None,
        by: Sequence[str] = ("title",),
        regex: bool = False,
        case_sensitive: bool = False,
        tags: Optional[Iterable[str]] = None,
    ) -> Iterator[Prompt]:
        """Lazily yield prompts matching ``query`` in any of the ``by`` fields.

        Args:
            query: Substring (or pattern when ``regex``); None/empty matches all
            by: Any of "title", "content", "tag"
            regex: Treat ``query`` as a regular expression
            case_sensitive: Case-sensitive matching
            tags: Required tags; a prompt must carry all of them

        The candidate set is fixed when this method is called.
        """
        if isinstance(by, str):
            by = (by,)
        unknown = set(by) - set(SEARCH_FIELDS)
        if unknown:
            raise ValueError(f"Unknown search field(s): {', '.join(sorted(unknown))}")

        matcher = _build_matcher(query, regex, case_sensitive)
        wanted = _normalize_tags(tags or ())

        with self._lock:
            self._require_key()
            candidates = sorted(self._prompts.values(), key=lambda p: (p.title.casefold(), p.id))

        return (
            p.copy()
            for p in candidates
            if wanted <= p.tags and (matcher is None or _matches(p, by, matcher))
        )

    # ── Chains ───────────────────────────────────────────────────────

    def save_chain(self, title: str, steps: Sequence[StepSpec]) -> ChainDefinition:
        """Persist a new chain definition at version 1.

        Raises:
            ChainValidationError: Duplicate keys, or a callable condition
                that cannot be stored
        """
        title = title.strip()
        if not title:
            raise ValueError("Chain title cannot be empty")
        validate_steps(steps, require_serializable=True)

        with self._lock:
            self._require_key()
            now = utc_now()
            chain = ChainDefinition(
                id=self._new_id(),
                title=title,
                steps=list(steps),
                created_at=now,
                updated_at=now,
            ).copy()
            self._replace_chain(chain)

        self.audit.log_vault_event(
            EventType.CHAIN_SAVED,
            f"Chain saved: {chain.title}",
            details={"chain_id": chain.id, "steps": len(chain.steps)},
        )
        return chain.copy()

    def update_chain(self, chain_id: str, steps: Sequence[StepSpec]) -> ChainDefinition:
        """Replace a chain's steps, recording the prior step list as a version."""
        validate_steps(steps, require_serializable=True)
        with self._lock:
            current = self._chain_or_raise(chain_id)
            chain = current.copy()
            chain.versions.append(
                VersionRecord(current.current_version, current.steps_json(), current.updated_at)
            )
            chain.current_version += 1
            chain.steps = copy.deepcopy(list(steps))
            chain.updated_at = utc_now()
            self._replace_chain(chain)

        self.audit.log_vault_event(
            EventType.CHAIN_UPDATED,
            f"Chain updated: {chain.title}",
            details={"chain_id": chain.id, "version": chain.current_version},
        )
        return chain.copy()

    def rename_chain(self, chain_id: str, title: str) -> ChainDefinition:
        """Change a chain's title without creating a version."""
        title = title.strip()
        if not title:
            raise ValueError("Chain title cannot be empty")
        with self._lock:
            chain = self._chain_or_raise(chain_id).copy()
            old_title = chain.title
            chain.title = title
            chain.updated_at = utc_now()
            self._replace_chain(chain)

        self.audit.log_vault_event(
            EventType.CHAIN_RENAMED,
            f"Chain renamed: {old_title} -> {title}",
            details={"chain_id": chain_id},
        )
        return chain.copy()

    def get_chain(self, chain_id: str) -> ChainDefinition:
        with self._lock:
            return self._chain_or_raise(chain_id).copy()

    def find_chain(self, id_or_title: str) -> ChainDefinition:
        with self._lock:
            self._require_key()
            return _find_by_id_or_title(self._chains, id_or_title, "chain").copy()

    def list_chains(self) -> List[ChainDefinition]:
        with self._lock:
            self._require_key()
            chains = sorted(self._chains.values(), key=lambda c: (c.title.casefold(), c.id))
            return [c.copy() for c in chains]

    def delete_chain(self, chain_id: str) -> None:
        with self._lock:
            chain = self._chain_or_raise(chain_id)
            chains = dict(self._chains)
            del chains[chain_id]
            self._commit(self._prompts, chains)

        self.audit.log_vault_event(
            EventType.CHAIN_DELETED,
            f"Chain deleted: {chain.title}",
            details={"chain_id": chain_id},
        )

    # ── Snapshot, stats ──────────────────────────────────────────────

    def snapshot(self) -> VaultSnapshot:
        """Consistent read-only view for one chain run."""
        with self._lock:
            self._require_key()
            return VaultSnapshot(self._prompts)

    def stats(self, top_tags: int = 10) -> Dict[str, Any]:
        """Counts of prompts, chains and versions, plus the most used tags."""
        with self._lock:
            self._require_key()
            tag_counts = Counter(tag for p in self._prompts.values() for tag in p.tags)
            total_versions = sum(len(p.history()) for p in self._prompts.values())
            chain_steps = sum(len(c.steps) for c in self._chains.values())
            prompt_count = len(self._prompts)
            chain_count = len(self._chains)

        ranked = sorted(tag_counts.items(), key=lambda item: (-item[1], item[0]))
        return {
            "prompts": prompt_count,
            "chains": chain_count,
            "chain_steps": chain_steps,
            "versions": total_versions,
            "top_tags": ranked[:top_tags],
        }

    # ── Key rotation ─────────────────────────────────────────────────

    def rotate_key(
        self,
        old_secret: Secret,
        new_secret: Secret,
        kdf_params: Optional[KdfParams] = None,
    ) -> None:
        """Re-encrypt the whole vault under a new password or key.

        The on-disk container is decrypted with ``old_secret`` first; the
        new container (fresh salt and nonce) replaces it only once fully
        written, so the old one stays valid until then.

        Raises:
            AuthenticationFailed: ``old_secret`` does not open the vault
        """
        with self._lock:
            self._require_key()
            try:
                _, _, payload = unseal_with_secret(old_secret, self.path.read_bytes())
            except AuthenticationFailed:
                self.audit.log_vault_event(
                    EventType.VAULT_UNLOCK_FAILED,
                    "Key rotation refused: old secret rejected",
                    details={"path": str(self.path)},
                    severity=EventSeverity.ALERT,
                )
                raise

            prompts, chains = self._deserialize(payload)
            params = kdf_params or (
                self._header.kdf_params if self._header.uses_password else KdfParams()
            )
            header = ContainerHeader.for_secret(new_secret, params)
            self._commit(prompts, chains, key=header.derive_key(new_secret), header=header)

        self.audit.log_vault_event(
            EventType.VAULT_KEY_ROTATED,
            "Vault key rotated",
            details={"path": str(self.path), "password_protected": header.uses_password},
            severity=EventSeverity.ALERT,
        )
        logger.info(f"Rotated key for vault {self.path}")

    # ── Bundles ──────────────────────────────────────────────────────

    def export_bundle(self, out_path: Path, passphrase: str, ids: Optional[Iterable[str]] = None) -> int:
        """Write selected (default: all) prompts to a passphrase-encrypted bundle."""
        with self._lock:
            self._require_key()
            if ids is None:
                prompts = [p.copy() for p in self._prompts.values()]
            else:
                prompts = [self._prompt_or_raise(pid).copy() for pid in ids]

        count = write_bundle(Path(out_path), passphrase, prompts)
        self.audit.log_vault_event(
            EventType.VAULT_EXPORTED,
            f"Exported {count} prompt(s)",
            details={"path": str(out_path), "count": count},
        )
        return count

    def import_bundle(self, in_path: Path, passphrase: str) -> List[Prompt]:
        """Add the prompts of a bundle; ids that already exist are reassigned."""
        incoming = read_bundle(Path(in_path), passphrase)
        with self._lock:
            self._require_key()
            prompts = dict(self._prompts)
            imported = []
            for prompt in incoming:
                if prompt.id in prompts or prompt.id in self._chains or not _valid_id(prompt.id):
                    prompt.id = self._new_id_excluding(prompts)
                prompts[prompt.id] = prompt
                imported.append(prompt)
            self._commit(prompts, self._chains)

        self.audit.log_vault_event(
            EventType.VAULT_IMPORTED,
            f"Imported {len(imported)} prompt(s)",
            details={"path": str(in_path), "prompt_ids": [p.id for p in imported]},
        )
        return [p.copy() for p in imported]

    def _new_id_excluding(self, taken: Mapping[str, Any]) -> str:
        while True:
            candidate = self._new_id()
            if candidate not in taken:
                return candidate


# ── Module-level entry points ────────────────────────────────────────


def create_vault(
    path: Path,
    secret: Secret,
    kdf_params: KdfParams = KdfParams(),
    audit_logger: Optional[AuditLogger] = None,
) -> VaultStore:
    return VaultStore.create(path, secret, kdf_params=kdf_params, audit_logger=audit_logger)


def open_vault(
    path: Path,
    secret: Secret,
    audit_logger: Optional[AuditLogger] = None,
) -> VaultStore:
    return VaultStore.open(path, secret, audit_logger=audit_logger)


# ── Helpers ──────────────────────────────────────────────────────────


def _normalize_tags(tags: Iterable[str]) -> set:
    if isinstance(tags, str):
        tags = [tags]
    return {t.strip() for t in tags if t and t.strip()}


def _valid_id(ident: str) -> bool:
    return bool(ident) and all(c in _ID_ALPHABET for c in ident)


def _build_matcher(query: Optional[str], regex: bool, case_sensitive: bool):
    if not query:
        return None
    if regex:
        flags = 0 if case_sensitive else re.IGNORECASE
        try:
            pattern = re.compile(query, flags)
        except re.error as e:
            raise ValueError(f"Invalid search pattern {query!r}: {e}") from e
        return lambda text: pattern.search(text) is not None
    if case_sensitive:
        return lambda text: query in text
    needle = query.casefold()
    return lambda text: needle in text.casefold()


def _matches(prompt: Prompt, fields: Sequence[str], matcher) -> bool:
    for field_name in fields:
        if field_name == "title" and matcher(prompt.title):
            return True
        if field_name == "content" and matcher(prompt.content):
            return True
        if field_name == "tag" and any(matcher(tag) for tag in prompt.tags):
            return True
    return False
