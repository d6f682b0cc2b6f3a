"""Tests for VaultStore: CRUD, versioning, search, rotation, persistence."""

import os
import re
import struct

import pytest

from prompt_vault.chain.exceptions import ChainValidationError
from prompt_vault.chain.steps import Condition, PromptSource, StepSpec
from prompt_vault.vault import (
    AmbiguousTitle,
    AuthenticationFailed,
    CorruptContainer,
    InvalidVersion,
    NotFound,
    VaultExists,
    VaultLocked,
    create_vault,
    open_vault,
)
from prompt_vault.vault.encryption import EncryptionService

PASSWORD = "correct horse"


def _reopen(store, secret=PASSWORD):
    return open_vault(store.path, secret)


# ── Lifecycle Tests ──────────────────────────────────────────────────


class TestLifecycle:
    def test_create_writes_container(self, store, vault_path):
        assert vault_path.exists()
        assert vault_path.read_bytes().startswith(b"PVLT")

    def test_create_over_existing_refused(self, store, vault_path, fast_kdf):
        with pytest.raises(VaultExists):
            create_vault(vault_path, PASSWORD, kdf_params=fast_kdf)

    def test_open_missing(self, tmp_path):
        with pytest.raises(NotFound):
            open_vault(tmp_path / "nothing.pvault", PASSWORD)

    def test_open_wrong_password(self, store):
        with pytest.raises(AuthenticationFailed):
            _reopen(store, "wrong horse")

    def test_open_garbage(self, tmp_path):
        path = tmp_path / "garbage.pvault"
        path.write_bytes(b"this is not a vault at all, not even close")
        with pytest.raises(CorruptContainer):
            open_vault(path, PASSWORD)

    @pytest.mark.parametrize("log2_n, r", [(60, 8), (10, 2**31)])
    def test_open_with_huge_scrypt_cost_is_corrupt(self, store, vault_path, log2_n, r):
        blob = vault_path.read_bytes()
        offset = 7 + blob[6]
        vault_path.write_bytes(
            blob[:offset] + struct.pack(">BII", log2_n, r, 1) + blob[offset + 9:]
        )
        with pytest.raises(CorruptContainer):
            open_vault(vault_path, PASSWORD)

    def test_key_file_vault(self, tmp_path):
        key = EncryptionService.generate_key()
        store = create_vault(tmp_path / "k.pvault", key)
        store.create_prompt("T", "body")
        assert [p.title for p in open_vault(store.path, key).list_prompts()] == ["T"]
        with pytest.raises(AuthenticationFailed):
            open_vault(store.path, EncryptionService.generate_key())

    def test_close_locks_handle(self, store):
        store.close()
        assert not store.is_open
        with pytest.raises(VaultLocked):
            store.list_prompts()

    def test_context_manager_closes(self, vault_path, fast_kdf):
        with create_vault(vault_path, PASSWORD, kdf_params=fast_kdf) as store:
            store.create_prompt("T", "x")
        assert not store.is_open

    def test_persists_across_open(self, store):
        prompt = store.create_prompt("Greeting", "Hello {{name}}", ["demo", "greet"])
        reopened = _reopen(store)
        loaded = reopened.get_prompt(prompt.id)
        assert loaded.content == "Hello {{name}}"
        assert loaded.tags == {"demo", "greet"}
        assert loaded.current_version == 1


# ── Prompt CRUD Tests ────────────────────────────────────────────────


class TestPromptCrud:
    def test_create_assigns_id(self, store):
        prompt = store.create_prompt("A", "a")
        assert re.fullmatch(r"[a-z0-9]{8}", prompt.id)
        assert prompt.current_version == 1
        assert prompt.versions == []

    def test_ids_unique(self, store):
        ids = {store.create_prompt(f"P{i}", "x").id for i in range(25)}
        assert len(ids) == 25

    def test_empty_title_rejected(self, store):
        with pytest.raises(ValueError):
            store.create_prompt("   ", "x")

    def test_get_unknown(self, store):
        with pytest.raises(NotFound) as exc:
            store.get_prompt("zzzzzzzz")
        assert exc.value.ident == "zzzzzzzz"

    def test_returned_prompt_is_a_copy(self, store):
        prompt = store.create_prompt("A", "a")
        prompt.content = "mutated"
        assert store.get_prompt(prompt.id).content == "a"

    def test_find_by_title_case_insensitive(self, store):
        prompt = store.create_prompt("Summarizer", "x")
        assert store.find_prompt("summarizer").id == prompt.id
        assert store.find_prompt(prompt.id).id == prompt.id

    def test_find_ambiguous_title(self, store):
        store.create_prompt("Dup", "1")
        store.create_prompt("dup", "2")
        with pytest.raises(AmbiguousTitle) as exc:
            store.find_prompt("DUP")
        assert len(exc.value.matches) == 2

    def test_list_sorted_and_filtered(self, store):
        store.create_prompt("beta", "x", ["rust"])
        store.create_prompt("Alpha", "x", ["rust", "api"])
        store.create_prompt("gamma", "x", ["api"])
        assert [p.title for p in store.list_prompts()] == ["Alpha", "beta", "gamma"]
        assert [p.title for p in store.list_prompts(tags=["rust", "api"])] == ["Alpha"]

    def test_delete(self, store):
        prompt = store.create_prompt("A", "a")
        store.delete_prompt(prompt.id)
        with pytest.raises(NotFound):
            _reopen(store).get_prompt(prompt.id)

    def test_rename_and_tags_do_not_version(self, store):
        prompt = store.create_prompt("A", "a", ["x"])
        store.rename_prompt(prompt.id, "B")
        updated = store.set_tags(prompt.id, ["y", " z "])
        assert updated.title == "B"
        assert updated.tags == {"y", "z"}
        assert updated.current_version == 1


# ── Versioning Tests ─────────────────────────────────────────────────


class TestVersioning:
    def test_edit_records_prior_content(self, store):
        prompt = store.create_prompt("A", "v1")
        edited = store.edit_prompt(prompt.id, "v2")
        assert edited.current_version == 2
        assert edited.content == "v2"
        assert [(r.version_number, r.content) for r in edited.versions] == [(1, "v1")]

    def test_history_after_n_edits(self, store):
        prompt = store.create_prompt("A", "c0")
        for i in range(1, 6):
            store.edit_prompt(prompt.id, f"c{i}")
        history = store.history(prompt.id)
        assert len(history) == 6
        assert [r.version_number for r in history] == [1, 2, 3, 4, 5, 6]
        assert history[-1].content == "c5"

    def test_identical_edit_is_noop(self, store, vault_path):
        prompt = store.create_prompt("A", "same")
        before = vault_path.read_bytes()
        result = store.edit_prompt(prompt.id, "same")
        assert result.current_version == 1
        assert vault_path.read_bytes() == before

    def test_edit_unknown(self, store):
        with pytest.raises(NotFound):
            store.edit_prompt("zzzzzzzz", "x")

    def test_revert_restores_exact_content(self, store):
        original = "Line one\n  {{var}}\ttrailing  \n"
        prompt = store.create_prompt("A", original)
        store.edit_prompt(prompt.id, "second")
        store.edit_prompt(prompt.id, "third")
        reverted = store.revert_prompt(prompt.id, 1)
        assert reverted.content == original
        assert reverted.current_version == 4
        assert len(store.history(prompt.id)) == 4

    def test_revert_never_truncates(self, store):
        prompt = store.create_prompt("A", "one")
        store.edit_prompt(prompt.id, "two")
        store.revert_prompt(prompt.id, 1)
        contents = [r.content for r in store.history(prompt.id)]
        assert contents == ["one", "two", "one"]

    @pytest.mark.parametrize("version", [0, 3, -1])
    def test_revert_out_of_range(self, store, version):
        prompt = store.create_prompt("A", "one")
        store.edit_prompt(prompt.id, "two")
        with pytest.raises(InvalidVersion) as exc:
            store.revert_prompt(prompt.id, version)
        assert exc.value.current_version == 2

    def test_history_survives_reopen(self, store):
        prompt = store.create_prompt("A", "one")
        store.edit_prompt(prompt.id, "two")
        history = _reopen(store).history(prompt.id)
        assert [r.content for r in history] == ["one", "two"]

    def test_prune_history(self, store):
        prompt = store.create_prompt("A", "0")
        for i in range(1, 5):
            store.edit_prompt(prompt.id, str(i))
        removed = store.prune_history(prompt.id, keep=1)
        assert removed == 3
        history = store.history(prompt.id)
        assert [r.version_number for r in history] == [4, 5]
        with pytest.raises(InvalidVersion):
            store.revert_prompt(prompt.id, 1)


# ── Search Tests ─────────────────────────────────────────────────────


class TestSearch:
    @pytest.fixture
    def seeded(self, store):
        store.create_prompt("Rust API guide", "Explain {{topic}} in Rust", ["rust", "api"])
        store.create_prompt("Rust basics", "Ownership and borrowing", ["rust"])
        store.create_prompt("Python API", "Explain FastAPI", ["python", "api"])
        return store

    def test_is_lazy_iterator(self, seeded):
        result = seeded.search("rust")
        assert iter(result) is result
        assert next(result).title == "Rust API guide"

    def test_title_substring_case_insensitive(self, seeded):
        assert [p.title for p in seeded.search("RUST")] == ["Rust API guide", "Rust basics"]

    def test_case_sensitive(self, seeded):
        assert list(seeded.search("RUST", case_sensitive=True)) == []

    def test_content_search(self, seeded):
        titles = [p.title for p in seeded.search("explain", by=["content"])]
        assert titles == ["Python API", "Rust API guide"]

    def test_title_only_ignores_content(self, seeded):
        assert list(seeded.search("borrowing")) == []

    def test_regex(self, seeded):
        titles = [p.title for p in seeded.search(r"^Rust\s+b", regex=True)]
        assert titles == ["Rust basics"]

    def test_invalid_regex(self, seeded):
        with pytest.raises(ValueError):
            list(seeded.search("(", regex=True))

    def test_tag_filter_is_superset(self, seeded):
        titles = {p.title for p in seeded.search(tags={"rust", "api"})}
        assert titles == {"Rust API guide"}

    def test_tag_field_match(self, seeded):
        titles = [p.title for p in seeded.search("pyth", by="tag")]
        assert titles == ["Python API"]

    def test_unknown_field(self, seeded):
        with pytest.raises(ValueError):
            seeded.search("x", by=["body"])


# ── Persistence Tests ────────────────────────────────────────────────


class TestPersistence:
    def test_each_mutation_rewrites_container(self, store, vault_path):
        seen = {vault_path.read_bytes()}
        prompt = store.create_prompt("A", "1")
        seen.add(vault_path.read_bytes())
        store.edit_prompt(prompt.id, "2")
        seen.add(vault_path.read_bytes())
        assert len(seen) == 3

    def test_no_temp_files_left(self, store, vault_path):
        store.create_prompt("A", "1")
        files = [p.name for p in vault_path.parent.iterdir() if p.is_file()]
        assert files == [vault_path.name]

    def test_failed_write_keeps_old_state(self, store, vault_path, monkeypatch):
        prompt = store.create_prompt("A", "before")
        before = vault_path.read_bytes()

        def boom(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", boom)
        with pytest.raises(OSError):
            store.edit_prompt(prompt.id, "after")
        monkeypatch.undo()

        assert vault_path.read_bytes() == before
        assert store.get_prompt(prompt.id).content == "before"
        assert _reopen(store).get_prompt(prompt.id).content == "before"
        leftovers = [p for p in vault_path.parent.iterdir() if p.name.startswith(".") or p.suffix == ".tmp"]
        assert leftovers == []


# ── Key Rotation Tests ───────────────────────────────────────────────


class TestRotateKey:
    def test_rotate_password(self, store):
        prompt = store.create_prompt("A", "secret text", ["t"])
        store.edit_prompt(prompt.id, "secret text v2")
        store.rotate_key(PASSWORD, "new password")

        with pytest.raises(AuthenticationFailed):
            _reopen(store, PASSWORD)
        reopened = _reopen(store, "new password")
        loaded = reopened.get_prompt(prompt.id)
        assert loaded.content == "secret text v2"
        assert [r.content for r in reopened.history(prompt.id)] == ["secret text", "secret text v2"]

    def test_rotate_changes_salt(self, store, vault_path):
        old_salt = vault_path.read_bytes()[7:23]
        store.rotate_key(PASSWORD, "new password")
        assert vault_path.read_bytes()[7:23] != old_salt

    def test_handle_keeps_working_after_rotate(self, store):
        store.rotate_key(PASSWORD, "new password")
        prompt = store.create_prompt("After", "x")
        assert _reopen(store, "new password").get_prompt(prompt.id).title == "After"

    def test_wrong_old_password_leaves_vault_intact(self, store, vault_path):
        store.create_prompt("A", "x")
        before = vault_path.read_bytes()
        with pytest.raises(AuthenticationFailed):
            store.rotate_key("not it", "new password")
        assert vault_path.read_bytes() == before
        assert len(_reopen(store).list_prompts()) == 1

    def test_rotate_to_key_file(self, store):
        store.create_prompt("A", "x")
        key = EncryptionService.generate_key()
        store.rotate_key(PASSWORD, key)
        assert len(open_vault(store.path, key).list_prompts()) == 1


# ── Chain Storage Tests ──────────────────────────────────────────────


class TestChains:
    def _steps(self):
        return [
            StepSpec("topic", PromptSource.literal("Topic of {{text}}"), provider_ref="p"),
            StepSpec("a", PromptSource.stored("Summarizer"), provider_ref="p", group="g"),
            StepSpec(
                "b",
                PromptSource.literal("kw {{topic}}"),
                provider_ref="p",
                group="g",
                condition=Condition("topic", contains="rust"),
            ),
        ]

    def test_save_and_reload(self, store):
        chain = store.save_chain("Digest", self._steps())
        loaded = _reopen(store).get_chain(chain.id)
        assert loaded.title == "Digest"
        assert [s.key for s in loaded.steps] == ["topic", "a", "b"]
        assert loaded.steps[2].condition == Condition("topic", contains="rust")

    def test_callable_condition_not_storable(self, store):
        steps = [StepSpec("x", PromptSource.literal("x"), condition=lambda ctx: True)]
        with pytest.raises(ChainValidationError):
            store.save_chain("Bad", steps)

    def test_duplicate_keys_rejected(self, store):
        steps = [StepSpec("x", PromptSource.literal("1")), StepSpec("x", PromptSource.literal("2"))]
        with pytest.raises(ChainValidationError):
            store.save_chain("Dup", steps)

    def test_update_versions_steps(self, store):
        chain = store.save_chain("Digest", self._steps())
        updated = store.update_chain(chain.id, self._steps()[:1])
        assert updated.current_version == 2
        assert [s.key for s in updated.steps_at(1)] == ["topic", "a", "b"]
        assert [s.key for s in updated.steps_at(2)] == ["topic"]

    def test_find_list_delete(self, store):
        chain = store.save_chain("Digest", self._steps())
        store.save_chain("Another", self._steps())
        assert store.find_chain("digest").id == chain.id
        assert [c.title for c in store.list_chains()] == ["Another", "Digest"]
        store.delete_chain(chain.id)
        with pytest.raises(NotFound):
            store.get_chain(chain.id)

    def test_rename_chain_keeps_version(self, store):
        chain = store.save_chain("Digest", self._steps())
        renamed = store.rename_chain(chain.id, "  Daily digest ")
        assert renamed.title == "Daily digest"
        assert renamed.current_version == 1
        assert _reopen(store).find_chain("daily digest").id == chain.id
        with pytest.raises(ValueError):
            store.rename_chain(chain.id, " ")
        with pytest.raises(NotFound):
            store.rename_chain("zzzzzzzz", "X")


# ── Snapshot & Stats Tests ───────────────────────────────────────────


class TestSnapshotAndStats:
    def test_snapshot_is_isolated_from_edits(self, store):
        prompt = store.create_prompt("A", "old")
        snap = store.snapshot()
        store.edit_prompt(prompt.id, "new")
        assert snap.find_prompt("A").content == "old"
        assert store.snapshot().find_prompt("A").content == "new"

    def test_snapshot_not_found(self, store):
        with pytest.raises(NotFound):
            store.snapshot().get_prompt("nope")

    def test_stats(self, store):
        a = store.create_prompt("A", "1", ["x", "y"])
        store.create_prompt("B", "1", ["x"])
        store.edit_prompt(a.id, "2")
        store.save_chain("C", [StepSpec("k", PromptSource.literal("t"))])
        stats = store.stats()
        assert stats["prompts"] == 2
        assert stats["chains"] == 1
        assert stats["chain_steps"] == 1
        assert stats["versions"] == 3
        assert stats["top_tags"] == [("x", 2), ("y", 1)]

    def test_stats_versions_follow_pruned_history(self, store):
        prompt = store.create_prompt("A", "c0")
        for i in range(1, 5):
            store.edit_prompt(prompt.id, f"c{i}")
        assert store.stats()["versions"] == 5
        store.prune_history(prompt.id, keep=1)
        assert store.stats()["versions"] == len(store.history(prompt.id)) == 2

    def test_stats_top_tags_limit(self, store):
        for i in range(12):
            store.create_prompt(f"P{i}", "x", [f"tag{i:02d}"])
        assert len(store.stats()["top_tags"]) == 10
