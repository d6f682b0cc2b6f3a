"""Tests for the prompt-vault command line."""

import json
import os

import pytest

from prompt_vault.__main__ import build_parser, main
from prompt_vault.providers.base import CallableProvider
from prompt_vault.vault.bundle import BundleCrypto

CHAIN_YAML = """
title: Greeting chain
steps:
  - id: greeting
    prompt: Greet
    provider: echo
  - parallel:
      - id: shout
        raw: "{{greeting}}!"
        provider: echo
      - id: broken
        raw: "x"
        provider: ghost
"""


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    """Isolated PROMPT_VAULT_HOME with key-file auth."""
    saved = dict(os.environ)
    for var in list(os.environ):
        if var.startswith("PROMPT_VAULT_"):
            del os.environ[var]
    os.environ["PROMPT_VAULT_HOME"] = str(tmp_path / "home")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(BundleCrypto, "PBKDF2_ITERATIONS", 1000)
    monkeypatch.setattr(
        "prompt_vault.__main__.load_provider_registry",
        lambda settings: {"echo": CallableProvider(lambda text: f"<{text}>", name="echo")},
    )
    yield tmp_path
    os.environ.clear()
    os.environ.update(saved)


def run(capsys, *argv):
    code = main(list(argv))
    out, err = capsys.readouterr()
    return code, out, err


def _new(capsys, title, content, *extra):
    code, out, _ = run(capsys, "new", title, "--content", content, *extra)
    assert code == 0
    return out.strip()


class TestCli:
    def test_init_creates_key_file_vault(self, cli_env, capsys):
        code, out, _ = run(capsys, "init")
        assert code == 0
        assert (cli_env / "home" / "vault.pvault").exists()
        assert (cli_env / "home" / "keys" / "key.bin").exists()
        assert "key file" in out

    def test_init_twice_fails(self, cli_env, capsys):
        run(capsys, "init")
        code, _, err = run(capsys, "init")
        assert code == 1
        assert "already exists" in err

    def test_prompt_lifecycle(self, cli_env, capsys):
        run(capsys, "init")
        pid = _new(capsys, "Greet", "Hello {{name}}", "--tag", "demo")

        code, out, _ = run(capsys, "list", "--tag", "demo")
        assert pid in out and "Greet" in out

        code, out, _ = run(capsys, "render", "greet", "--var", "name=Ann")
        assert out.strip() == "Hello Ann"

        run(capsys, "edit", pid, "--content", "Hi {{name}}")
        code, out, _ = run(capsys, "get", pid)
        assert out.strip() == "Hi {{name}}"
        code, out, _ = run(capsys, "get", pid, "--version", "1")
        assert out.strip() == "Hello {{name}}"

        code, out, _ = run(capsys, "history", pid)
        assert len(out.strip().splitlines()) == 2

        code, out, _ = run(capsys, "revert", pid, "1")
        assert "now v3" in out

        code, out, _ = run(capsys, "search", "hello", "--content")
        assert pid in out

        code, out, _ = run(capsys, "delete", pid)
        assert code == 0
        code, out, _ = run(capsys, "list")
        assert out == ""

    def test_new_from_file(self, cli_env, capsys):
        run(capsys, "init")
        source = cli_env / "prompt.txt"
        source.write_text("From file", encoding="utf-8")
        code, out, _ = run(capsys, "new", "Filed", "--file", str(source))
        code, out, _ = run(capsys, "get", "Filed")
        assert out.strip() == "From file"

    def test_render_missing_variable(self, cli_env, capsys):
        run(capsys, "init")
        _new(capsys, "Greet", "Hello {{name}}")
        code, _, err = run(capsys, "render", "Greet")
        assert code == 1
        assert "name" in err

    def test_bad_var_syntax(self, cli_env, capsys):
        run(capsys, "init")
        _new(capsys, "Greet", "Hello")
        code, _, err = run(capsys, "render", "Greet", "--var", "novalue")
        assert code == 1

    def test_unknown_prompt(self, cli_env, capsys):
        run(capsys, "init")
        code, _, err = run(capsys, "get", "missing")
        assert code == 1
        assert "not found" in err

    def test_run_with_provider(self, cli_env, capsys):
        run(capsys, "init")
        _new(capsys, "Greet", "Hello {{name}}")
        code, out, _ = run(capsys, "run", "Greet", "--var", "name=Ann", "--provider", "echo")
        assert out.strip() == "<Hello Ann>"

    def test_run_unknown_provider(self, cli_env, capsys):
        run(capsys, "init")
        _new(capsys, "Greet", "Hello")
        code, _, err = run(capsys, "run", "Greet", "--provider", "nope")
        assert code == 1

    def test_chain_new_list_run(self, cli_env, capsys):
        run(capsys, "init")
        _new(capsys, "Greet", "Hello {{name}}")
        chain_file = cli_env / "chain.yaml"
        chain_file.write_text(CHAIN_YAML, encoding="utf-8")

        code, out, _ = run(capsys, "chain", "new", "--file", str(chain_file))
        assert code == 0
        chain_id = out.strip()

        code, out, _ = run(capsys, "chain", "list")
        assert "Greeting chain" in out and "3 steps" in out

        code, out, _ = run(capsys, "chain", "run", chain_id, "--var", "name=Ann")
        report = json.loads(out)
        assert code == 2
        assert report["outputs"] == {"greeting": "<Hello Ann>", "shout": "<<Hello Ann>!>"}
        assert list(report["failures"]) == ["broken"]

    def test_chain_run_strict(self, cli_env, capsys):
        run(capsys, "init")
        _new(capsys, "Greet", "Hello {{name}}")
        chain_file = cli_env / "chain.yaml"
        chain_file.write_text(CHAIN_YAML, encoding="utf-8")
        run(capsys, "chain", "new", "--file", str(chain_file))

        code, _, err = run(capsys, "chain", "run", "Greeting chain", "--var", "name=Ann", "--strict")
        assert code == 1
        assert "broken" in err

    def test_stats(self, cli_env, capsys):
        run(capsys, "init")
        _new(capsys, "A", "x", "--tag", "t1")
        _new(capsys, "B", "x", "--tag", "t1")
        code, out, _ = run(capsys, "stats")
        assert "Prompts:  2" in out
        assert "t1: 2" in out

    def test_rotate_key_to_password(self, cli_env, capsys):
        run(capsys, "init")
        _new(capsys, "A", "x")
        code, _, _ = run(capsys, "rotate-key", "--new-password", "pw")
        assert code == 0

        code, _, err = run(capsys, "list")
        assert code == 1
        assert "Authentication failed" in err
        code, out, _ = run(capsys, "--password", "pw", "list")
        assert "A" in out

    def test_export_import(self, cli_env, capsys):
        run(capsys, "init")
        _new(capsys, "A", "x")
        bundle = cli_env / "out.pvb"
        code, out, _ = run(capsys, "export", str(bundle), "--passphrase", "pp")
        assert "Exported 1" in out
        code, out, _ = run(capsys, "import", str(bundle), "--passphrase", "pp")
        assert "Imported 1" in out
        code, out, _ = run(capsys, "list")
        assert len(out.strip().splitlines()) == 2

    def test_rename_prompt(self, cli_env, capsys):
        run(capsys, "init")
        pid = _new(capsys, "Old", "x")
        code, out, _ = run(capsys, "rename", pid, "New")
        assert code == 0
        code, out, _ = run(capsys, "list")
        assert "New" in out and "v1" in out

    def test_chain_rename_and_delete(self, cli_env, capsys):
        run(capsys, "init")
        _new(capsys, "Greet", "Hello {{name}}")
        chain_file = cli_env / "chain.yaml"
        chain_file.write_text(CHAIN_YAML, encoding="utf-8")
        run(capsys, "chain", "new", "--file", str(chain_file))

        code, _, _ = run(capsys, "chain", "rename", "Greeting chain", "Hello chain")
        assert code == 0
        code, out, _ = run(capsys, "chain", "list")
        assert "Hello chain" in out

        code, _, _ = run(capsys, "chain", "delete", "hello chain")
        assert code == 0
        code, out, _ = run(capsys, "chain", "list")
        assert out == ""

    def test_empty_title_reports_error(self, cli_env, capsys):
        run(capsys, "init")
        code, _, err = run(capsys, "new", "   ", "--content", "x")
        assert code == 1
        assert err.startswith("Error:")

    def test_invalid_regex_reports_error(self, cli_env, capsys):
        run(capsys, "init")
        _new(capsys, "A", "x")
        code, _, err = run(capsys, "search", "([", "--regex")
        assert code == 1
        assert err.startswith("Error:")

    def test_missing_input_file_reports_error(self, cli_env, capsys):
        run(capsys, "init")
        code, _, err = run(capsys, "new", "A", "--file", str(cli_env / "nope.txt"))
        assert code == 1
        assert err.startswith("Error:")

    def test_parser_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])
