# Prompt Vault - command line entry point
#
# Thin argparse front end over the library API. The vault secret comes
# from --password, then PROMPT_VAULT_PASSWORD, then the generated key file.

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional

from . import __version__
from .chain import ChainError, ChainExecutor, ChainMode, load_chain_yaml
from .core import AuditLogger, ConfigError, Settings, load_settings, resolve_secret
from .providers import ProviderFailure, close_providers, load_provider_registry
from .runner import render_prompt, run_prompt
from .templating import MissingVariable
from .vault import VaultError, VaultStore, create_vault, open_vault


def _parse_vars(pairs: Optional[List[str]]) -> Dict[str, str]:
    variables = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ConfigError(f"Expected --var key=value, got {pair!r}")
        variables[key] = value
    return variables


def _read_text(args) -> str:
    if getattr(args, "file", None):
        return Path(args.file).read_text(encoding="utf-8")
    if getattr(args, "content", None) is not None:
        return args.content
    return sys.stdin.read()


def _open(settings: Settings, args) -> VaultStore:
    secret = resolve_secret(settings, args.password)
    return open_vault(settings.vault_path, secret, audit_logger=AuditLogger(settings.audit_dir))


def _print_prompt_line(prompt) -> None:
    tags = ", ".join(sorted(prompt.tags))
    suffix = f"  [{tags}]" if tags else ""
    print(f"{prompt.id}  v{prompt.current_version}  {prompt.title}{suffix}")


# ── Commands ─────────────────────────────────────────────────────────


def cmd_init(settings: Settings, args) -> int:
    secret = resolve_secret(settings, args.password)
    create_vault(settings.vault_path, secret, audit_logger=AuditLogger(settings.audit_dir))
    print(f"Created vault at {settings.vault_path}")
    if isinstance(secret, bytes):
        print(f"No password given: the vault is protected by the key file {settings.key_file}.")
        print("Anyone who can read that file can read the vault.")
    return 0


def cmd_new(settings: Settings, args) -> int:
    store = _open(settings, args)
    prompt = store.create_prompt(args.title, _read_text(args), args.tag or ())
    print(prompt.id)
    return 0


def cmd_list(settings: Settings, args) -> int:
    store = _open(settings, args)
    for prompt in store.list_prompts(tags=args.tag or None):
        _print_prompt_line(prompt)
    return 0


def cmd_get(settings: Settings, args) -> int:
    store = _open(settings, args)
    prompt = store.find_prompt(args.id)
    if args.version is not None:
        content = prompt.content_at(args.version)
        if content is None:
            print(f"Prompt {prompt.id} has no version {args.version}", file=sys.stderr)
            return 1
        print(content)
    else:
        print(prompt.content)
    return 0


def cmd_search(settings: Settings, args) -> int:
    store = _open(settings, args)
    fields = ["title"]
    if args.content:
        fields.append("content")
    if args.tags_field:
        fields.append("tag")
    for prompt in store.search(
        args.query,
        by=fields,
        regex=args.regex,
        case_sensitive=args.case_sensitive,
        tags=args.tag or None,
    ):
        _print_prompt_line(prompt)
    return 0


def cmd_edit(settings: Settings, args) -> int:
    store = _open(settings, args)
    prompt = store.find_prompt(args.id)
    updated = store.edit_prompt(prompt.id, _read_text(args))
    print(f"{updated.id} is now at version {updated.current_version}")
    return 0


def cmd_history(settings: Settings, args) -> int:
    store = _open(settings, args)
    prompt = store.find_prompt(args.id)
    for record in store.history(prompt.id):
        marker = "*" if record.version_number == prompt.current_version else " "
        print(f"{marker} v{record.version_number}  {record.timestamp}  {len(record.content)} chars")
    return 0


def cmd_revert(settings: Settings, args) -> int:
    store = _open(settings, args)
    prompt = store.find_prompt(args.id)
    updated = store.revert_prompt(prompt.id, args.version)
    print(f"Reverted {updated.id} to v{args.version} (now v{updated.current_version})")
    return 0


def cmd_rename(settings: Settings, args) -> int:
    store = _open(settings, args)
    prompt = store.find_prompt(args.id)
    updated = store.rename_prompt(prompt.id, args.title)
    print(f"{updated.id} renamed to {updated.title}")
    return 0


def cmd_delete(settings: Settings, args) -> int:
    store = _open(settings, args)
    prompt = store.find_prompt(args.id)
    store.delete_prompt(prompt.id)
    print(f"Deleted {prompt.id}")
    return 0


def cmd_render(settings: Settings, args) -> int:
    store = _open(settings, args)
    print(render_prompt(store, args.id, _parse_vars(args.var)))
    return 0


def cmd_run(settings: Settings, args) -> int:
    store = _open(settings, args)
    providers = load_provider_registry(settings)
    provider = None
    if args.provider:
        if args.provider not in providers:
            raise ConfigError(f"Provider '{args.provider}' is not configured in {settings.config_path}")
        provider = providers[args.provider]

    async def _run():
        try:
            return await run_prompt(store, args.id, _parse_vars(args.var), provider)
        finally:
            await close_providers(providers)

    print(asyncio.run(_run()))
    return 0


def cmd_chain_new(settings: Settings, args) -> int:
    store = _open(settings, args)
    document = load_chain_yaml(Path(args.file))
    title = args.title or document.title or Path(args.file).stem
    chain = store.save_chain(title, document.steps)
    print(chain.id)
    return 0


def cmd_chain_list(settings: Settings, args) -> int:
    store = _open(settings, args)
    for chain in store.list_chains():
        print(f"{chain.id}  v{chain.current_version}  {chain.title}  ({len(chain.steps)} steps)")
    return 0


def cmd_chain_rename(settings: Settings, args) -> int:
    store = _open(settings, args)
    chain = store.find_chain(args.id)
    updated = store.rename_chain(chain.id, args.title)
    print(f"{updated.id} renamed to {updated.title}")
    return 0


def cmd_chain_delete(settings: Settings, args) -> int:
    store = _open(settings, args)
    chain = store.find_chain(args.id)
    store.delete_chain(chain.id)
    print(f"Deleted chain {chain.id}")
    return 0


def cmd_chain_run(settings: Settings, args) -> int:
    store = _open(settings, args)
    chain = store.find_chain(args.id)
    providers = load_provider_registry(settings)
    mode = ChainMode.STRICT if args.strict else ChainMode(settings.chain_mode)
    executor = ChainExecutor(
        providers,
        store=store,
        mode=mode,
        max_concurrency=settings.max_concurrency,
        default_provider=args.provider,
        audit_logger=store.audit,
    )

    async def _run():
        try:
            return await executor.run_chain(chain, _parse_vars(args.var))
        finally:
            await close_providers(providers)

    result = asyncio.run(_run())
    report = {
        "outputs": result.outputs,
        "failures": {f.key: f.message for f in result.failures},
        "skipped": result.skipped,
        "used_fallback": result.used_fallback,
    }
    print(json.dumps(report, indent=2, ensure_ascii=False))
    return 0 if result.ok else 2


def cmd_stats(settings: Settings, args) -> int:
    store = _open(settings, args)
    stats = store.stats()
    print(f"Prompts:  {stats['prompts']}")
    print(f"Versions: {stats['versions']}")
    print(f"Chains:   {stats['chains']} ({stats['chain_steps']} steps)")
    if stats["top_tags"]:
        print("Top tags:")
        for tag, count in stats["top_tags"]:
            print(f"  {tag}: {count}")
    return 0


def cmd_rotate_key(settings: Settings, args) -> int:
    old_secret = resolve_secret(settings, args.password)
    store = open_vault(settings.vault_path, old_secret, audit_logger=AuditLogger(settings.audit_dir))
    store.rotate_key(old_secret, args.new_password)
    print("Vault re-encrypted under the new password")
    return 0


def cmd_export(settings: Settings, args) -> int:
    store = _open(settings, args)
    count = store.export_bundle(Path(args.path), args.passphrase, ids=args.id or None)
    print(f"Exported {count} prompt(s) to {args.path}")
    return 0


def cmd_import(settings: Settings, args) -> int:
    store = _open(settings, args)
    imported = store.import_bundle(Path(args.path), args.passphrase)
    for prompt in imported:
        _print_prompt_line(prompt)
    print(f"Imported {len(imported)} prompt(s)")
    return 0


# ── Parser ───────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prompt-vault",
        description="Prompt Vault - encrypted, versioned prompt storage and chain runner",
    )
    parser.add_argument("--version", action="version", version=f"prompt-vault {__version__}")
    parser.add_argument(
        "--password",
        help="Master password (default: PROMPT_VAULT_PASSWORD, then the key file)",
    )
    parser.add_argument("--env-file", help="Load settings from this .env file")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create a new vault").set_defaults(func=cmd_init)

    p = sub.add_parser("new", help="Store a new prompt (content from --file, --content or stdin)")
    p.add_argument("title")
    p.add_argument("--content")
    p.add_argument("--file")
    p.add_argument("--tag", action="append", help="Tag (repeatable)")
    p.set_defaults(func=cmd_new)

    p = sub.add_parser("list", help="List prompts")
    p.add_argument("--tag", action="append", help="Only prompts carrying all given tags")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("get", help="Print a prompt's content")
    p.add_argument("id", help="Prompt id or title")
    p.add_argument("--version", type=int)
    p.set_defaults(func=cmd_get)

    p = sub.add_parser("search", help="Search prompts")
    p.add_argument("query")
    p.add_argument("--content", action="store_true", help="Also match content")
    p.add_argument("--tags", dest="tags_field", action="store_true", help="Also match tag names")
    p.add_argument("--regex", action="store_true")
    p.add_argument("--case-sensitive", action="store_true")
    p.add_argument("--tag", action="append", help="Tag filter (repeatable, AND-combined)")
    p.set_defaults(func=cmd_search)

    p = sub.add_parser("edit", help="Replace a prompt's content (new version)")
    p.add_argument("id")
    p.add_argument("--content")
    p.add_argument("--file")
    p.set_defaults(func=cmd_edit)

    p = sub.add_parser("history", help="Show a prompt's versions")
    p.add_argument("id")
    p.set_defaults(func=cmd_history)

    p = sub.add_parser("revert", help="Restore an earlier version (recorded as a new version)")
    p.add_argument("id")
    p.add_argument("version", type=int)
    p.set_defaults(func=cmd_revert)

    p = sub.add_parser("rename", help="Change a prompt's title (no new version)")
    p.add_argument("id")
    p.add_argument("title")
    p.set_defaults(func=cmd_rename)

    p = sub.add_parser("delete", help="Delete a prompt")
    p.add_argument("id")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("render", help="Render a prompt with variables")
    p.add_argument("id")
    p.add_argument("--var", action="append", metavar="KEY=VALUE")
    p.set_defaults(func=cmd_render)

    p = sub.add_parser("run", help="Render a prompt and send it to a provider")
    p.add_argument("id")
    p.add_argument("--var", action="append", metavar="KEY=VALUE")
    p.add_argument("--provider", help="Provider name from config.toml")
    p.set_defaults(func=cmd_run)

    chain = sub.add_parser("chain", help="Manage and run chains")
    chain_sub = chain.add_subparsers(dest="chain_command", required=True)

    p = chain_sub.add_parser("new", help="Store a chain from a YAML file")
    p.add_argument("--file", required=True)
    p.add_argument("--title")
    p.set_defaults(func=cmd_chain_new)

    chain_sub.add_parser("list", help="List chains").set_defaults(func=cmd_chain_list)

    p = chain_sub.add_parser("rename", help="Change a chain's title")
    p.add_argument("id")
    p.add_argument("title")
    p.set_defaults(func=cmd_chain_rename)

    p = chain_sub.add_parser("delete", help="Delete a chain")
    p.add_argument("id")
    p.set_defaults(func=cmd_chain_delete)

    p = chain_sub.add_parser("run", help="Run a stored chain")
    p.add_argument("id")
    p.add_argument("--var", action="append", metavar="KEY=VALUE")
    p.add_argument("--strict", action="store_true", help="Stop after the first failed phase")
    p.add_argument("--provider", help="Default provider for steps that name none")
    p.set_defaults(func=cmd_chain_run)

    sub.add_parser("stats", help="Vault statistics").set_defaults(func=cmd_stats)

    p = sub.add_parser("rotate-key", help="Re-encrypt the vault under a new password")
    p.add_argument("--new-password", required=True)
    p.set_defaults(func=cmd_rotate_key)

    p = sub.add_parser("export", help="Write prompts to an encrypted bundle")
    p.add_argument("path")
    p.add_argument("--passphrase", required=True)
    p.add_argument("--id", action="append", help="Only these prompt ids (repeatable)")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("import", help="Add prompts from an encrypted bundle")
    p.add_argument("path")
    p.add_argument("--passphrase", required=True)
    p.set_defaults(func=cmd_import)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for prompt-vault."""
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(Path(args.env_file) if args.env_file else None)
        return args.func(settings, args)
    except (
        VaultError,
        ChainError,
        MissingVariable,
        ProviderFailure,
        ConfigError,
        ValueError,
        OSError,
    ) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
