# Main Entry Point - Command Line Interface
#
# Every command opens the vault named by the CHAFF_VAULT_* settings
# (or --data-dir), performs one operation and exits. Commands that touch
# items prompt for the master password and unlock for that call only.

import argparse
import asyncio
import getpass
import json
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .core import VaultConfig, VaultError
from .vault import VaultManager, VaultSession
from .vault.generator import generate_password, is_strong_password, password_strength
from .vault.records import ItemType


def _read_password(args, prompt: str = "Master password: ") -> str:
    if getattr(args, "password_stdin", False):
        return sys.stdin.readline().rstrip("\n")
    return getpass.getpass(prompt)


async def _unlock(manager: VaultManager, args) -> Optional[VaultSession]:
    result = await manager.unlock_vault(_read_password(args))
    if not result.ok:
        print(f"Error: {result.message}", file=sys.stderr)
        return None
    return result.session


async def cmd_init(manager: VaultManager, args) -> int:
    password = _read_password(args, "New master password: ")
    if not getattr(args, "password_stdin", False):
        if getpass.getpass("Confirm master password: ") != password:
            print("Error: Passwords do not match", file=sys.stderr)
            return 1
    if not is_strong_password(password):
        print(
            "Error: Password must be at least 8 characters with at least one number, "
            "one uppercase letter, and one special character",
            file=sys.stderr,
        )
        return 1
    if not await manager.initialize_vault(password):
        print("Error: Failed to create vault (see audit log)", file=sys.stderr)
        return 1
    print("Vault created successfully!")
    return 0


async def cmd_status(manager: VaultManager, args) -> int:
    print(json.dumps({
        "vault_exists": await manager.is_vault_present(),
        "is_initialized": await manager.is_vault_initialized(),
        "state": (await manager.state()).value,
        "db_path": str(manager.config.db_path),
    }, indent=2))
    return 0


async def cmd_add(manager: VaultManager, args) -> int:
    data = json.loads(args.data) if args.data else {}
    if not isinstance(data, dict):
        print("Error: --data must be a JSON object", file=sys.stderr)
        return 1
    session = await _unlock(manager, args)
    if session is None:
        return 1
    try:
        item_id = await manager.create_item(session, args.name, args.type, data)
    finally:
        await manager.lock_vault()
    print(item_id)
    return 0


async def cmd_get(manager: VaultManager, args) -> int:
    session = await _unlock(manager, args)
    if session is None:
        return 1
    try:
        item = await manager.read_item(session, args.item_id)
    finally:
        await manager.lock_vault()
    if item is None:
        print(f"Error: Item not found: {args.item_id}", file=sys.stderr)
        return 1
    print(json.dumps(item.to_dict(), indent=2))
    return 0


async def cmd_list(manager: VaultManager, args) -> int:
    session = await _unlock(manager, args)
    if session is None:
        return 1
    try:
        items = await manager.list_items(session)
    finally:
        await manager.lock_vault()
    for item in items:
        print(f"{item.id}\t{item.type}\t{item.name}")
    return 0


async def cmd_delete(manager: VaultManager, args) -> int:
    session = await _unlock(manager, args)
    if session is None:
        return 1
    try:
        await manager.delete_item(session, args.item_id)
    finally:
        await manager.lock_vault()
    print("Item deleted")
    return 0


async def cmd_export(manager: VaultManager, args) -> int:
    text = await manager.exporter.export_json()
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Exported to {args.output}")
    else:
        print(text)
    return 0


async def cmd_import(manager: VaultManager, args) -> int:
    text = Path(args.input).read_text(encoding="utf-8")
    counts = await manager.exporter.import_json(text)
    print(f"Imported {counts['metaCount']} metadata entries and {counts['dataCount']} items")
    return 0


async def cmd_audit(manager: VaultManager, args) -> int:
    for event in await manager.query_audit_log(limit=args.limit, offset=args.offset):
        print(json.dumps(event.to_dict()))
    return 0


def cmd_generate(args) -> int:
    password = generate_password(
        length=args.length,
        uppercase=not args.no_uppercase,
        lowercase=not args.no_lowercase,
        numbers=not args.no_numbers,
        symbols=not args.no_symbols,
        exclude_similar=args.exclude_similar,
        exclude_ambiguous=args.exclude_ambiguous,
    )
    print(password)
    print(f"strength: {password_strength(password)}/100", file=sys.stderr)
    return 0


ASYNC_COMMANDS = {
    "init": cmd_init,
    "status": cmd_status,
    "add": cmd_add,
    "get": cmd_get,
    "list": cmd_list,
    "delete": cmd_delete,
    "export": cmd_export,
    "import": cmd_import,
    "audit": cmd_audit,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chaff-vault",
        description="chaff-vault - client-side encrypted vault",
    )
    parser.add_argument("--version", action="version", version=f"chaff-vault v{__version__}")
    parser.add_argument("--data-dir", help="Directory holding vault.db (overrides CHAFF_VAULT_DATA_DIR)")
    parser.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the master password from the first line of stdin",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create a new vault")
    sub.add_parser("status", help="Show vault status")

    add = sub.add_parser("add", help="Add an item")
    add.add_argument("name")
    add.add_argument("--type", default=ItemType.PASSWORD.value, choices=[t.value for t in ItemType])
    add.add_argument("--data", help="Item fields as a JSON object")

    get = sub.add_parser("get", help="Show one decrypted item")
    get.add_argument("item_id")

    sub.add_parser("list", help="List items, newest first")

    delete = sub.add_parser("delete", help="Delete an item")
    delete.add_argument("item_id")

    export = sub.add_parser("export", help="Export metadata and encrypted items as JSON")
    export.add_argument("-o", "--output", help="Write to file instead of stdout")

    imp = sub.add_parser("import", help="Merge an export file into this vault")
    imp.add_argument("input")

    audit = sub.add_parser("audit", help="Show audit events")
    audit.add_argument("--limit", type=int, default=100)
    audit.add_argument("--offset", type=int, default=0)

    gen = sub.add_parser("generate", help="Generate a random password")
    gen.add_argument("--length", type=int, default=16)
    gen.add_argument("--no-uppercase", action="store_true")
    gen.add_argument("--no-lowercase", action="store_true")
    gen.add_argument("--no-numbers", action="store_true")
    gen.add_argument("--no-symbols", action="store_true")
    gen.add_argument("--exclude-similar", action="store_true")
    gen.add_argument("--exclude-ambiguous", action="store_true")

    serve = sub.add_parser("serve", help="Run the local HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser


def main(argv=None) -> int:
    """Main entry point for chaff-vault."""
    args = build_parser().parse_args(argv)

    try:
        if args.command == "generate":
            return cmd_generate(args)

        config = VaultConfig.from_env()
        if args.data_dir:
            config = config.with_overrides(data_dir=Path(args.data_dir))

        if args.command == "serve":
            from .api.main import start_api_server

            start_api_server(host=args.host, port=args.port, config=config)
            return 0

        manager = VaultManager.from_config(config)
        return asyncio.run(ASYNC_COMMANDS[args.command](manager, args))

    except VaultError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as e:
        print(f"Error: invalid JSON: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
