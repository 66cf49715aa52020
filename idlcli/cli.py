"""CLI entrypoint for idlcli."""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
import sys
from typing import Dict, List, Optional

from .codec import encode_base58, hex_encode
from .commands import account_flags, add_global_options, build_parser, invocation_from_args, seed_display
from .config import Settings, load_settings
from .errors import IdlCliError, InvalidFormat, MissingRequired, SchemaError
from .pda import ProgramId
from .program import describe_program_id, parse_program_id, read_program_id
from .schema import Idl, load_file, type_display
from .submit import SequencerClient, dry_run, submit
from .tx import Invocation, Payload, arg_flag
from .wallet import Wallet


def _template_idl(name: str) -> dict:
    state_seeds = [{"kind": "const", "value": "state"}, {"kind": "account", "path": "owner"}]
    return {
        "version": "0.1.0",
        "name": name,
        "instructions": [
            {
                "name": "initialize",
                "accounts": [
                    {"name": "state", "writable": True, "init": True, "pda": {"seeds": state_seeds}},
                    {"name": "owner", "signer": True},
                ],
                "args": [{"name": "label", "type": {"array": ["u8", 32]}}],
            }
        ],
    }


_TEMPLATE_CONFIG = """
[cli]
idl = "{name}-idl.json"
# program = "path/to/{snake_name}.bin"
sequencer_url = "http://127.0.0.1:3040"
# wallet_home = "~/.nssa/wallet"
timeout = 30
""".lstrip()

_PROJECT_GITIGNORE = """
target/
*.bin
.{snake_name}-state
""".lstrip()


def _parse_keymap(items: List[str] | None) -> Dict[str, str]:
    mapping: Dict[str, str] = {}
    for item in items or []:
        if "=" not in item:
            raise ValueError("--bin entries must be in NAME=PATH form")
        name, path = item.split("=", 1)
        name = name.strip()
        path = path.strip()
        if not name or not path:
            raise ValueError("--bin entries must be in NAME=PATH form")
        mapping[name] = path
    return mapping


def _preparse(argv: List[str]) -> argparse.Namespace:
    pre = argparse.ArgumentParser(add_help=False, allow_abbrev=False)
    add_global_options(pre)
    pre.add_argument("rest", nargs=argparse.REMAINDER)
    args, _ = pre.parse_known_args(argv)
    return args


def _program_id(settings: Settings) -> ProgramId:
    if settings.program_id:
        try:
            return parse_program_id(settings.program_id)
        except ValueError as exc:
            raise InvalidFormat(str(exc), flag="program-id", token=settings.program_id) from exc
    if settings.program:
        return read_program_id(settings.program, settings.program_id_tool)
    raise MissingRequired("A program is required: pass --program <binary> or --program-id <u32,...>")


def _apply_bins(invocation: Invocation, bins: Dict[str, str], settings: Settings) -> None:
    for name, path in bins.items():
        arg_name = f"{name.replace('-', '_')}_program_id"
        if arg_name not in invocation.arg_tokens or invocation.arg_tokens[arg_name] is not None:
            continue
        decimal, _, _ = describe_program_id(read_program_id(path, settings.program_id_tool))
        invocation.arg_tokens[arg_name] = decimal
        print(f"  Auto-filled --{arg_flag(arg_name)} from {path}")


def _print_payload(payload: Payload, program_label: str) -> None:
    print("Accounts:")
    for ref in payload.accounts:
        flags = [f for f, on in (("mut", ref.writable), ("signer", ref.signer)) if on]
        flags_str = f" [{', '.join(flags)}]" if flags else ""
        print(f"  {ref.name}{flags_str} -> {encode_base58(ref.account_id)} (0x{hex_encode(ref.account_id)})")
    print()
    print("Arguments (parsed):")
    for name, value in payload.args:
        print(f"  {name} = {value}")
    print()
    print("Transaction:")
    print(f"  program: {program_label}")
    print(f"  program id: {','.join(str(w) for w in payload.program_id)}")
    print(f"  instruction: {payload.instruction} (index {payload.instruction_index})")
    print(f"  serialized instruction data ({len(payload.instruction_data)} u32 words):")
    print("    [" + ", ".join(f"{w:08x}" for w in payload.instruction_data) + "]")
    print(f"  message hash: {payload.message_hash()}")
    print()


def _cmd_instruction(args: argparse.Namespace, settings: Settings, idl: Optional[Idl]) -> int:
    if idl is None:
        raise SchemaError("No IDL loaded")
    invocation = invocation_from_args(idl, args)
    print(f"Instruction: {invocation.instruction.name}")
    print()
    _apply_bins(invocation, _parse_keymap(args.bin), settings)
    program_id = _program_id(settings)
    wallet = Wallet.lazy(settings.wallet_home, settings.keypairs)

    on_derived = None
    if settings.verbose:

        def on_derived(name: str, account_id: bytes) -> None:
            print(f"  PDA {name} -> {encode_base58(account_id)}")

    options = {
        "read_program_id": lambda path: read_program_id(path, settings.program_id_tool),
        "on_derived": on_derived,
    }
    program_label = settings.program or "(--program-id)"

    if settings.dry_run:
        payload = dry_run(idl, invocation, program_id, wallet=wallet, **options)
        _print_payload(payload, program_label)
        print("Dry run: omit --dry-run to submit the transaction.")
        return 0

    client = SequencerClient(settings.sequencer_url, settings.timeout)
    if settings.verbose:
        print(f"  sequencer: {settings.sequencer_url} (from {settings.sources.get('sequencer_url', 'default')})")
    payload, tx_hash = submit(idl, invocation, program_id, client, wallet=wallet, **options)
    _print_payload(payload, program_label)
    print("Transaction submitted")
    print(f"  tx_hash: {tx_hash}")
    if not settings.wait:
        return 0
    print("  Waiting for confirmation...")
    if client.wait_for_confirmation(tx_hash):
        print("Transaction confirmed")
        return 0
    print("Transaction NOT confirmed")
    return 1


def _cmd_inspect(args: argparse.Namespace, settings: Settings, idl: Optional[Idl]) -> int:
    status = 0
    for path in args.binaries:
        try:
            program_id = read_program_id(path, settings.program_id_tool)
        except (IdlCliError, FileNotFoundError) as exc:
            print(f"{path}: {exc}")
            status = 1
            continue
        decimal, hex_words, image_hex = describe_program_id(program_id)
        print(path)
        print(f"   ProgramId (decimal): {decimal}")
        print(f"   ProgramId (hex):     {hex_words}")
        print(f"   ImageID (hex bytes): {image_hex}")
        print()
    return status


def _cmd_init(args: argparse.Namespace, settings: Settings, idl: Optional[Idl]) -> int:
    name = args.name
    dest = Path(name).resolve()
    if dest.exists() and any(dest.iterdir()):
        print(f"Destination not empty: {dest}")
        return 1
    dest.mkdir(parents=True, exist_ok=True)
    snake_name = dest.name.replace("-", "_")

    document = _template_idl(snake_name)
    idl_path = dest / f"{dest.name}-idl.json"
    idl_path.write_text(json.dumps(document, indent=2) + "\n")
    (dest / "idlcli.toml").write_text(_TEMPLATE_CONFIG.format(name=dest.name, snake_name=snake_name))
    gitignore_path = dest / ".gitignore"
    if not gitignore_path.exists():
        gitignore_path.write_text(_PROJECT_GITIGNORE.format(snake_name=snake_name))

    print(f"Initialized project in {dest}")
    print(f"IDL: {idl_path}")
    return 0


def _cmd_idl(args: argparse.Namespace, settings: Settings, idl: Optional[Idl]) -> int:
    if idl is None:
        raise MissingRequired("No IDL loaded: pass --idl <file>")
    print(f"{idl.name} v{idl.version}: {len(idl.instructions)} instruction(s)")
    for index, ix in enumerate(idl.instructions):
        print()
        print(f"[{index}] {ix.name}")
        for arg in ix.args:
            print(f"  arg {arg.name}: {type_display(arg.type)}")
        for acc in ix.accounts:
            flags = account_flags(acc)
            flags_str = f" [{', '.join(flags)}]" if flags else ""
            pda = ""
            if acc.pda is not None:
                pda = " pda(" + ", ".join(seed_display(s) for s in acc.pda.seeds) + ")"
            print(f"  account {acc.name}{flags_str}{pda}")
    return 0


_HANDLERS = {
    "inspect": _cmd_inspect,
    "init": _cmd_init,
    "idl": _cmd_idl,
    "instruction": _cmd_instruction,
}


def _load_idl(settings: Settings) -> Optional[Idl]:
    if not settings.idl:
        return None
    return load_file(settings.idl)


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    prog = os.path.basename(sys.argv[0]) or "idlcli"
    try:
        settings = load_settings(vars(_preparse(argv)))
        idl = _load_idl(settings)
        parser = build_parser(idl, prog, _HANDLERS)
    except FileNotFoundError as exc:
        print(str(exc))
        return 1
    except (IdlCliError, ValueError) as exc:
        print(str(exc))
        return 1

    args = parser.parse_args(argv)
    try:
        settings = load_settings(vars(args))
        return args.func(args, settings, idl)
    except KeyboardInterrupt:
        print("Interrupted")
        return 130
    except FileNotFoundError as exc:
        print(str(exc))
        return 1
    except (IdlCliError, ValueError) as exc:
        print(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
