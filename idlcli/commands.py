"""Build the argparse command surface from an IDL."""

from __future__ import annotations

import argparse
from typing import Callable, Dict, List, Mapping, Optional

from .constants import TYPE_FORMATS
from .errors import SchemaError
from .schema import AccountSeed, ArgSeed, ConstSeed, Idl, Instruction, OptionType, type_display, type_hint
from .tx import Invocation, account_flag, arg_flag

BUILTIN_COMMANDS = ("inspect", "init", "idl")

_ARG_PREFIX = "arg__"
_ACCOUNT_PREFIX = "account__"

# Command handlers are called as handler(args, settings, idl) and return an exit status.
Handler = Callable[..., int]


def seed_display(seed) -> str:
    if isinstance(seed, ConstSeed):
        return f'const("{seed.value}")'
    if isinstance(seed, AccountSeed):
        return f'account("{seed.path}")'
    if isinstance(seed, ArgSeed):
        return f'arg("{seed.path}")'
    raise TypeError(f"unknown seed: {seed!r}")


def account_flags(acc) -> List[str]:
    flags = []
    if acc.writable:
        flags.append("mut")
    if acc.signer:
        flags.append("signer")
    if acc.init:
        flags.append("init")
    if acc.rest:
        flags.append("rest")
    return flags


def format_type_formats() -> str:
    lines = ["type formats:"]
    for name, desc in TYPE_FORMATS:
        lines.append(f"  {name:<24} {desc}")
    return "\n".join(lines)


def instruction_help(ix: Instruction) -> str:
    lines = [f"{ix.name}: {len(ix.accounts)} account(s), {len(ix.args)} arg(s)", "", "accounts:"]
    for acc in ix.accounts:
        flags = account_flags(acc)
        flags_str = f" [{', '.join(flags)}]" if flags else ""
        if acc.pda is not None:
            seeds = ", ".join(seed_display(s) for s in acc.pda.seeds)
            lines.append(f"  {acc.name}{flags_str} derived (PDA: {seeds})")
        else:
            lines.append(f"  {acc.name}{flags_str} required: --{account_flag(acc.name)}")
    return "\n".join(lines)


def _add_instruction(sub, ix: Instruction, handler: Optional[Handler]) -> None:
    command = arg_flag(ix.name)
    if command in BUILTIN_COMMANDS:
        raise SchemaError(f"Instruction name '{ix.name}' collides with built-in command '{command}'")

    parser = sub.add_parser(
        command,
        help=f"{len(ix.accounts)} account(s), {len(ix.args)} arg(s)",
        description=instruction_help(ix),
        epilog=format_type_formats(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    seen: Dict[str, str] = {"help": "argparse's built-in --help"}

    def claim(flag: str, owner: str) -> None:
        if flag in seen:
            raise SchemaError(f"{ix.name}: --{flag} is used by both {seen[flag]} and {owner}")
        seen[flag] = owner

    for arg in ix.args:
        flag = arg_flag(arg.name)
        claim(flag, f"argument '{arg.name}'")
        optional = " (optional, default none)" if isinstance(arg.type, OptionType) else ""
        parser.add_argument(
            f"--{flag}",
            dest=f"{_ARG_PREFIX}{arg.name}",
            metavar=type_hint(arg.type),
            help=f"{arg.name} ({type_display(arg.type)}){optional}",
        )
    for acc in ix.accounts:
        if acc.pda is not None:
            continue
        flag = account_flag(acc.name)
        claim(flag, f"account '{acc.name}'")
        what = "Comma-separated account IDs" if acc.rest else "Account ID"
        parser.add_argument(
            f"--{flag}",
            dest=f"{_ACCOUNT_PREFIX}{acc.name}",
            metavar="BASE58|HEX|BINARY",
            help=f"{what} for '{acc.name}' (base58, 64 hex chars, or a program binary path)",
        )
    parser.set_defaults(func=handler, instruction=ix.name)


def add_global_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-i", "--idl", help="IDL JSON file")
    parser.add_argument("-p", "--program", help="Program binary (ProgramId source)")
    parser.add_argument("--program-id", help="ProgramId as 8 comma-separated u32 values")
    parser.add_argument("--dry-run", action="store_true", help="Validate and print without submitting")
    parser.add_argument("--sequencer-url", help="Sequencer endpoint URL")
    parser.add_argument("--wallet-home", help="Wallet directory with signer keypairs")
    parser.add_argument("--keypair", action="append", help="Signer keypair file (repeatable)")
    parser.add_argument("--timeout", help="Network timeout in seconds")
    parser.add_argument("--config", help="Config file (default: ./idlcli.toml)")
    parser.add_argument(
        "--bin",
        action="append",
        metavar="NAME=PATH",
        help="Extra program binary; auto-fills --NAME-program-id (repeatable)",
    )
    parser.add_argument("--no-wait", action="store_true", help="Do not wait for confirmation")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print resolution details")


def build_parser(
    idl: Optional[Idl],
    prog: str,
    handlers: Optional[Mapping[str, Handler]] = None,
) -> argparse.ArgumentParser:
    handlers = handlers or {}
    title = f"{idl.name} v{idl.version} - IDL-driven CLI" if idl else "IDL-driven CLI"
    parser = argparse.ArgumentParser(
        prog=prog,
        description=title,
        epilog=format_type_formats() + "\n\nAccounts marked as PDA are computed automatically.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_global_options(parser)
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_inspect = sub.add_parser("inspect", help="Print ProgramId for program binaries")
    p_inspect.add_argument("binaries", nargs="+", help="Program binary path(s)")
    p_inspect.set_defaults(func=handlers.get("inspect"))

    p_init = sub.add_parser("init", help="Create a starter project")
    p_init.add_argument("name", help="Project name / destination directory")
    p_init.set_defaults(func=handlers.get("init"))

    p_idl = sub.add_parser("idl", help="Print IDL information")
    p_idl.set_defaults(func=handlers.get("idl"))

    if idl is not None:
        for ix in idl.instructions:
            _add_instruction(sub, ix, handlers.get("instruction"))
    return parser


def invocation_from_args(idl: Idl, args: argparse.Namespace) -> Invocation:
    ix = idl.instruction(args.instruction)
    if ix is None:
        raise SchemaError(f"Unknown instruction: {args.instruction}")
    values = vars(args)
    return Invocation(
        instruction=ix,
        arg_tokens={arg.name: values.get(f"{_ARG_PREFIX}{arg.name}") for arg in ix.args},
        account_tokens={
            acc.name: values.get(f"{_ACCOUNT_PREFIX}{acc.name}") for acc in ix.accounts if acc.pda is None
        },
    )
