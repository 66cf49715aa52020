"""Typed, validated model of an NSSA program IDL document."""

from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
import re
from typing import Any, Dict, List, Optional, Tuple, Union

from .constants import ACCOUNT_ID_SIZE, DEFAULT_IDL_VERSION, PROGRAM_ID_WORDS, VEC_ELEMENT_SIZE
from .errors import SchemaError


@dataclass(frozen=True)
class UInt:
    bits: int

    @property
    def size(self) -> int:
        return self.bits // 8

    @property
    def max_value(self) -> int:
        return (1 << self.bits) - 1


U8 = UInt(8)
U32 = UInt(32)
U64 = UInt(64)
U128 = UInt(128)


@dataclass(frozen=True)
class FixedBytes:
    size: int


@dataclass(frozen=True)
class FixedU32Array:
    count: int = PROGRAM_ID_WORDS


@dataclass(frozen=True)
class VecFixedBytes32:
    pass


@dataclass(frozen=True)
class OptionType:
    inner: "IdlType"


IdlType = Union[UInt, FixedBytes, FixedU32Array, VecFixedBytes32, OptionType]


@dataclass(frozen=True)
class ConstSeed:
    value: str

    @property
    def literal(self) -> bytes:
        return self.value.encode("utf-8")


@dataclass(frozen=True)
class AccountSeed:
    path: str


@dataclass(frozen=True)
class ArgSeed:
    path: str


IdlSeed = Union[ConstSeed, AccountSeed, ArgSeed]


@dataclass(frozen=True)
class PdaSpec:
    seeds: Tuple[IdlSeed, ...]


@dataclass(frozen=True)
class Arg:
    name: str
    type: IdlType


@dataclass(frozen=True)
class AccountDecl:
    name: str
    writable: bool = False
    signer: bool = False
    init: bool = False
    pda: Optional[PdaSpec] = None
    rest: bool = False


@dataclass(frozen=True)
class Instruction:
    name: str
    args: Tuple[Arg, ...]
    accounts: Tuple[AccountDecl, ...]

    def arg(self, name: str) -> Optional[Arg]:
        for arg in self.args:
            if arg.name == name:
                return arg
        return None

    def account(self, name: str) -> Optional[AccountDecl]:
        for acc in self.accounts:
            if acc.name == name:
                return acc
        return None


@dataclass(frozen=True)
class Idl:
    name: str
    version: str
    instructions: Tuple[Instruction, ...]

    def instruction(self, name: str) -> Optional[Instruction]:
        wanted = name.replace("-", "_")
        for ix in self.instructions:
            if ix.name == wanted or ix.name == name:
                return ix
        return None

    def index_of(self, instruction: Instruction) -> int:
        for idx, ix in enumerate(self.instructions):
            if ix.name == instruction.name:
                return idx
        raise SchemaError(f"Instruction not in IDL: {instruction.name}")


_ARRAY_RE = re.compile(r"^\[\s*([A-Za-z0-9_]+)\s*;\s*(\d+)\s*\]$")
_VEC_RE = re.compile(r"^vec<(.+)>$", re.IGNORECASE)
_OPTION_RE = re.compile(r"^option<(.+)>$", re.IGNORECASE)

_PRIMITIVES: Dict[str, IdlType] = {
    "u8": U8,
    "u32": U32,
    "u64": U64,
    "u128": U128,
    "program_id": FixedU32Array(PROGRAM_ID_WORDS),
}


def _array_type(elem: Any, count: Any, where: str) -> IdlType:
    if not isinstance(count, int) or isinstance(count, bool) or count <= 0:
        raise SchemaError(f"{where}: array length must be a positive integer, got {count!r}")
    if elem == "u8":
        return FixedBytes(count)
    if elem == "u32":
        if count != PROGRAM_ID_WORDS:
            raise SchemaError(
                f"{where}: [u32; {count}] has inconsistent element count (expected {PROGRAM_ID_WORDS})"
            )
        return FixedU32Array(count)
    raise SchemaError(f"{where}: unsupported array element type {elem!r}")


def _vec_type(inner: IdlType, where: str) -> IdlType:
    if inner != FixedBytes(VEC_ELEMENT_SIZE):
        raise SchemaError(f"{where}: only Vec<[u8; {VEC_ELEMENT_SIZE}]> is supported")
    return VecFixedBytes32()


def parse_type(raw: Any, where: str = "type") -> IdlType:
    """Convert a JSON type expression into an :data:`IdlType`."""
    if isinstance(raw, str):
        text = raw.strip()
        if text in _PRIMITIVES:
            return _PRIMITIVES[text]
        match = _ARRAY_RE.match(text)
        if match:
            return _array_type(match.group(1), int(match.group(2)), where)
        match = _VEC_RE.match(text)
        if match:
            return _vec_type(parse_type(match.group(1), where), where)
        match = _OPTION_RE.match(text)
        if match:
            return OptionType(parse_type(match.group(1), where))
        raise SchemaError(f"{where}: unsupported type {text!r}")
    if isinstance(raw, dict) and len(raw) == 1:
        if "array" in raw:
            spec = raw["array"]
            if not isinstance(spec, list) or len(spec) != 2:
                raise SchemaError(f"{where}: array must be [element, length]")
            return _array_type(spec[0], spec[1], where)
        if "vec" in raw:
            return _vec_type(parse_type(raw["vec"], where), where)
        if "option" in raw:
            return OptionType(parse_type(raw["option"], where))
    raise SchemaError(f"{where}: unsupported type {raw!r}")


def _require_name(entry: Any, where: str) -> str:
    if not isinstance(entry, dict):
        raise SchemaError(f"{where} must be an object")
    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise SchemaError(f"{where}.name must be a non-empty string")
    return name


def _flag(entry: Dict[str, Any], key: str, where: str) -> bool:
    value = entry.get(key, False)
    if not isinstance(value, bool):
        raise SchemaError(f"{where}.{key} must be a boolean")
    return value


def _parse_seed(raw: Any, where: str) -> IdlSeed:
    if not isinstance(raw, dict):
        raise SchemaError(f"{where} must be an object")
    kind = raw.get("kind")
    if kind == "const":
        value = raw.get("value")
        if not isinstance(value, str):
            raise SchemaError(f"{where}.value must be a string")
        return ConstSeed(value)
    if kind in ("account", "arg"):
        path = raw.get("path")
        if not isinstance(path, str) or not path:
            raise SchemaError(f"{where}.path must be a non-empty string")
        return AccountSeed(path) if kind == "account" else ArgSeed(path)
    raise SchemaError(f"{where}.kind must be const, account, or arg")


def _parse_pda(raw: Any, where: str) -> PdaSpec:
    if not isinstance(raw, dict) or not isinstance(raw.get("seeds"), list):
        raise SchemaError(f"{where}.pda must contain a seeds list")
    seeds = tuple(_parse_seed(s, f"{where}.pda.seeds[{i}]") for i, s in enumerate(raw["seeds"]))
    if not seeds:
        raise SchemaError(f"{where}.pda.seeds must not be empty")
    return PdaSpec(seeds)


def _check_seed_refs(ix: Instruction) -> None:
    arg_names = {a.name for a in ix.args}
    for acc in ix.accounts:
        if acc.pda is None:
            continue
        where = f"{ix.name}.{acc.name}"
        for seed in acc.pda.seeds:
            if isinstance(seed, AccountSeed):
                target = ix.account(seed.path)
                if target is None:
                    raise SchemaError(f"{where}: seed references undeclared account '{seed.path}'")
                if target.name == acc.name:
                    raise SchemaError(f"{where}: seed references its own account")
                if target.rest:
                    raise SchemaError(f"{where}: seed cannot reference rest account '{seed.path}'")
            elif isinstance(seed, ArgSeed):
                if seed.path not in arg_names:
                    raise SchemaError(f"{where}: seed references undeclared argument '{seed.path}'")
        if len(acc.pda.seeds) == 1:
            only = acc.pda.seeds[0]
            if isinstance(only, ConstSeed) and len(only.literal) > ACCOUNT_ID_SIZE:
                raise SchemaError(
                    f"{where}: const seed '{only.value}' exceeds {ACCOUNT_ID_SIZE} bytes"
                )


def _parse_instruction(raw: Any, where: str) -> Instruction:
    name = _require_name(raw, where)
    where = f"instruction '{name}'"

    raw_args = raw.get("args", [])
    if not isinstance(raw_args, list):
        raise SchemaError(f"{where}: args must be a list")
    args: List[Arg] = []
    for i, entry in enumerate(raw_args):
        arg_name = _require_name(entry, f"{where}.args[{i}]")
        if any(a.name == arg_name for a in args):
            raise SchemaError(f"{where}: duplicate argument '{arg_name}'")
        args.append(Arg(arg_name, parse_type(entry.get("type"), f"{where}.{arg_name}")))

    raw_accounts = raw.get("accounts", [])
    if not isinstance(raw_accounts, list):
        raise SchemaError(f"{where}: accounts must be a list")
    accounts: List[AccountDecl] = []
    for i, entry in enumerate(raw_accounts):
        acc_name = _require_name(entry, f"{where}.accounts[{i}]")
        acc_where = f"{where}.{acc_name}"
        if any(a.name == acc_name for a in accounts):
            raise SchemaError(f"{where}: duplicate account '{acc_name}'")
        pda = _parse_pda(entry["pda"], acc_where) if entry.get("pda") is not None else None
        rest = _flag(entry, "rest", acc_where)
        if rest and pda is not None:
            raise SchemaError(f"{acc_where}: rest account cannot be a PDA")
        if rest and i != len(raw_accounts) - 1:
            raise SchemaError(f"{acc_where}: rest account must be declared last")
        accounts.append(
            AccountDecl(
                name=acc_name,
                writable=_flag(entry, "writable", acc_where),
                signer=_flag(entry, "signer", acc_where),
                init=_flag(entry, "init", acc_where),
                pda=pda,
                rest=rest,
            )
        )

    ix = Instruction(name=name, args=tuple(args), accounts=tuple(accounts))
    _check_seed_refs(ix)
    return ix


def load(document: Dict[str, Any]) -> Idl:
    """Validate an IDL document and return the immutable model."""
    if not isinstance(document, dict):
        raise SchemaError("IDL document must be a JSON object")
    raw_instructions = document.get("instructions")
    if not isinstance(raw_instructions, list):
        raise SchemaError("IDL document missing instructions list")

    instructions: List[Instruction] = []
    seen = set()
    for i, raw in enumerate(raw_instructions):
        ix = _parse_instruction(raw, f"instructions[{i}]")
        if ix.name in seen:
            raise SchemaError(f"Duplicate instruction name: {ix.name}")
        seen.add(ix.name)
        instructions.append(ix)

    name = document.get("name", "program")
    version = document.get("version", DEFAULT_IDL_VERSION)
    if not isinstance(name, str) or not isinstance(version, str):
        raise SchemaError("IDL name and version must be strings")
    return Idl(name=name, version=version, instructions=tuple(instructions))


def load_file(path: str | Path) -> Idl:
    idl_path = Path(path)
    if not idl_path.exists():
        raise FileNotFoundError(f"IDL file not found: {idl_path}")
    try:
        document = json.loads(idl_path.read_text())
    except json.JSONDecodeError as exc:
        raise SchemaError(f"IDL file is not valid JSON: {idl_path}: {exc}") from exc
    return load(document)


def type_display(ty: IdlType) -> str:
    if isinstance(ty, UInt):
        return f"u{ty.bits}"
    if isinstance(ty, FixedBytes):
        return f"[u8; {ty.size}]"
    if isinstance(ty, FixedU32Array):
        return f"[u32; {ty.count}]"
    if isinstance(ty, VecFixedBytes32):
        return f"Vec<[u8; {VEC_ELEMENT_SIZE}]>"
    if isinstance(ty, OptionType):
        return f"Option<{type_display(ty.inner)}>"
    raise TypeError(f"unknown IDL type: {ty!r}")


def type_hint(ty: IdlType) -> str:
    if isinstance(ty, UInt):
        return "NUMBER"
    if isinstance(ty, FixedBytes):
        return f"HEX{ty.size * 2}|STR<={ty.size}"
    if isinstance(ty, FixedU32Array):
        return f"U32x{ty.count}"
    if isinstance(ty, VecFixedBytes32):
        return f"HEX{VEC_ELEMENT_SIZE * 2},..."
    if isinstance(ty, OptionType):
        return f"OPT<{type_hint(ty.inner)}>"
    raise TypeError(f"unknown IDL type: {ty!r}")
