"""Transaction assembly: parsed arguments + resolved accounts -> payload."""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
from pathlib import Path
import struct
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .codec import Value, decode_bytes32, encode_base58, hex_encode, parse, serialize_words, words_to_bytes
from .errors import ArgumentError, MissingRequired, MissingSigner, UnresolvedAccount, UnresolvedArgument
from .pda import DeriveFn, ProgramId, ResolutionContext, derive_account_id, program_id_bytes, resolve
from .schema import Idl, Instruction, OptionType
from .wallet import Wallet


@dataclass(frozen=True)
class AccountRef:
    name: str
    account_id: bytes
    writable: bool
    signer: bool


@dataclass(frozen=True)
class Payload:
    program_id: ProgramId
    instruction: str
    instruction_index: int
    accounts: Tuple[AccountRef, ...]
    args: Tuple[Tuple[str, Value], ...]
    instruction_data: Tuple[int, ...]
    nonces: Tuple[int, ...] = ()

    @property
    def signer_ids(self) -> List[bytes]:
        return [ref.account_id for ref in self.accounts if ref.signer]

    def message_bytes(self) -> bytes:
        out = bytearray(program_id_bytes(self.program_id))
        out += struct.pack("<I", len(self.accounts))
        for ref in self.accounts:
            out += ref.account_id
        out += struct.pack("<I", len(self.nonces))
        for nonce in self.nonces:
            out += int(nonce).to_bytes(16, "little")
        out += struct.pack("<I", len(self.instruction_data))
        out += words_to_bytes(list(self.instruction_data))
        return bytes(out)

    def message_hash(self) -> str:
        return hashlib.sha256(self.message_bytes()).hexdigest()


@dataclass(frozen=True)
class SignedTransaction:
    payload: Payload
    # (public key, signature) per signer, in account order.
    witnesses: Tuple[Tuple[bytes, bytes], ...]

    def to_json(self) -> Dict[str, object]:
        payload = self.payload
        return {
            "program_id": list(payload.program_id),
            "account_ids": [encode_base58(ref.account_id) for ref in payload.accounts],
            "nonces": [str(n) for n in payload.nonces],
            "instruction_data": list(payload.instruction_data),
            "witness_set": [
                {"public_key": encode_base58(pub), "signature": hex_encode(sig)}
                for pub, sig in self.witnesses
            ],
        }


def arg_flag(name: str) -> str:
    return name.replace("_", "-")


def account_flag(name: str) -> str:
    return f"{arg_flag(name)}-account"


def parse_arguments(instruction: Instruction, tokens: Mapping[str, Optional[str]]) -> Dict[str, Value]:
    """Parse every declared argument; omitted Option arguments become absent."""
    missing = [arg for arg in instruction.args if tokens.get(arg.name) is None and not isinstance(arg.type, OptionType)]
    if missing:
        flags = ", ".join(f"--{arg_flag(arg.name)}" for arg in missing)
        raise MissingRequired(f"Missing required arguments: {flags}")

    parsed: Dict[str, Value] = {}
    for arg in instruction.args:
        token = tokens.get(arg.name)
        if token is None:
            parsed[arg.name] = Value(arg.type, None)
            continue
        try:
            parsed[arg.name] = parse(token, arg.type)
        except ArgumentError as exc:
            if exc.flag is None:
                exc.flag = arg_flag(arg.name)
            raise
    return parsed


def parse_account_overrides(
    instruction: Instruction,
    tokens: Mapping[str, Optional[str]],
    read_program_id: Optional[Callable[[str], ProgramId]] = None,
) -> Dict[str, Tuple[bytes, ...]]:
    """Decode the explicit AccountId of every account that is not a PDA.

    A token naming an existing program binary is replaced by that program's
    id when ``read_program_id`` is given.
    """
    missing = [acc for acc in instruction.accounts if acc.pda is None and tokens.get(acc.name) is None]
    if missing:
        flags = ", ".join(f"--{account_flag(acc.name)}" for acc in missing)
        raise MissingRequired(f"Missing required accounts: {flags}")

    overrides: Dict[str, Tuple[bytes, ...]] = {}
    for acc in instruction.accounts:
        if acc.pda is not None:
            continue
        token = tokens[acc.name]
        parts = [p.strip() for p in token.split(",") if p.strip()] if acc.rest else [token.strip()]
        ids: List[bytes] = []
        for part in parts:
            if read_program_id is not None and Path(part).expanduser().is_file():
                ids.append(program_id_bytes(read_program_id(part)))
                continue
            try:
                ids.append(decode_bytes32(part))
            except ArgumentError as exc:
                if exc.flag is None:
                    exc.flag = account_flag(acc.name)
                raise
        overrides[acc.name] = tuple(ids)
    return overrides


def resolve_accounts(
    instruction: Instruction,
    overrides: Mapping[str, Tuple[bytes, ...]],
    ctx: ResolutionContext,
    derive: DeriveFn = derive_account_id,
    on_derived: Optional[Callable[[str, bytes], None]] = None,
) -> Dict[str, Tuple[bytes, ...]]:
    """Resolve every declared account.

    Explicit accounts are known up front; PDAs are then derived in declaration
    order, so a seed may only reference a PDA declared before it.
    """
    resolved: Dict[str, Tuple[bytes, ...]] = {}
    for acc in instruction.accounts:
        if acc.pda is None and acc.name in overrides:
            resolved[acc.name] = tuple(overrides[acc.name])
            if not acc.rest:
                ctx.accounts[acc.name] = resolved[acc.name][0]
    for acc in instruction.accounts:
        if acc.pda is None:
            continue
        account_id = resolve(acc.pda, ctx, derive)
        ctx.accounts[acc.name] = account_id
        resolved[acc.name] = (account_id,)
        if on_derived is not None:
            on_derived(acc.name, account_id)
    return resolved


def build(
    instruction: Instruction,
    parsed_args: Mapping[str, Value],
    resolved_accounts: Mapping[str, Sequence[bytes]],
    program_id: ProgramId,
    instruction_index: int,
    wallet: Optional[Wallet] = None,
    nonces: Sequence[int] = (),
) -> Payload:
    refs: List[AccountRef] = []
    for acc in instruction.accounts:
        ids = resolved_accounts.get(acc.name)
        if ids is None:
            raise UnresolvedAccount(f"Account '{acc.name}' not resolved")
        for account_id in ids:
            refs.append(AccountRef(acc.name, bytes(account_id), acc.writable, acc.signer))

    for ref in refs:
        if not ref.signer:
            continue
        if wallet is None or wallet.signing_key(ref.account_id) is None:
            raise MissingSigner(
                f"No signing key for signer account '{ref.name}' ({encode_base58(ref.account_id)}); "
                "set NSSA_WALLET_HOME_DIR or pass --keypair"
            )

    args: List[Tuple[str, Value]] = []
    words: List[int] = [instruction_index]
    for arg in instruction.args:
        value = parsed_args.get(arg.name)
        if value is None:
            raise UnresolvedArgument(f"Argument '{arg.name}' not supplied")
        args.append((arg.name, value))
        words.extend(serialize_words(value))

    return Payload(
        program_id=tuple(program_id),
        instruction=instruction.name,
        instruction_index=instruction_index,
        accounts=tuple(refs),
        args=tuple(args),
        instruction_data=tuple(words),
        nonces=tuple(nonces),
    )


def sign(payload: Payload, wallet: Wallet) -> SignedTransaction:
    message = payload.message_bytes()
    witnesses: List[Tuple[bytes, bytes]] = []
    for account_id in payload.signer_ids:
        keypair = wallet.signing_key(account_id)
        if keypair is None:
            raise MissingSigner(f"No signing key for signer {encode_base58(account_id)}")
        witnesses.append((bytes(keypair.pubkey()), bytes(keypair.sign_message(message))))
    return SignedTransaction(payload=payload, witnesses=tuple(witnesses))


@dataclass
class Invocation:
    """Raw user inputs for one instruction call."""

    instruction: Instruction
    arg_tokens: Dict[str, Optional[str]]
    account_tokens: Dict[str, Optional[str]]


def assemble(
    idl: Idl,
    invocation: Invocation,
    program_id: ProgramId,
    wallet: Optional[Wallet] = None,
    nonces: Sequence[int] = (),
    read_program_id: Optional[Callable[[str], ProgramId]] = None,
    derive: DeriveFn = derive_account_id,
    on_derived: Optional[Callable[[str, bytes], None]] = None,
) -> Payload:
    """Parse, resolve and build in one pass with a fresh resolution context."""
    ix = invocation.instruction
    parsed_args = parse_arguments(ix, invocation.arg_tokens)
    overrides = parse_account_overrides(ix, invocation.account_tokens, read_program_id)
    ctx = ResolutionContext(program_id=tuple(program_id), args=dict(parsed_args))
    resolved = resolve_accounts(ix, overrides, ctx, derive, on_derived)
    return build(ix, parsed_args, resolved, program_id, idl.index_of(ix), wallet, nonces)
