"""Program-derived address (PDA) resolution from IDL seed declarations.

A PDA is computed in two steps. First the declared seeds are combined into a
single 32-byte seed:

* one seed: its bytes are used directly, zero-padded up to 32 bytes. This is
  the layout programs relied on before multi-seed support existed, so the
  derived addresses of those programs must not change.
* several seeds: the resolved parts are concatenated in declaration order
  and hashed with SHA-256.

The combined seed and the ProgramId are then fed to the ledger's addressing
function, which produces the AccountId.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import hashlib
import struct
from typing import Callable, Dict, List, Sequence, Tuple

from .codec import Value, serialize
from .constants import ACCOUNT_ID_SIZE, PDA_PREFIX, PROGRAM_ID_WORDS
from .errors import SeedTooLong, UnresolvedAccount, UnresolvedArgument
from .schema import AccountSeed, ArgSeed, ConstSeed, IdlSeed, PdaSpec

ProgramId = Tuple[int, ...]
DeriveFn = Callable[[ProgramId, bytes], bytes]


def program_id_bytes(program_id: Sequence[int]) -> bytes:
    if len(program_id) != PROGRAM_ID_WORDS:
        raise ValueError(f"ProgramId must have {PROGRAM_ID_WORDS} words, got {len(program_id)}")
    return struct.pack(f"<{PROGRAM_ID_WORDS}I", *program_id)


def derive_account_id(program_id: Sequence[int], seed: bytes) -> bytes:
    """Ledger addressing function: ``sha256(prefix || program_id || seed)``."""
    if len(seed) != ACCOUNT_ID_SIZE:
        raise ValueError(f"PDA seed must be {ACCOUNT_ID_SIZE} bytes, got {len(seed)}")
    return hashlib.sha256(PDA_PREFIX + program_id_bytes(program_id) + seed).digest()


@dataclass
class ResolutionContext:
    """Per-invocation resolution state, discarded once the payload is built."""

    program_id: ProgramId
    accounts: Dict[str, bytes] = field(default_factory=dict)
    args: Dict[str, Value] = field(default_factory=dict)


def resolve_seed(seed: IdlSeed, ctx: ResolutionContext) -> bytes:
    if isinstance(seed, ConstSeed):
        return seed.literal
    if isinstance(seed, AccountSeed):
        account_id = ctx.accounts.get(seed.path)
        if account_id is None:
            raise UnresolvedAccount(
                f"PDA seed references account '{seed.path}' which hasn't been resolved yet"
            )
        return account_id
    if isinstance(seed, ArgSeed):
        value = ctx.args.get(seed.path)
        if value is None:
            raise UnresolvedArgument(f"PDA seed references argument '{seed.path}' which was not supplied")
        return serialize(value)
    raise TypeError(f"unknown seed: {seed!r}")


def combine_seeds(parts: Sequence[bytes]) -> bytes:
    if not parts:
        raise ValueError("PDA requires at least one seed")
    if len(parts) == 1:
        only = parts[0]
        if len(only) > ACCOUNT_ID_SIZE:
            raise SeedTooLong(f"Seed is {len(only)} bytes, max {ACCOUNT_ID_SIZE} for a single-seed PDA")
        return only.ljust(ACCOUNT_ID_SIZE, b"\x00")
    return hashlib.sha256(b"".join(parts)).digest()


def resolve(spec: PdaSpec, ctx: ResolutionContext, derive: DeriveFn = derive_account_id) -> bytes:
    parts: List[bytes] = [resolve_seed(seed, ctx) for seed in spec.seeds]
    return derive(ctx.program_id, combine_seeds(parts))
