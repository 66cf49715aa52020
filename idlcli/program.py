"""ProgramId extraction from compiled program binaries.

Computing a program's image id requires the zkVM toolchain, so the work is
delegated to an external tool that prints the id as eight comma-separated
u32 words.
"""

from __future__ import annotations

from pathlib import Path
import subprocess
from typing import List, Optional, Tuple

from .constants import DEFAULT_PROGRAM_ID_TOOL, PROGRAM_ID_WORDS, U32_MAX
from .errors import ProgramBinaryError
from .pda import ProgramId, program_id_bytes


def parse_program_id(text: str) -> ProgramId:
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != PROGRAM_ID_WORDS:
        raise ValueError(f"ProgramId needs {PROGRAM_ID_WORDS} u32 values, got {len(parts)}")
    words: List[int] = []
    for idx, part in enumerate(parts):
        value = int(part, 16) if part.lower().startswith("0x") else int(part, 10)
        if value < 0 or value > U32_MAX:
            raise ValueError(f"ProgramId[{idx}] out of u32 range: {part}")
        words.append(value)
    return tuple(words)


def read_program_id(path: str | Path, tool: Optional[str] = None) -> ProgramId:
    binary = Path(path).expanduser()
    if not binary.is_file():
        raise FileNotFoundError(f"Program binary not found: {binary}")
    cmd = [tool or DEFAULT_PROGRAM_ID_TOOL, str(binary)]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as exc:
        raise ProgramBinaryError(f"Unable to run {cmd[0]}: {exc}") from exc
    if result.returncode != 0:
        msg = result.stderr.strip() or result.stdout.strip() or f"{cmd[0]} failed"
        raise ProgramBinaryError(f"{binary}: {msg}")
    for line in result.stdout.splitlines():
        text = line.strip()
        if text.count(",") != PROGRAM_ID_WORDS - 1:
            continue
        try:
            return parse_program_id(text)
        except ValueError:
            continue
    raise ProgramBinaryError(f"{binary}: program id output missing: {result.stdout.strip()}")


def describe_program_id(program_id: ProgramId) -> Tuple[str, str, str]:
    """Return the decimal words, hex words and little-endian image id hex."""
    decimal = ",".join(str(w) for w in program_id)
    hex_words = ",".join(f"{w:08x}" for w in program_id)
    return decimal, hex_words, program_id_bytes(program_id).hex()
