"""Signing keys for signer accounts, loaded from a local wallet directory."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from solders.keypair import Keypair

from .errors import ConfigError


def load_keypair(path: str | Path) -> Keypair:
    keypair_path = Path(path).expanduser()
    if not keypair_path.exists():
        raise FileNotFoundError(f"Keypair file not found: {keypair_path}")
    try:
        raw = json.loads(keypair_path.read_text())
        return Keypair.from_bytes(bytes(raw))
    except Exception as exc:  # noqa: BLE001
        raise ConfigError(f"Invalid keypair file {keypair_path}: {exc}") from exc


def _load_paths(home: Optional[str | Path], keypair_paths: Iterable[str]) -> List[Keypair]:
    keypairs: List[Keypair] = []
    if home:
        home_dir = Path(home).expanduser()
        if not home_dir.is_dir():
            raise ConfigError(f"Wallet directory not found: {home_dir}")
        for path in sorted(home_dir.rglob("*.json")):
            try:
                keypairs.append(load_keypair(path))
            except ConfigError:
                # Wallet homes hold other JSON (config, storage); only keypairs count.
                continue
    for path in keypair_paths:
        keypairs.append(load_keypair(path))
    return keypairs


class Wallet:
    """Keypairs indexed by their 32-byte public key (the signer's AccountId)."""

    def __init__(
        self,
        keypairs: Iterable[Keypair] = (),
        loader: Optional[Callable[[], Iterable[Keypair]]] = None,
    ) -> None:
        self._keys: Dict[bytes, Keypair] = {}
        self._loader = loader
        for kp in keypairs:
            self.add(kp)

    @classmethod
    def from_paths(cls, home: Optional[str | Path], keypair_paths: Iterable[str] = ()) -> "Wallet":
        return cls(_load_paths(home, keypair_paths))

    @classmethod
    def lazy(cls, home: Optional[str | Path], keypair_paths: Iterable[str] = ()) -> "Wallet":
        """Like :meth:`from_paths`, but key files are read on the first key lookup."""
        paths = list(keypair_paths)
        return cls(loader=lambda: _load_paths(home, paths))

    def _load(self) -> None:
        if self._loader is None:
            return
        loader, self._loader = self._loader, None
        for kp in loader():
            self.add(kp)

    def add(self, keypair: Keypair) -> None:
        self._keys[bytes(keypair.pubkey())] = keypair

    def signing_key(self, account_id: bytes) -> Optional[Keypair]:
        self._load()
        return self._keys.get(bytes(account_id))

    def __len__(self) -> int:
        self._load()
        return len(self._keys)
