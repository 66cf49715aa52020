"""Layered settings: CLI flags > environment > idlcli.toml > defaults."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .constants import (
    DEFAULT_CONFIG_NAME,
    DEFAULT_PROGRAM_ID_TOOL,
    DEFAULT_SEQUENCER_URL,
    DEFAULT_TIMEOUT,
    ENV_CONFIG,
    ENV_PROGRAM_ID_TOOL,
    ENV_SEQUENCER_URL,
    ENV_TIMEOUT,
    ENV_WALLET_HOME,
)
from .errors import ConfigError

_PATH_KEYS = ("idl", "program", "wallet_home")


def _load_toml(path: Path) -> Dict[str, Any]:
    try:
        import tomllib  # Python 3.11+
    except ImportError:  # pragma: no cover
        import tomli as tomllib  # type: ignore
    try:
        return tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc


def _resolve_config_path(config_path: str, raw_path: str) -> str:
    candidate = Path(raw_path).expanduser()
    if candidate.is_absolute():
        return str(candidate)
    return str((Path(config_path).resolve().parent / candidate).resolve())


def find_config(explicit: Optional[str], env: Mapping[str, str]) -> Optional[Path]:
    if explicit:
        path = Path(explicit).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        return path
    env_path = env.get(ENV_CONFIG)
    if env_path:
        path = Path(env_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        return path
    local = Path.cwd() / DEFAULT_CONFIG_NAME
    if local.exists():
        return local
    return None


def load_config_file(path: Path) -> Dict[str, Any]:
    data = _load_toml(path)
    table = data.get("cli", {})
    if not isinstance(table, dict):
        raise ConfigError(f"{path}: [cli] must be a table")
    out: Dict[str, Any] = {}
    for key, value in table.items():
        if key in _PATH_KEYS and isinstance(value, str) and value:
            out[key] = _resolve_config_path(str(path), value)
        else:
            out[key] = value
    return out


def _parse_timeout(raw: Any, source: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{source}: timeout must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{source}: timeout must be positive")
    return value


@dataclass
class Settings:
    idl: Optional[str] = None
    program: Optional[str] = None
    program_id: Optional[str] = None
    sequencer_url: str = DEFAULT_SEQUENCER_URL
    wallet_home: Optional[str] = None
    keypairs: List[str] = field(default_factory=list)
    timeout: float = DEFAULT_TIMEOUT
    program_id_tool: str = DEFAULT_PROGRAM_ID_TOOL
    dry_run: bool = False
    wait: bool = True
    verbose: bool = False
    sources: Dict[str, str] = field(default_factory=dict)


def load_settings(
    flags: Mapping[str, Any],
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Merge CLI flag values (``None`` = not given) over env, file and defaults."""
    env = os.environ if env is None else env
    settings = Settings()

    config_path = find_config(flags.get("config"), env)
    file_values = load_config_file(config_path) if config_path else {}

    env_values: Dict[str, Any] = {}
    if env.get(ENV_SEQUENCER_URL):
        env_values["sequencer_url"] = env[ENV_SEQUENCER_URL]
    if env.get(ENV_WALLET_HOME):
        env_values["wallet_home"] = env[ENV_WALLET_HOME]
    if env.get(ENV_TIMEOUT):
        env_values["timeout"] = env[ENV_TIMEOUT]
    if env.get(ENV_PROGRAM_ID_TOOL):
        env_values["program_id_tool"] = env[ENV_PROGRAM_ID_TOOL]

    for key in ("idl", "program", "sequencer_url", "wallet_home", "timeout", "program_id_tool"):
        for source, values in (("flag", flags), ("env", env_values), (str(config_path), file_values)):
            value = values.get(key)
            if value is None or value == "":
                continue
            if key == "timeout":
                value = _parse_timeout(value, source)
            setattr(settings, key, value)
            settings.sources[key] = source
            break

    settings.program_id = flags.get("program_id")
    settings.keypairs = list(flags.get("keypair") or [])
    settings.dry_run = bool(flags.get("dry_run"))
    settings.wait = not flags.get("no_wait")
    settings.verbose = bool(flags.get("verbose"))
    return settings
