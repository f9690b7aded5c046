from __future__ import annotations

import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict

from .errors import ConfigError


@dataclass
class EngineConfig:
    # [search]
    max_backtracks: int = 20_000
    timeout_seconds: float = 30.0
    # [session]
    step_budget: int = 5_000
    max_unit_attempts: int = 3
    session_ttl_seconds: float = 1_800.0
    # [grid]
    normal_classroom_type: str = "normal"


_SECTIONS = {
    "search": ("max_backtracks", "timeout_seconds"),
    "session": ("step_budget", "max_unit_attempts", "session_ttl_seconds"),
    "grid": ("normal_classroom_type",),
}
_SESSION_ALIASES = {"ttl_seconds": "session_ttl_seconds"}


def _project_root() -> Path:
    # timetable_engine/config.py -> project root is parents[1]
    return Path(__file__).resolve().parents[1]


def default_config_path() -> Path:
    return _project_root() / "configs" / "engine.toml"


def load_config(path: Path | str | None = None) -> EngineConfig:
    """Load engine settings from configs/engine.toml if present, else defaults.

    Recognised tables: [search] max_backtracks, timeout_seconds;
    [session] step_budget, max_unit_attempts, ttl_seconds;
    [grid] normal_classroom_type. Unknown keys are ignored.
    """
    cfg = Path(path) if path is not None else default_config_path()
    if not cfg.exists():
        if path is not None:
            raise ConfigError(f"Config file not found: {cfg}")
        return EngineConfig()
    try:
        data: Dict[str, Any] = tomllib.loads(cfg.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Cannot parse {cfg}: {e}") from e

    values: Dict[str, Any] = {}
    for section, names in _SECTIONS.items():
        table = data.get(section, {})
        if not isinstance(table, dict):
            raise ConfigError(f"[{section}] in {cfg} must be a table")
        for key, raw in table.items():
            name = _SESSION_ALIASES.get(key, key) if section == "session" else key
            if name in names:
                values[name] = raw
    return _coerce(values, source=str(cfg))


def _coerce(values: Dict[str, Any], *, source: str) -> EngineConfig:
    base = EngineConfig()
    out: Dict[str, Any] = {}
    for f in fields(EngineConfig):
        if f.name not in values:
            continue
        default = getattr(base, f.name)
        raw = values[f.name]
        try:
            out[f.name] = type(default)(raw)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{source}: {f.name}={raw!r} is not a valid {type(default).__name__}") from e
    cfg = EngineConfig(**out)
    if cfg.max_backtracks < 0 or cfg.timeout_seconds <= 0:
        raise ConfigError(f"{source}: search budget must be positive")
    if cfg.step_budget <= 0 or cfg.max_unit_attempts <= 0 or cfg.session_ttl_seconds <= 0:
        raise ConfigError(f"{source}: session limits must be positive")
    return cfg
