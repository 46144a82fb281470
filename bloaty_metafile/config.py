"""
Run configuration.

Values come from, in order of precedence: CLI flags, a JSON file given with
--config (all fields optional), built-in defaults.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ConfigError, DepthBoundError
from .metafile import METRICS
from .packages import DEFAULT_LOCK

DEFAULT_NAME = "bloaty"
DEFAULT_DEEP = 8


@dataclass(frozen=True)
class Config:
    name: str = DEFAULT_NAME
    lock: Optional[Path] = None
    deep: int = DEFAULT_DEEP
    root: Optional[str] = None
    metric: str = "filesize"
    sections: bool = False
    no_sections: bool = False
    workers: int = 1
    input: Optional[Path] = None
    output: Optional[Path] = None
    verbose: bool = False


def load_config(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to read config {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")
    return data


def _pick(cli_value, cfg: Dict[str, Any], key: str, default=None):
    if cli_value is not None:
        return cli_value
    if cfg.get(key) is not None:
        return cfg[key]
    return default


def _as_int(value, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {value!r}")


def default_lock(cwd: Optional[Path] = None) -> Optional[Path]:
    cand = (cwd or Path.cwd()) / DEFAULT_LOCK
    return cand if cand.is_file() else None


def build_config(args, cfg: Dict[str, Any]) -> Config:
    """Merge parsed CLI args over the config file; validate before any work starts."""
    deep = _as_int(_pick(args.deep, cfg, "deep", DEFAULT_DEEP), "deep")
    if deep < 0:
        raise DepthBoundError(f"--deep must be >= 0 (0 = unlimited), got {deep}")

    workers = _as_int(_pick(args.workers, cfg, "workers", 1), "workers")
    if workers < 1:
        raise ConfigError(f"workers must be >= 1, got {workers}")

    metric = _pick(args.metric, cfg, "metric", "filesize")
    if metric not in METRICS:
        raise ConfigError(f"metric must be one of {', '.join(METRICS)}, got {metric!r}")

    lock = _pick(args.lock, cfg, "lock")
    inp = _pick(args.input, cfg, "input")
    out = _pick(args.output, cfg, "output")

    return Config(
        name=str(_pick(args.name, cfg, "name", DEFAULT_NAME)),
        lock=Path(lock) if lock else default_lock(),
        deep=deep,
        root=_pick(args.root, cfg, "root"),
        metric=metric,
        sections=bool(args.sections or cfg.get("sections", False)),
        no_sections=bool(args.no_sections or cfg.get("no_sections", False)),
        workers=workers,
        input=Path(inp) if inp else None,
        output=Path(out) if out else None,
        verbose=bool(args.verbose or cfg.get("verbose", False)),
    )
