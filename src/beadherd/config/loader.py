"""YAML config loader for beadherd."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from beadherd.config.schema import (
    BeadsConfig,
    DevServerConfig,
    DiagnosticsConfig,
    GitConfig,
    HerdConfig,
    MonitorConfig,
    NetworkConfig,
    SessionConfig,
    WorktreeConfig,
)
from beadherd.errors import ConfigurationError

DEFAULT_CONFIG_NAME = ".beadherd.yaml"


def load_config(path: str | Path) -> HerdConfig:
    p = Path(path)
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) if p.exists() else {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {p}: {exc}") from exc
    if not isinstance(raw, dict):
        raw = {}

    try:
        cfg = HerdConfig(
            version=int(raw.get("version", 1)),
            debug=bool(raw.get("debug", False)),
            git=GitConfig(**_pick(_section(raw, "git"), GitConfig)),
            session=SessionConfig(**_pick(_section(raw, "session"), SessionConfig)),
            monitor=MonitorConfig(**_pick(_section(raw, "monitor"), MonitorConfig)),
            dev_server=DevServerConfig(**_pick(_section(raw, "dev_server"), DevServerConfig)),
            worktree=WorktreeConfig(**_pick(_section(raw, "worktree"), WorktreeConfig)),
            network=NetworkConfig(**_pick(_section(raw, "network"), NetworkConfig)),
            beads=BeadsConfig(**_pick(_section(raw, "beads"), BeadsConfig)),
            diagnostics=DiagnosticsConfig(**_pick(_section(raw, "diagnostics"), DiagnosticsConfig)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid config in {p}: {exc}") from exc

    validate_config(cfg)
    return cfg


def find_config(start: str | Path) -> Path:
    """Return the nearest ``.beadherd.yaml`` at or above *start*, or the default location."""
    here = Path(start).resolve()
    for candidate in (here, *here.parents):
        path = candidate / DEFAULT_CONFIG_NAME
        if path.exists():
            return path
    return here / DEFAULT_CONFIG_NAME


def validate_config(cfg: HerdConfig) -> None:
    if cfg.dev_server.base_port <= 0 or cfg.dev_server.max_port > 65535:
        raise ConfigurationError("dev_server ports must be within 1-65535")
    if cfg.dev_server.base_port > cfg.dev_server.max_port:
        raise ConfigurationError(
            f"dev_server.base_port ({cfg.dev_server.base_port}) exceeds max_port ({cfg.dev_server.max_port})"
        )
    if cfg.monitor.capture_lines <= 0:
        raise ConfigurationError("monitor.capture_lines must be positive")
    if cfg.monitor.poll_interval_ms <= 0:
        raise ConfigurationError("monitor.poll_interval_ms must be positive")
    if "{task_id}" not in cfg.worktree.name_format:
        raise ConfigurationError("worktree.name_format must contain {task_id}")


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key, {})
    return value if isinstance(value, dict) else {}


def _pick(raw: dict[str, Any], model_type: type[Any]) -> dict[str, Any]:
    allowed = set(model_type.__dataclass_fields__.keys())
    return {k: v for k, v in raw.items() if k in allowed}
