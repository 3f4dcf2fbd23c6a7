"""Configuration schema for beadherd YAML files."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class GitConfig:
    base_branch: str = "main"
    branch_prefix: str = "az/"


@dataclass(slots=True)
class SessionConfig:
    shell: str = "zsh"
    agent_command: str = "claude"
    resume_prompt: str = "continue"
    command_timeout_seconds: float = 10.0


@dataclass(slots=True)
class MonitorConfig:
    poll_interval_ms: int = 500
    capture_lines: int = 100
    capture_timeout_seconds: float = 2.0


@dataclass(slots=True)
class DevServerConfig:
    base_port: int = 3000
    max_port: int = 3100


@dataclass(slots=True)
class WorktreeConfig:
    base_path: str = ".."  # relative to the repository root
    name_format: str = "{project}-{task_id}"


@dataclass(slots=True)
class NetworkConfig:
    check_url: str = "https://github.com"
    timeout_seconds: float = 5.0
    retry_attempts: int = 3


@dataclass(slots=True)
class BeadsConfig:
    binary: str = "bd"
    list_timeout_seconds: float = 5.0
    refresh_interval_seconds: float = 5.0


@dataclass(slots=True)
class DiagnosticsConfig:
    interval_seconds: float = 10.0


@dataclass(slots=True)
class HerdConfig:
    version: int = 1
    debug: bool = False
    git: GitConfig = field(default_factory=GitConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    dev_server: DevServerConfig = field(default_factory=DevServerConfig)
    worktree: WorktreeConfig = field(default_factory=WorktreeConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    beads: BeadsConfig = field(default_factory=BeadsConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)
