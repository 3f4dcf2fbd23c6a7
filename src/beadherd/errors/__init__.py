"""Beadherd error hierarchy."""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """Category of error for classification and handling."""

    USER = "user"
    EXEC = "exec"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


class HerdError(Exception):
    """Base error for all beadherd exceptions."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.details: dict[str, Any] = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r}, category={self.category!r})"


# ---------------------------------------------------------------------------
# User-recoverable: reported to the caller, no state change
# ---------------------------------------------------------------------------


class UserError(HerdError):
    """An operation was refused; nothing changed."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, category=ErrorCategory.USER, retryable=False, **kwargs)


class AlreadyActiveError(UserError):
    """The task already has an active session."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Session already active for {task_id}", details={"task_id": task_id})
        self.task_id = task_id


class SessionNotFoundError(UserError):
    """No session is registered for the task."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"No active session for {task_id}", details={"task_id": task_id})
        self.task_id = task_id


class InvalidTransitionError(UserError):
    """A lifecycle event is not legal from the session's current state."""

    def __init__(self, task_id: str, from_state: str, event: str) -> None:
        super().__init__(
            f"Cannot {event} session {task_id} while {from_state}",
            details={"task_id": task_id, "from_state": from_state, "event": event},
        )
        self.task_id = task_id
        self.from_state = from_state
        self.event = event


class NoPortsAvailableError(UserError):
    """Every port in the configured range is held by another task."""

    def __init__(self, base_port: int, max_port: int) -> None:
        super().__init__(
            f"No available ports in range {base_port}-{max_port}",
            details={"base_port": base_port, "max_port": max_port},
        )


class PortInUseError(UserError):
    """The port is already recorded against a different task."""

    def __init__(self, port: int, holder: str) -> None:
        super().__init__(f"Port {port} is already held by {holder}", details={"port": port, "holder": holder})
        self.port = port
        self.holder = holder


class WorktreeExistsError(UserError):
    """A worktree for the task already exists; it must be removed first."""

    def __init__(self, task_id: str, path: str) -> None:
        super().__init__(
            f"Worktree for {task_id} already exists at {path}",
            details={"task_id": task_id, "path": path},
        )
        self.task_id = task_id
        self.path = path


class WorktreeNotFoundError(UserError):
    """There is no worktree to remove for the task."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"No worktree found for {task_id}", details={"task_id": task_id})
        self.task_id = task_id


class BaseBranchMissingError(UserError):
    """The branch a worktree should be created from does not exist."""

    def __init__(self, base_branch: str) -> None:
        super().__init__(f"Base branch not found: {base_branch}", details={"base_branch": base_branch})
        self.base_branch = base_branch


# ---------------------------------------------------------------------------
# Transient I/O
# ---------------------------------------------------------------------------


class ExecError(HerdError):
    """An external command (tmux, git, bd) failed."""

    def __init__(
        self,
        tool: str,
        args: Sequence[str],
        *,
        returncode: int | None = None,
        stderr: str = "",
        stdout: str = "",
        message: str | None = None,
        retryable: bool = True,
    ) -> None:
        cmd = " ".join([tool, *args])
        text = message or f"{cmd} failed (exit {returncode}): {stderr.strip()}"
        super().__init__(
            text,
            category=ErrorCategory.EXEC,
            retryable=retryable,
            details={"tool": tool, "args": list(args), "returncode": returncode},
        )
        self.tool = tool
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout


class CommandTimeoutError(ExecError):
    """An external command exceeded its deadline."""

    def __init__(self, tool: str, args: Sequence[str], timeout: float) -> None:
        super().__init__(
            tool,
            args,
            message=f"{' '.join([tool, *args])} timed out after {timeout}s",
        )
        self.timeout = timeout


class TaskSourceError(HerdError):
    """The task source returned something unusable."""

    def __init__(self, op: str, message: str, *, retryable: bool = True) -> None:
        super().__init__(f"beads {op}: {message}", category=ErrorCategory.EXEC, retryable=retryable)
        self.op = op


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(HerdError):
    """Invalid or missing configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category=ErrorCategory.CONFIGURATION, retryable=False)

