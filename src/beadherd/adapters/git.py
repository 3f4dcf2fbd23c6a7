"""git adapter: worktree plumbing plus the sync operations sessions need."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from beadherd.adapters.runner import CommandRunner, ExecRunner
from beadherd.errors import ExecError
from beadherd.utilities.logger import get_logger

log = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class WorktreeEntry:
    """One entry of ``git worktree list --porcelain``."""

    path: str
    branch: str = ""
    head: str = ""


@dataclass(slots=True)
class MergeResult:
    success: bool
    has_conflicts: bool = False
    conflict_files: list[str] = field(default_factory=list)
    message: str = ""


class GitClient:
    """Thin wrapper over the git CLI.

    Every call is scoped to a working directory: the repository root by
    default, or the ``cwd`` given per call (typically a task worktree).
    """

    def __init__(
        self,
        repo_dir: str | Path,
        runner: CommandRunner | None = None,
        *,
        timeout: float = 30.0,
    ) -> None:
        self._repo_dir = Path(repo_dir)
        self._runner = runner or ExecRunner("git", default_timeout=timeout)
        self._timeout = timeout

    async def _git(self, *args: str, cwd: str | Path | None = None) -> str:
        return await self._runner.run(list(args), cwd=cwd or self._repo_dir, timeout=self._timeout)

    # ------------------------------------------------------------------
    # Worktrees
    # ------------------------------------------------------------------

    async def add_worktree(self, path: str | Path, branch: str, base_branch: str) -> None:
        await self._git("worktree", "add", "-b", branch, str(path), base_branch)

    async def remove_worktree(self, path: str | Path, *, force: bool = False) -> None:
        args = ["worktree", "remove"]
        if force:
            args.append("--force")
        args.append(str(path))
        await self._git(*args)

    async def prune_worktrees(self) -> None:
        await self._git("worktree", "prune")

    async def list_worktrees(self) -> list[WorktreeEntry]:
        out = await self._git("worktree", "list", "--porcelain")
        return parse_worktree_list(out)

    async def delete_branch(self, branch: str) -> None:
        await self._git("branch", "-D", branch)

    async def branch_exists(self, ref: str) -> bool:
        try:
            await self._git("rev-parse", "--verify", "--quiet", ref)
        except ExecError as exc:
            if exc.returncode is None:
                raise
            return False
        return True

    # ------------------------------------------------------------------
    # Sync operations (scoped to a worktree)
    # ------------------------------------------------------------------

    async def fetch(self, cwd: str | Path, remote: str = "origin") -> None:
        await self._git("fetch", remote, cwd=cwd)

    async def merge(self, cwd: str | Path, branch: str) -> MergeResult:
        try:
            out = await self._git("merge", branch, cwd=cwd)
        except ExecError as exc:
            combined = f"{exc.stdout}\n{exc.stderr}"
            if "CONFLICT" not in combined:
                raise
            conflicts = parse_conflicts(combined)
            log.warning("merge has conflicts", branch=branch, conflicts=conflicts)
            return MergeResult(
                success=False,
                has_conflicts=True,
                conflict_files=conflicts,
                message=exc.stdout.strip(),
            )
        return MergeResult(success=True, message=out)

    async def abort_merge(self, cwd: str | Path) -> None:
        await self._git("merge", "--abort", cwd=cwd)

    async def diff_stat(self, cwd: str | Path, base: str | None = None) -> str:
        args = ["diff", "--stat"]
        if base:
            args.append(f"{base}...HEAD")
        return await self._git(*args, cwd=cwd)


def parse_worktree_list(output: str) -> list[WorktreeEntry]:
    """Parse ``git worktree list --porcelain`` output.

    Entries are separated by blank lines::

        worktree /home/user/repo
        HEAD abc123
        branch refs/heads/main
    """
    entries: list[WorktreeEntry] = []
    path = head = branch = ""
    for raw in [*output.splitlines(), ""]:
        line = raw.strip()
        if line.startswith("worktree "):
            path = line.removeprefix("worktree ")
        elif line.startswith("HEAD "):
            head = line.removeprefix("HEAD ")
        elif line.startswith("branch "):
            branch = line.removeprefix("branch ").removeprefix("refs/heads/")
        elif not line and path:
            entries.append(WorktreeEntry(path=path, branch=branch, head=head))
            path = head = branch = ""
    return entries


def parse_conflicts(output: str) -> list[str]:
    """Extract conflicting file paths from ``git merge`` output.

    Handles ``CONFLICT (content): Merge conflict in <file>`` and the
    ``CONFLICT (modify/delete): <file> deleted in ...`` forms.
    """
    files: list[str] = []
    for line in output.splitlines():
        if "CONFLICT" not in line:
            continue
        if "Merge conflict in " in line:
            files.append(line.split("Merge conflict in ", 1)[1].strip())
            continue
        _, sep, rest = line.partition("): ")
        if not sep:
            continue
        for marker in (" deleted in ", " modified in "):
            if marker in rest:
                files.append(rest.split(marker, 1)[0].strip())
                break
    return files
