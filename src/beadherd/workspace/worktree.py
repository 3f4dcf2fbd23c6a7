"""Per-task git worktrees.

Every task gets a sibling directory of the repository and its own branch,
both derived from the task ID::

    ~/src/myapp             <- repository
    ~/src/myapp-az-12       <- worktree for az-12, on branch az/az-12

Worktrees are created and removed only on explicit request.
"""

from __future__ import annotations

from pathlib import Path

from beadherd.adapters.git import GitClient
from beadherd.config.schema import GitConfig, WorktreeConfig
from beadherd.errors import (
    BaseBranchMissingError,
    ExecError,
    WorktreeExistsError,
    WorktreeNotFoundError,
)
from beadherd.protocol.models import Worktree
from beadherd.utilities.logger import get_logger

log = get_logger(__name__)


class WorktreeCoordinator:
    def __init__(
        self,
        git: GitClient,
        repo_dir: str | Path,
        *,
        worktree_config: WorktreeConfig | None = None,
        git_config: GitConfig | None = None,
    ) -> None:
        self._git = git
        self._repo_dir = Path(repo_dir).resolve()
        self._worktree_config = worktree_config or WorktreeConfig()
        self._git_config = git_config or GitConfig()

    def path_for(self, task_id: str) -> Path:
        name = self._worktree_config.name_format.format(
            project=self._repo_dir.name, task_id=task_id
        )
        return (self._repo_dir / self._worktree_config.base_path / name).resolve()

    def branch_for(self, task_id: str) -> str:
        return f"{self._git_config.branch_prefix}{task_id}"

    async def create(self, task_id: str, base_branch: str | None = None) -> Worktree:
        """Create the task's worktree on a fresh branch from *base_branch*.

        Raises WorktreeExistsError if one is already there,
        BaseBranchMissingError if the base does not resolve, and ExecError
        if git itself fails.
        """
        base = base_branch or self._git_config.base_branch
        path = self.path_for(task_id)
        branch = self.branch_for(task_id)

        if path.exists() or await self._find(task_id) is not None:
            raise WorktreeExistsError(task_id, str(path))
        if not await self._git.branch_exists(base):
            raise BaseBranchMissingError(base)

        await self._git.prune_worktrees()
        await self._git.add_worktree(path, branch, base)
        log.info("worktree created", task_id=task_id, path=str(path), branch=branch, base=base)
        return Worktree(path=str(path), branch=branch, task_id=task_id)

    async def remove(self, task_id: str, *, force: bool = False) -> None:
        """Remove the task's worktree, then its branch (best effort)."""
        existing = await self._find(task_id)
        if existing is None:
            raise WorktreeNotFoundError(task_id)

        await self._git.remove_worktree(existing.path, force=force)
        try:
            await self._git.delete_branch(existing.branch)
        except ExecError as exc:
            log.warning("branch delete failed", task_id=task_id, branch=existing.branch, error=str(exc))
        log.info("worktree removed", task_id=task_id, path=existing.path)

    async def list(self) -> list[Worktree]:
        """Managed worktrees: those on a branch carrying the configured prefix."""
        prefix = self._git_config.branch_prefix
        result: list[Worktree] = []
        for entry in await self._git.list_worktrees():
            if not entry.branch.startswith(prefix):
                continue
            result.append(
                Worktree(path=entry.path, branch=entry.branch, task_id=entry.branch.removeprefix(prefix))
            )
        return result

    async def exists(self, task_id: str) -> bool:
        return await self._find(task_id) is not None

    async def _find(self, task_id: str) -> Worktree | None:
        branch = self.branch_for(task_id)
        path = str(self.path_for(task_id))
        for wt in await self.list():
            if wt.branch == branch or wt.path == path:
                return wt
        return None
