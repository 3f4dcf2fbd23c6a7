"""Tests for beadherd.adapters.git."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeRunner

from beadherd.adapters.git import GitClient, parse_conflicts, parse_worktree_list
from beadherd.errors import ExecError

PORCELAIN = """\
worktree /home/dev/myapp
HEAD 1111111
branch refs/heads/main

worktree /home/dev/myapp-az-1
HEAD 2222222
branch refs/heads/az/az-1

worktree /home/dev/detached
HEAD 3333333
detached
"""


class TestParsing:
    def test_parse_worktree_list(self) -> None:
        entries = parse_worktree_list(PORCELAIN)
        assert [(e.path, e.branch) for e in entries] == [
            ("/home/dev/myapp", "main"),
            ("/home/dev/myapp-az-1", "az/az-1"),
            ("/home/dev/detached", ""),
        ]
        assert entries[1].head == "2222222"

    def test_parse_worktree_list_empty(self) -> None:
        assert parse_worktree_list("") == []

    def test_parse_conflicts(self) -> None:
        output = (
            "Auto-merging src/app.py\n"
            "CONFLICT (content): Merge conflict in src/app.py\n"
            "CONFLICT (modify/delete): docs/old.md deleted in origin/main and modified in HEAD.\n"
            "Automatic merge failed; fix conflicts and then commit the result.\n"
        )
        assert parse_conflicts(output) == ["src/app.py", "docs/old.md"]


class TestGitClient:
    @pytest.mark.asyncio
    async def test_add_worktree_args(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        git = GitClient(tmp_path, runner)
        await git.add_worktree(tmp_path / "wt", "az/az-1", "main")
        call = runner.calls[0]
        assert call["args"] == ["worktree", "add", "-b", "az/az-1", str(tmp_path / "wt"), "main"]
        assert call["cwd"] == tmp_path

    @pytest.mark.asyncio
    async def test_remove_worktree_force(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        await GitClient(tmp_path, runner).remove_worktree("/x", force=True)
        assert runner.calls[0]["args"] == ["worktree", "remove", "--force", "/x"]

    @pytest.mark.asyncio
    async def test_branch_exists(self, tmp_path: Path) -> None:
        runner = FakeRunner({"rev-parse --verify --quiet nope": ExecError("git", ["rev-parse"], returncode=1)})
        git = GitClient(tmp_path, runner)
        assert await git.branch_exists("main")
        assert not await git.branch_exists("nope")

    @pytest.mark.asyncio
    async def test_merge_conflict_is_result(self, tmp_path: Path) -> None:
        failure = ExecError(
            "git",
            ["merge"],
            returncode=1,
            stdout="CONFLICT (content): Merge conflict in a.txt\n",
        )
        git = GitClient(tmp_path, FakeRunner({"merge": failure}))
        result = await git.merge(tmp_path, "origin/main")
        assert not result.success
        assert result.has_conflicts
        assert result.conflict_files == ["a.txt"]

    @pytest.mark.asyncio
    async def test_merge_other_failure_raises(self, tmp_path: Path) -> None:
        failure = ExecError("git", ["merge"], returncode=128, stderr="not something we can merge")
        git = GitClient(tmp_path, FakeRunner({"merge": failure}))
        with pytest.raises(ExecError):
            await git.merge(tmp_path, "origin/nope")

    @pytest.mark.asyncio
    async def test_sync_calls_use_worktree_cwd(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        git = GitClient(tmp_path, runner)
        await git.fetch("/wt")
        await git.diff_stat("/wt", "main")
        assert runner.calls[0] == {"args": ["fetch", "origin"], "cwd": "/wt", "timeout": 30.0}
        assert runner.calls[1]["args"] == ["diff", "--stat", "main...HEAD"]
