"""Per-task git worktree management."""
