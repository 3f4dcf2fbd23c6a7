"""External tool adapters (tmux, git, beads, network)."""
