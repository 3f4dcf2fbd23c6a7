"""Session orchestration: registry, monitor, ports, diagnostics, phases."""
