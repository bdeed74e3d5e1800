"""Discovery orchestration and per-run state."""
