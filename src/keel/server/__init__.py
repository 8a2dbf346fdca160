"""Runtime HTTP server module (``server`` config sub-tree)."""
