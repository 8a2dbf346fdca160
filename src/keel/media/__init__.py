"""Media storage module (``media`` config sub-tree)."""
