"""Workflow module (``workflow`` config sub-tree)."""
