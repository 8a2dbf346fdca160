"""Command-line interface for keel (``keel config|secrets|history``)."""
