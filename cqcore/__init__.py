"""Provider registry, plugin tracking, resource selection, schema sync, fetch summaries and update checks."""

__version__ = "0.1.0"