"""Book-club companion: goal progress evaluation and reading statistics."""

__version__ = "0.1.0"
