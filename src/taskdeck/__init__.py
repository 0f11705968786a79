"""taskdeck: personal task list with an optimistic sync engine."""

__version__ = "0.1.0"
