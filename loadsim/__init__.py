"""Live query load simulator."""

__version__ = "0.1.0"
