"""Question bank and printable exam variant export for math teachers."""

__version__ = "0.1.0"
