"""Unify overlapping spreadsheet columns across files and consolidate their rows."""

__version__ = "0.1.0"
