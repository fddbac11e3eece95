"""Storyloop: variant management, word diffs and a human-in-the-loop tailoring workflow."""

__version__ = "0.1.0"
