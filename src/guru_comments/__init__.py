"""Guru: self-hosted threaded commenting."""

__version__ = "0.1.0"
