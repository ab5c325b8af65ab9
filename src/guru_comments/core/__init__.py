"""Core configuration and error primitives."""
