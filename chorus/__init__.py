"""Chorus — streaming session multiplexer for command-line AI agents."""

__version__ = "0.1.0"
