"""Exception hierarchy for the session multiplexer.

Format mismatches are never exceptions: parsers decline with
``ok=False``. Everything here is a condition a caller can act on.
"""
from __future__ import annotations


class ChorusError(Exception):
    """Base exception for all multiplexer errors."""


class DuplicateSessionError(ChorusError):
    """A live session already owns this identifier."""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session already live: {session_id}")


class UnknownAgentError(ChorusError):
    """Agent name does not map to a supported agent kind."""
    def __init__(self, name: str, available: list[str]):
        self.name = name
        self.available = available
        avail_str = ", ".join(available) if available else "none"
        super().__init__(
            f"Unknown agent '{name}'. Supported agents: {avail_str}"
        )


class GenerationError(ChorusError):
    """The text-generation service failed or returned nothing usable."""
    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"Generation via {provider} failed: {reason}")


class PlanFormatError(ChorusError):
    """Generated text does not describe a plan."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Malformed plan: {reason}")
