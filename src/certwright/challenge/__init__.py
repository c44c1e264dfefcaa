"""Pluggable identifier validation backends.

Exports the abstract base class, the structured error type, and the
registry.
"""

from certwright.challenge.base import ChallengeError, ValidationBackend
from certwright.challenge.registry import ValidationRegistry, register_backend

__all__ = [
    "ChallengeError",
    "ValidationBackend",
    "ValidationRegistry",
    "register_backend",
]
