"""
core/errors.py
──────────────
Error taxonomy shared by the engine and the HTTP layer.

  InputInvalid            → malformed request, rejected before any I/O
  UpstreamUnavailable     → place search / context provider failure (degraded)
  ConcurrencyConflict     → stale taste-profile version, caller should retry
  OptimizationInfeasible  → route optimizer given nothing to optimize
"""

from __future__ import annotations

from typing import List, Optional


class WandrError(Exception):
    """Base class for every error raised by the engine."""


class InputInvalid(WandrError):
    """The request failed validation; ``errors`` lists every problem found."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid input")


class UpstreamUnavailable(WandrError):
    """An external collaborator (place catalog, weather) failed or timed out."""

    def __init__(self, provider: str, detail: str = ""):
        self.provider = provider
        self.detail = detail
        super().__init__(f"{provider} unavailable: {detail}" if detail else f"{provider} unavailable")


class ConcurrencyConflict(WandrError):
    """A compare-and-swap update lost the race against a concurrent writer."""

    def __init__(self, user_id: str, expected_version: int, current_version: Optional[int] = None):
        self.user_id = user_id
        self.expected_version = expected_version
        self.current_version = current_version
        super().__init__(
            f"Taste profile for {user_id!r} changed concurrently "
            f"(expected version {expected_version}, found {current_version})"
        )


class OptimizationInfeasible(WandrError):
    """Route optimization cannot proceed with the given input."""
