"""Exceptions shared across the telemetry pipeline."""

from __future__ import annotations


class ValidationError(Exception):
    """Rejected input — nothing was mutated.

    ``errors`` lists every problem found, not just the first.
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors: list[str] = list(errors or [])
