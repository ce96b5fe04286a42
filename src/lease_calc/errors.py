from __future__ import annotations


class LeaseCalcError(Exception):
    pass


class InvalidInputError(LeaseCalcError, ValueError):
    """A required deal field is missing, zero or not a finite number."""

    def __init__(self, field: str) -> None:
        super().__init__(f"Invalid Input: {field}")
        self.field = field


class UncalculatedStateError(LeaseCalcError, RuntimeError):
    """A result was requested before any successful calculation."""
