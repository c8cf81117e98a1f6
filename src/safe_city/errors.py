"""Error taxonomy for incident queries."""

from __future__ import annotations


class InvalidInput(Exception):
    """Raised when query parameters are missing, malformed or out of range.

    The first message is what the caller sees; the rest are detail.
    """

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Invalid input: {'; '.join(errors)}")

    @property
    def message(self) -> str:
        return self.errors[0] if self.errors else "Invalid input"


class UpstreamUnavailable(Exception):
    """Raised when the incident store cannot be read."""
