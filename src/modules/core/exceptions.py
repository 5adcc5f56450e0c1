"""Base class for domain errors.

Every domain error carries a stable ``code`` so presentation layers can
render a role-appropriate message without parsing exception text.
"""

from __future__ import annotations


class DomainError(Exception):
    """Root of the domain error taxonomy."""

    code: str = "domain_error"
    default_message: str = "The request could not be completed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
