from __future__ import annotations


# PUBLIC_INTERFACE
class ValidationError(ValueError):
    """
    Raised when a TodoRecord violates a field constraint.

    The only constraint enforced today is a non-blank title. Repositories raise
    this before any write, so a rejected record is never partially stored.
    """

    def __init__(self, message: str = "blank title", field: str = "title") -> None:
        super().__init__(message)
        self.message = message
        self.field = field
