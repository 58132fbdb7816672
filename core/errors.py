"""Domain error taxonomy.

Services raise these; ``main.py`` renders them as ``{"error": ..., **context}``
with the status code carried by the class.
"""
from typing import Any, Dict


class DomainError(Exception):
    status_code: int = 400

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.context}


class ValidationError(DomainError):
    status_code = 400


class NotFoundError(DomainError):
    status_code = 404


class EntitlementError(DomainError):
    """Plan limit reached or feature not included in the current tier."""

    status_code = 403

    def __init__(self, message: str, **context: Any):
        context.setdefault("upgrade", True)
        super().__init__(message, **context)


class StateTransitionError(DomainError):
    status_code = 400


class IntegrityError(DomainError):
    """Persistence failure. Not the same thing as sqlalchemy.exc.IntegrityError."""

    status_code = 500


class RateLimitError(DomainError):
    status_code = 429
