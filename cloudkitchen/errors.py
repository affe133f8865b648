"""Domain errors raised by the services layer.

Each carries the HTTP status it maps to; ``main.py`` installs a single handler
that renders ``{"detail": message}`` with that status.
"""


class DomainError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    status_code = 400


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    status_code = 409


class SequenceCollisionError(ConflictError):
    """Two allocations raced for the same order/invoice number; retry with a fresh value."""


class TransientDependencyError(DomainError):
    """Broadcast or notification failure. Logged by the caller, never surfaced."""
    status_code = 503
