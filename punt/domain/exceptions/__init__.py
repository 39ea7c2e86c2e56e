"""Domain layer exceptions"""

from .base import (
    BackupError,
    BadRequestError,
    ConflictError,
    DomainError,
    ForbiddenError,
    NotFoundError,
    RateLimitError,
    TooManyConnectionsError,
    UnauthorizedError,
    ValidationError,
)

__all__ = [
    "DomainError",
    "NotFoundError",
    "BadRequestError",
    "UnauthorizedError",
    "ForbiddenError",
    "ConflictError",
    "RateLimitError",
    "ValidationError",
    "BackupError",
    "TooManyConnectionsError",
]
