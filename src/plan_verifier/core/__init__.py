"""Core utilities shared across plan_verifier."""

from .errors import (
    AppError,
    CheckerNotFoundError,
    ConfigError,
    DuplicateCheckerError,
    ErrorCode,
    PlanNotFoundError,
    ProjectNotFoundError,
    RegistryFrozenError,
    VerificationError,
    VerificationFailure,
)

__all__ = [
    "AppError",
    "CheckerNotFoundError",
    "ConfigError",
    "DuplicateCheckerError",
    "ErrorCode",
    "PlanNotFoundError",
    "ProjectNotFoundError",
    "RegistryFrozenError",
    "VerificationError",
    "VerificationFailure",
]
