"""Structured error types for plan verification."""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Standardized error codes for the application."""

    DUPLICATE_CHECKER = "duplicate_checker"
    CHECKER_NOT_FOUND = "checker_not_found"
    REGISTRY_FROZEN = "registry_frozen"
    PLAN_NOT_FOUND = "plan_not_found"
    PROJECT_NOT_FOUND = "project_not_found"
    CONFIG_ERROR = "config_error"
    VERIFICATION_FAILED = "verification_failed"


class AppError(Exception):
    """
    Structured application error.

    Attributes:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        details: Additional error context
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert error to a JSON-serializable dictionary.

        Returns:
            Dictionary with code, title, detail and optional errors
        """
        problem: dict[str, Any] = {
            "code": self.code.value,
            "title": self.code.value.replace("_", " ").title(),
            "detail": self.message,
        }
        if self.details:
            problem["errors"] = self.details
        return problem


class DuplicateCheckerError(AppError):
    """Raised when a checker id is registered twice."""

    def __init__(self, checker_id: str) -> None:
        super().__init__(
            code=ErrorCode.DUPLICATE_CHECKER,
            message=f"Checker '{checker_id}' already registered",
            details={"checker_id": checker_id},
        )


class CheckerNotFoundError(AppError):
    """Raised when a checker id is not registered."""

    def __init__(self, checker_id: str) -> None:
        super().__init__(
            code=ErrorCode.CHECKER_NOT_FOUND,
            message=f"Checker '{checker_id}' is not registered",
            details={"checker_id": checker_id},
        )


class RegistryFrozenError(AppError):
    """Raised when registering into a registry after startup."""

    def __init__(self, checker_id: str) -> None:
        super().__init__(
            code=ErrorCode.REGISTRY_FROZEN,
            message=f"Cannot register '{checker_id}': registry is frozen",
            details={"checker_id": checker_id},
        )


class PlanNotFoundError(AppError):
    """Error when the plan file does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(
            code=ErrorCode.PLAN_NOT_FOUND,
            message=f"Plan file not found: {path}",
            details={"path": path},
        )


class ProjectNotFoundError(AppError):
    """Error when the project directory does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(
            code=ErrorCode.PROJECT_NOT_FOUND,
            message=f"Project directory not found: {path}",
            details={"path": path},
        )


class ConfigError(AppError):
    """Invalid configuration value."""

    def __init__(self, message: str, variable: Optional[str] = None) -> None:
        super().__init__(
            code=ErrorCode.CONFIG_ERROR,
            message=message,
            details={"variable": variable} if variable else None,
        )


class VerificationFailure(str, Enum):
    """Categories of completion-service failures."""

    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    UNKNOWN = "unknown"


_FAILURE_MESSAGES = {
    VerificationFailure.AUTHENTICATION: (
        "Authentication failed. Check ANTHROPIC_API_KEY or run "
        "`plan-verifier init`."
    ),
    VerificationFailure.RATE_LIMIT: "Rate limited by the API. Wait a moment and retry.",
    VerificationFailure.NETWORK: "Network error while contacting the API.",
    VerificationFailure.UNKNOWN: "Verification request failed.",
}


class VerificationError(AppError):
    """Error raised when the streamed review request fails."""

    def __init__(self, failure: VerificationFailure, reason: str) -> None:
        self.failure = failure
        super().__init__(
            code=ErrorCode.VERIFICATION_FAILED,
            message=f"{_FAILURE_MESSAGES[failure]} ({reason})",
            details={"failure": failure.value},
        )
