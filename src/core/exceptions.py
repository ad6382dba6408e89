"""Structured exception hierarchy for bootstrap and request handling.

This module defines every error the bootstrap pipeline, the service registry
and dispatched controllers raise. Two families matter to the request
lifecycle:

- **Fatal bootstrap errors**: raised by a pipeline step, they abort the
  remaining steps and reach the globally registered exception handlers
  (``UnrecognizedEnvironmentError``, ``ApplicationDisabledError``).
- **Request-terminal errors** (``RequestError`` subclasses): raised by the
  controller ``respond_to_*`` shortcuts to halt an action immediately. The
  dispatch boundary renders them into the response and the request still
  concludes normally.

Every error carries an error code, a severity, structured context and a
fingerprint so that similar errors group together in logs.
"""

import hashlib
import traceback
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for Hexgate errors."""

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred in the system."""

    SERVICE_NOT_REGISTERED = "SERVICE_NOT_REGISTERED"
    """A service was requested from the registry but nothing provides it."""

    # Bootstrap errors
    UNRECOGNIZED_ENVIRONMENT = "UNRECOGNIZED_ENVIRONMENT"
    """The deployment tier is not one of the known tiers."""

    APPLICATION_DISABLED = "APPLICATION_DISABLED"
    """The configuration switch ``global.enabled`` is missing or off."""

    # Request errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Input validation failed due to invalid or malformed data."""

    NOT_FOUND = "NOT_FOUND"
    """The requested resource could not be found."""

    UNAUTHORIZED = "UNAUTHORIZED"
    """Authentication failed or the caller is not authorized."""

    CONFLICT = "CONFLICT"
    """The request conflicts with the current state of the resource."""


class Severity(Enum):
    """Severity levels used to decide how loudly an error is logged."""

    LOW = "LOW"
    """Expected errors caused by client input."""

    MEDIUM = "MEDIUM"
    """Errors that affect a single request but not the service."""

    HIGH = "HIGH"
    """Errors that need attention (security, broken wiring)."""

    CRITICAL = "CRITICAL"
    """Errors that stop the service from serving requests."""


class HexgateError(Exception):
    """Base exception class for all Hexgate exceptions.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        # Capture stack trace at creation time
        self.stack_trace = traceback.format_stack()[:-1]  # Exclude this frame
        self.fingerprint = self._generate_fingerprint()

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def _generate_fingerprint(self) -> str:
        """Generate a fingerprint for error grouping.

        Returns:
            str: A hash combining the error type, code and raising location.
        """
        max_frames = 5
        relevant_frames = self.stack_trace[-max_frames:]

        fingerprint_data = f"{self.__class__.__name__}:{self.error_code}"
        for frame in relevant_frames:
            if "site-packages" not in frame and "src/" in frame:
                lines = frame.strip().split("\n")
                if lines:
                    fingerprint_data += f":{lines[0]}"

        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    @property
    def is_expected(self) -> bool:
        """Whether this error is part of normal operation (LOW or MEDIUM)."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    @property
    def should_alert(self) -> bool:
        """Whether this error should trigger alerts (HIGH or CRITICAL)."""
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def __str__(self) -> str:
        """Return a string representation of the exception.

        Returns:
            str: A formatted string containing the error code and message
        """
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return a detailed representation of the exception.

        Returns:
            str: A string showing the class name, error code, message, severity,
                and context
        """
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class NotRegisteredError(HexgateError):
    """Raised when the service registry cannot provide a requested key.

    Args:
        key: The registry key that was requested.
    """

    def __init__(self, key: str) -> None:
        super().__init__(
            ErrorCode.SERVICE_NOT_REGISTERED,
            f"Service not registered: {key}",
            Severity.HIGH,
            {"service_key": key},
        )
        self.key = key


class UnrecognizedEnvironmentError(HexgateError):
    """Raised by the environment step when the deployment tier is unknown.

    Args:
        environment: The tier reported by the environment collaborator.
    """

    def __init__(self, environment: str) -> None:
        super().__init__(
            ErrorCode.UNRECOGNIZED_ENVIRONMENT,
            "Unrecognised environment.",
            Severity.CRITICAL,
            {"environment": environment},
        )
        self.environment = environment


class ApplicationDisabledError(HexgateError):
    """Raised by the config step when ``global.enabled`` is missing or off."""

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.APPLICATION_DISABLED,
            "Application disabled!",
            Severity.CRITICAL,
        )


class RequestError(HexgateError):
    """Base class for request-terminal errors.

    A request error halts the running controller action. The dispatch
    boundary turns it into the matching HTTP response; other requests are
    unaffected.
    """


class BadRequestError(RequestError):
    """Exception raised when request input fails validation.

    Args:
        errors: Human-readable validation messages returned to the client
        message: Summary message (defaults to "Bad request")
        error_code: Error code (defaults to VALIDATION_ERROR)
    """

    def __init__(
        self,
        errors: list[str] | None = None,
        message: str = "Bad request",
        error_code: str | ErrorCode = ErrorCode.VALIDATION_ERROR,
    ) -> None:
        self.errors = list(errors or [])
        context = {"errors": self.errors} if self.errors else None
        super().__init__(error_code, message, Severity.LOW, context)


class UnauthorizedError(RequestError):
    """Exception raised when authentication or authorization fails.

    Args:
        message: Description of the authorization failure
        error_code: Error code (defaults to UNAUTHORIZED)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.UNAUTHORIZED,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.HIGH, context, cause)


class NotFoundError(RequestError):
    """Exception raised when a requested resource or action does not exist.

    Args:
        message: Description of what was not found
        error_code: Error code (defaults to NOT_FOUND)
        context: Additional context information about the error
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.NOT_FOUND,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context)


class ConflictError(RequestError):
    """Exception raised when a request conflicts with existing state.

    Args:
        errors: Human-readable conflict descriptions returned to the client
        message: Summary message (defaults to "Conflict")
    """

    def __init__(
        self,
        errors: list[str] | None = None,
        message: str = "Conflict",
    ) -> None:
        self.errors = list(errors or [])
        context = {"errors": self.errors} if self.errors else None
        super().__init__(ErrorCode.CONFLICT, message, Severity.MEDIUM, context)
