"""
Exception hierarchy for the Orchestra runtime.

This module defines structured exceptions with error codes, context, and
serialization support. Provider failures are split into transient
(overloaded) and permanent errors so callers can decide what to surface.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    UNKNOWN = "UNKNOWN"
    CONFIGURATION = "CONFIGURATION"
    CONNECTION = "CONNECTION"
    PROVIDER = "PROVIDER"
    OVERLOADED = "OVERLOADED"
    NOT_INITIALIZED = "NOT_INITIALIZED"
    VALIDATION = "VALIDATION"


class OrchestraError(Exception):
    """
    Base exception class for all Orchestra errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    error_code : ErrorCode, default=ErrorCode.UNKNOWN
        Categorization code for the error.
    details : dict[str, Any] | None, optional
        Additional context about the error.
    cause : Exception | None, optional
        The underlying exception that caused this error.

    Examples
    --------
    >>> raise OrchestraError("Something went wrong", ErrorCode.UNKNOWN)
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.error_code: ErrorCode = error_code
        self.details: dict[str, Any] = details or {}
        self.cause: Exception | None = cause

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize the error to a dictionary.

        Returns
        -------
        dict[str, Any]
            Dictionary representation of the error with all context.
        """
        result: dict[str, Any] = {
            "type": self.__class__.__name__,
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }
        if self.cause:
            result["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return result


class ConfigurationError(OrchestraError):
    """
    Exception raised for configuration-related errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    config_key : str | None, optional
        The configuration key that caused the error.
    config_file : str | None, optional
        The configuration file path where the error occurred.
    details : dict[str, Any] | None, optional
        Additional context about the error.
    cause : Exception | None, optional
        The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        config_file: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        if config_file:
            details["config_file"] = config_file
        super().__init__(
            message,
            error_code=ErrorCode.CONFIGURATION,
            details=details,
            cause=cause,
        )
        self.config_key: str | None = config_key
        self.config_file: str | None = config_file


class ValidationError(OrchestraError):
    """
    Exception raised when input data fails validation.

    Parameters
    ----------
    message : str
        Human-readable error message.
    field : str | None, optional
        The field that failed validation.
    details : dict[str, Any] | None, optional
        Additional context about the error.
    cause : Exception | None, optional
        The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(
            message,
            error_code=ErrorCode.VALIDATION,
            details=details,
            cause=cause,
        )
        self.field: str | None = field


class InvalidModelStringError(ValidationError):
    """
    Exception raised when a model key is not in ``provider/model-id`` form.

    Examples
    --------
    >>> raise InvalidModelStringError("gpt-4o")
    """

    def __init__(self, model_string: str) -> None:
        super().__init__(
            f'Invalid model format: "{model_string}". Expected "provider/model-id".',
            field="model",
            details={"model": model_string},
        )
        self.model_string: str = model_string


class ProviderError(OrchestraError):
    """
    Exception raised for permanent provider failures.

    These are not retried: authentication failures, bad requests, and any
    vendor error that is not an overload signal.

    Parameters
    ----------
    message : str
        Human-readable error message.
    provider : str | None, optional
        Provider type that failed.
    status_code : int | None, optional
        HTTP status code if applicable.
    details : dict[str, Any] | None, optional
        Additional context about the error.
    cause : Exception | None, optional
        The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        error_code: ErrorCode = ErrorCode.PROVIDER,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if provider:
            details["provider"] = provider
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(
            message,
            error_code=error_code,
            details=details,
            cause=cause,
        )
        self.provider: str | None = provider
        self.status_code: int | None = status_code


class ProviderNotInitializedError(ProviderError):
    """
    Exception raised when a provider is used before it has a credential.

    Examples
    --------
    >>> raise ProviderNotInitializedError("anthropic")
    """

    def __init__(self, provider: str) -> None:
        super().__init__(
            f"Provider {provider} not initialized",
            provider=provider,
            error_code=ErrorCode.NOT_INITIALIZED,
        )


class ProviderOverloadedError(ProviderError):
    """
    Exception raised once retries for an overloaded provider are exhausted.

    Parameters
    ----------
    vendor_name : str
        Display name of the vendor, used in the user-facing message.
    provider : str | None, optional
        Provider type that failed.
    cause : Exception | None, optional
        The last overload error returned by the vendor.
    """

    def __init__(
        self,
        vendor_name: str,
        provider: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            f"{vendor_name} API is overloaded. Please try again in a moment.",
            provider=provider,
            error_code=ErrorCode.OVERLOADED,
            cause=cause,
        )
        self.vendor_name: str = vendor_name
