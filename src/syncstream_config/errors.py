"""Error hierarchy for syncstream-config."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

__all__ = [
    "ConfigurationError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "ConfigFormatError",
    "CircularReferenceError",
    "ReferenceDepthExceededError",
    "TypeConversionError",
    "SectionRegistrationError",
    "ErrorCodes",
]


class ConfigurationError(Exception):
    """Base error for all syncstream-config errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details: dict[str, Any] = details or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ConfigFileNotFoundError(ConfigurationError):
    """Raised when a configuration file cannot be found."""

    def __init__(self, file_path: str, **kwargs: Any) -> None:
        super().__init__(
            code="CONFIG_FILE_NOT_FOUND",
            message=f"Configuration file not found: {file_path}",
            details={"file_path": file_path},
            **kwargs,
        )

    @property
    def file_path(self) -> str:
        return self.details["file_path"]


class ConfigParseError(ConfigurationError):
    """Raised when a configuration file cannot be read or parsed."""

    def __init__(self, file_path: str, reason: str, **kwargs: Any) -> None:
        super().__init__(
            code="CONFIG_PARSE_ERROR",
            message=f"Invalid configuration file '{file_path}': {reason}",
            details={"file_path": file_path, "reason": reason},
            **kwargs,
        )

    @property
    def file_path(self) -> str:
        return self.details["file_path"]

    @property
    def reason(self) -> str:
        return self.details["reason"]


class ConfigFormatError(ConfigurationError):
    """Raised when a configuration file has an unsupported extension."""

    def __init__(self, file_path: str, **kwargs: Any) -> None:
        super().__init__(
            code="CONFIG_FORMAT_UNSUPPORTED",
            message=f"Unsupported configuration format: {file_path}. Expected .json, .yaml, .yml or .xml",
            details={"file_path": file_path},
            **kwargs,
        )


class CircularReferenceError(ConfigurationError):
    """Raised when a variable reference chain loops back on itself."""

    def __init__(self, reference_chain: list[str], **kwargs: Any) -> None:
        super().__init__(
            code="CIRCULAR_REFERENCE",
            message=f"Circular reference detected: {' -> '.join(reference_chain)}",
            details={"reference_chain": reference_chain},
            **kwargs,
        )

    @property
    def reference_chain(self) -> list[str]:
        """The keys visited, ending with the repeated key."""
        return self.details["reference_chain"]


class ReferenceDepthExceededError(ConfigurationError):
    """Raised when a variable reference chain exceeds the maximum depth."""

    def __init__(self, max_depth: int, reference_chain: list[str], **kwargs: Any) -> None:
        super().__init__(
            code="REFERENCE_DEPTH_EXCEEDED",
            message=f"Reference depth {len(reference_chain)} exceeds maximum {max_depth}",
            details={"max_depth": max_depth, "reference_chain": reference_chain},
            **kwargs,
        )

    @property
    def max_depth(self) -> int:
        return self.details["max_depth"]

    @property
    def reference_chain(self) -> list[str]:
        return self.details["reference_chain"]


class TypeConversionError(ConfigurationError):
    """Raised when a value can be neither deserialized nor coerced to the target type."""

    def __init__(
        self,
        source: str | None,
        target_type: str,
        reasons: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            code="TYPE_CONVERSION_FAILED",
            message=f"Cannot convert {source!r} to {target_type}",
            details={"source": source, "target_type": target_type, "reasons": reasons or []},
            **kwargs,
        )

    @property
    def source(self) -> str | None:
        return self.details["source"]

    @property
    def target_type(self) -> str:
        return self.details["target_type"]

    @property
    def reasons(self) -> list[str]:
        """One message per conversion strategy that was attempted."""
        return self.details["reasons"]


class SectionRegistrationError(ConfigurationError):
    """Raised when a type is registered under two different section names."""

    def __init__(self, type_name: str, existing: str, requested: str, **kwargs: Any) -> None:
        super().__init__(
            code="SECTION_REGISTRATION_ERROR",
            message=f"Type '{type_name}' is already registered as section '{existing}', cannot register '{requested}'",
            details={"type_name": type_name, "existing": existing, "requested": requested},
            **kwargs,
        )


class ErrorCodes:
    """All error codes as constants.

    Example:
        if error.code == ErrorCodes.CIRCULAR_REFERENCE:
            handle_cycle()
    """

    CONFIG_FILE_NOT_FOUND = "CONFIG_FILE_NOT_FOUND"
    CONFIG_PARSE_ERROR = "CONFIG_PARSE_ERROR"
    CONFIG_FORMAT_UNSUPPORTED = "CONFIG_FORMAT_UNSUPPORTED"
    CIRCULAR_REFERENCE = "CIRCULAR_REFERENCE"
    REFERENCE_DEPTH_EXCEEDED = "REFERENCE_DEPTH_EXCEEDED"
    TYPE_CONVERSION_FAILED = "TYPE_CONVERSION_FAILED"
    SECTION_REGISTRATION_ERROR = "SECTION_REGISTRATION_ERROR"

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError("ErrorCodes is immutable")
