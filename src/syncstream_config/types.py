"""Shared value types: serializer formats and conversion results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from syncstream_config.errors import TypeConversionError

__all__ = ["SerializerFormat", "ConversionResult", "type_name"]


class SerializerFormat(str, Enum):
    """Text format used for structured deserialization."""

    NONE = "none"
    JSON = "json"
    YAML = "yaml"


@dataclass
class ConversionResult:
    """Outcome of one conversion attempt.

    ``value`` is only meaningful when ``ok`` is True. ``errors`` collects one
    message per strategy that failed along the way.
    """

    ok: bool
    value: Any = None
    source: str | None = None
    target_type: Any = None
    errors: list[str] = field(default_factory=list)

    @classmethod
    def success(cls, value: Any, source: str | None, target_type: Any) -> ConversionResult:
        return cls(ok=True, value=value, source=source, target_type=target_type)

    @classmethod
    def failure(cls, source: str | None, target_type: Any, *errors: str) -> ConversionResult:
        return cls(ok=False, source=source, target_type=target_type, errors=list(errors))

    def unwrap(self) -> Any:
        """Return the converted value, raising TypeConversionError on failure."""
        if not self.ok:
            raise self.to_error()
        return self.value

    def to_error(self) -> TypeConversionError:
        """Convert this failed result into a TypeConversionError exception."""
        if self.ok:
            raise ValueError("Cannot convert successful result to error")
        return TypeConversionError(
            source=self.source,
            target_type=type_name(self.target_type),
            reasons=list(self.errors),
        )


def type_name(value_type: Any) -> str:
    """Readable name for a type or typing construct."""
    if isinstance(value_type, type):
        return value_type.__name__
    return str(value_type).replace("typing.", "")
