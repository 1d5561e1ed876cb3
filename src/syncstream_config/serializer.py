"""Typed conversion of configuration strings.

Conversion happens in two tiers. The structured tier parses the text as JSON
and/or YAML and validates the result with a pydantic ``TypeAdapter``. The
primitive tier converts the raw string directly (``"42"`` to ``int``,
``"yes"`` to ``bool`` and so on). Both tiers report through
:class:`ConversionResult` rather than raising.
"""

from __future__ import annotations

import enum
import json
import logging
import types
import typing
from decimal import Decimal, InvalidOperation
from pathlib import PurePath
from typing import Any, Union

import yaml
from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from pydantic.errors import PydanticUserError

from syncstream_config.types import ConversionResult, SerializerFormat, type_name

__all__ = ["deserialize", "validate_structure", "coerce", "convert"]

logger = logging.getLogger(__name__)

_TRUE_STRINGS = frozenset({"true", "yes", "on", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "off", "0"})


def _adapter(value_type: Any) -> TypeAdapter[Any] | None:
    try:
        return TypeAdapter(value_type)
    except PydanticUserError:
        return None


def _parse(source: str, format: SerializerFormat, loader: type[Any] = yaml.SafeLoader) -> ConversionResult:
    if format == SerializerFormat.JSON:
        try:
            return ConversionResult.success(json.loads(source), source, None)
        except json.JSONDecodeError as exc:
            return ConversionResult.failure(source, None, f"json: {exc.msg}")
    try:
        return ConversionResult.success(yaml.load(source, Loader=loader), source, None)
    except yaml.YAMLError as exc:
        return ConversionResult.failure(source, None, f"yaml: {exc}")


def _validate(adapter: TypeAdapter[Any], data: Any, source: str | None, value_type: Any) -> ConversionResult:
    try:
        return ConversionResult.success(adapter.validate_python(data), source, value_type)
    except PydanticValidationError as exc:
        messages = "; ".join(err.get("msg", "") for err in exc.errors())
        return ConversionResult.failure(source, value_type, f"validation: {messages}")


def deserialize(
    source: str | None,
    value_type: Any,
    format: SerializerFormat = SerializerFormat.NONE,
) -> ConversionResult:
    """Parse ``source`` in the given format and validate it as ``value_type``.

    ``SerializerFormat.NONE`` tries JSON first and YAML second. The YAML
    fallback keeps scalars as strings (``010`` is not octal, ``1:30`` is not
    sexagesimal) and leaves their conversion to pydantic.
    """
    if source is None:
        return ConversionResult.failure(source, value_type, "structured: no source value")

    adapter = _adapter(value_type)
    if adapter is None:
        return ConversionResult.failure(
            source, value_type, f"structured: {type_name(value_type)} is not supported by the serializer"
        )

    if format == SerializerFormat.NONE:
        formats = ((SerializerFormat.JSON, yaml.SafeLoader), (SerializerFormat.YAML, yaml.BaseLoader))
    else:
        formats = ((SerializerFormat(format), yaml.SafeLoader),)

    errors: list[str] = []
    for fmt, loader in formats:
        parsed = _parse(source, fmt, loader)
        if not parsed.ok:
            errors.extend(parsed.errors)
            continue
        result = _validate(adapter, parsed.value, source, value_type)
        if result.ok:
            return result
        errors.extend(f"{fmt.value} {message}" for message in result.errors)
    return ConversionResult.failure(source, value_type, *errors)


def validate_structure(data: Any, value_type: Any, source: str | None = None) -> ConversionResult:
    """Validate already-parsed data (e.g. a configuration section) as ``value_type``."""
    adapter = _adapter(value_type)
    if adapter is None:
        return ConversionResult.failure(
            source, value_type, f"structured: {type_name(value_type)} is not supported by the serializer"
        )
    return _validate(adapter, data, source, value_type)


def _optional_inner(value_type: Any) -> tuple[bool, Any]:
    origin = typing.get_origin(value_type)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in typing.get_args(value_type) if arg is not type(None)]
        if len(args) < len(typing.get_args(value_type)):
            inner = args[0] if len(args) == 1 else Union[tuple(args)]
            return True, inner
    return False, value_type


def _coerce_bool(source: str, value_type: Any) -> ConversionResult:
    lowered = source.strip().lower()
    if lowered in _TRUE_STRINGS:
        return ConversionResult.success(True, source, value_type)
    if lowered in _FALSE_STRINGS:
        return ConversionResult.success(False, source, value_type)
    return ConversionResult.failure(source, value_type, f"primitive: {source!r} is not a boolean")


def _coerce_enum(source: str, value_type: type[enum.Enum]) -> ConversionResult:
    text = source.strip()
    for member in value_type:
        if str(member.value) == text:
            return ConversionResult.success(member, source, value_type)
    for member in value_type:
        if member.name.lower() == text.lower():
            return ConversionResult.success(member, source, value_type)
    return ConversionResult.failure(
        source, value_type, f"primitive: {text!r} is not a member of {value_type.__name__}"
    )


def coerce(source: str | None, value_type: Any) -> ConversionResult:
    """Convert the raw string ``source`` to ``value_type`` without parsing it."""
    optional, inner = _optional_inner(value_type)
    if source is None or (optional and not source.strip()):
        if optional or value_type is Any:
            return ConversionResult.success(None, source, value_type)
        return ConversionResult.failure(source, value_type, "primitive: no source value")
    if optional:
        result = coerce(source, inner)
        result.target_type = value_type
        return result

    if value_type is Any or value_type is str or value_type is object:
        return ConversionResult.success(source, source, value_type)
    if value_type is bool:
        return _coerce_bool(source, value_type)
    if value_type is int:
        try:
            return ConversionResult.success(int(source.strip()), source, value_type)
        except ValueError:
            return ConversionResult.failure(source, value_type, f"primitive: {source!r} is not an integer")
    if value_type is float:
        try:
            return ConversionResult.success(float(source.strip()), source, value_type)
        except ValueError:
            return ConversionResult.failure(source, value_type, f"primitive: {source!r} is not a number")
    if value_type is Decimal:
        try:
            return ConversionResult.success(Decimal(source.strip()), source, value_type)
        except InvalidOperation:
            return ConversionResult.failure(source, value_type, f"primitive: {source!r} is not a decimal")
    if isinstance(value_type, type) and issubclass(value_type, PurePath):
        return ConversionResult.success(value_type(source.strip()), source, value_type)
    if isinstance(value_type, type) and issubclass(value_type, enum.Enum):
        return _coerce_enum(source, value_type)

    adapter = _adapter(value_type)
    if adapter is None:
        return ConversionResult.failure(
            source, value_type, f"primitive: no conversion to {type_name(value_type)}"
        )
    result = _validate(adapter, source, source, value_type)
    result.errors = [message.replace("validation:", "primitive:", 1) for message in result.errors]
    return result


def convert(
    source: str | None,
    value_type: Any,
    format: SerializerFormat = SerializerFormat.NONE,
) -> ConversionResult:
    """Structured deserialization first, primitive coercion second.

    Plain ``str`` targets with no explicit format skip the structured tier so
    that quoted text keeps its quotes.
    """
    if value_type is str and format == SerializerFormat.NONE:
        return coerce(source, value_type)

    structured = deserialize(source, value_type, format)
    if structured.ok:
        return structured

    primitive = coerce(source, value_type)
    if primitive.ok:
        logger.debug(
            "Structured conversion of %r to %s failed, used primitive coercion",
            source,
            type_name(value_type),
        )
        return primitive
    return ConversionResult.failure(source, value_type, *structured.errors, *primitive.errors)
