"""syncstream-config - layered configuration with ${...} variable references."""

from __future__ import annotations

# Core
from syncstream_config.resolver import DEFAULT_ENVIRONMENT_PREFIX, VariableResolver, configure
from syncstream_config.store import ConfigurationStore
from syncstream_config.sections import SectionRegistry

# Loading
from syncstream_config.loaders import (
    load_configuration,
    load_environment,
    load_file,
    load_json_file,
    load_xml_file,
    load_yaml_file,
)

# Conversion
from syncstream_config.serializer import coerce, convert, deserialize
from syncstream_config.types import ConversionResult, SerializerFormat

# Errors
from syncstream_config.errors import (
    CircularReferenceError,
    ConfigFileNotFoundError,
    ConfigFormatError,
    ConfigParseError,
    ConfigurationError,
    ErrorCodes,
    ReferenceDepthExceededError,
    SectionRegistrationError,
    TypeConversionError,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "VariableResolver",
    "ConfigurationStore",
    "SectionRegistry",
    "configure",
    "DEFAULT_ENVIRONMENT_PREFIX",
    # Loading
    "load_configuration",
    "load_environment",
    "load_file",
    "load_json_file",
    "load_yaml_file",
    "load_xml_file",
    # Conversion
    "SerializerFormat",
    "ConversionResult",
    "convert",
    "deserialize",
    "coerce",
    # Errors
    "ErrorCodes",
    "ConfigurationError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "ConfigFormatError",
    "CircularReferenceError",
    "ReferenceDepthExceededError",
    "TypeConversionError",
    "SectionRegistrationError",
]
