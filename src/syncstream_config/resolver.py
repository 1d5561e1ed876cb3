"""Variable reference resolution over a configuration store.

Values may embed two kinds of reference:

* ``${env:NAME}`` is replaced by the environment variable ``NAME``, with the
  environment prefix (``SS_`` by default) added when missing.
* ``${NAME}`` is replaced by the store value of ``NAME``.

Environment references are always substituted first, since the generic
pattern would also match ``${env:...}`` tokens. Every substituted value is
itself resolved before it is inserted. References nest: the text inside
``${...}`` is resolved first, so ``${${which}}`` and ``${env:${name}}`` look up
the key that the inner reference names. Each chain of lookups is tracked
so that circular references fail with CircularReferenceError instead of
recursing without bound.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable, Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

from syncstream_config.errors import CircularReferenceError, ReferenceDepthExceededError
from syncstream_config.loaders import load_configuration
from syncstream_config.sections import SectionRegistry
from syncstream_config.serializer import convert, validate_structure
from syncstream_config.store import KEY_SEPARATOR, ConfigurationStore
from syncstream_config.types import SerializerFormat

__all__ = ["VariableResolver", "configure", "DEFAULT_ENVIRONMENT_PREFIX"]

logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENT_PREFIX = "SS_"

# Multi-character separators come first so "::" is not read as two ":".
_STORE_SEPARATORS = re.compile(r"::|->|/")
_ENVIRONMENT_SEPARATORS = re.compile(r"::|->|/|:|\.")
_ENVIRONMENT_SEPARATOR = "_"

_MISSING: Any = object()

_ENV_MARKER = "env:"

_Chain = tuple[str, ...]


def _references(text: str) -> Iterator[tuple[int, int, str]]:
    """Yield ``(start, end, inner)`` for every outermost ``${...}`` token.

    Braces are balanced, so ``${${a}:b}`` is a single token whose inner text
    is ``${a}:b``. An unterminated ``${`` stays literal text.
    """
    start = text.find("${")
    while start != -1:
        depth = 0
        for index in range(start + 1, len(text)):
            char = text[index]
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    yield start, index + 1, text[start + 2 : index]
                    start = text.find("${", index + 1)
                    break
        else:
            start = text.find("${", start + 1)


def _has_reference(text: str) -> bool:
    return next(_references(text), None) is not None


def _substitute(text: str, replace: Callable[[str, str], str], outside: Callable[[str], str] | None = None) -> str:
    """Rebuild ``text`` with each token passed through ``replace(token, inner)``.

    ``outside`` is applied to the text between tokens.
    """
    pieces: list[str] = []
    last = 0
    for start, end, inner in _references(text):
        segment = text[last:start]
        pieces.append(outside(segment) if outside else segment)
        pieces.append(replace(text[start:end], inner))
        last = end
    tail = text[last:]
    pieces.append(outside(tail) if outside else tail)
    return "".join(pieces)


def _keep_token(token: str, inner: str) -> str:
    return token


class VariableResolver:
    """Reads values from a ConfigurationStore and resolves their references.

    The resolver never writes to the store. Several resolvers with different
    stores, prefixes or environments can live side by side.
    """

    def __init__(
        self,
        store: ConfigurationStore,
        environment_prefix: str = DEFAULT_ENVIRONMENT_PREFIX,
        environ: Mapping[str, str] | None = None,
        max_depth: int = 32,
        sections: SectionRegistry | None = None,
    ) -> None:
        if max_depth < 1:
            raise ValueError(f"max_depth must be at least 1, got {max_depth}")
        self._store = store
        self._environment_prefix = environment_prefix
        self._environ: Mapping[str, str] = environ if environ is not None else os.environ
        self._max_depth = max_depth
        self._sections = sections if sections is not None else SectionRegistry()

    @property
    def store(self) -> ConfigurationStore:
        return self._store

    @property
    def environment_prefix(self) -> str:
        """Prefix added to environment variable names that lack it."""
        return self._environment_prefix

    @environment_prefix.setter
    def environment_prefix(self, value: str) -> None:
        self._environment_prefix = value

    @property
    def sections(self) -> SectionRegistry:
        return self._sections

    @property
    def max_depth(self) -> int:
        return self._max_depth

    # === Key normalization ===

    def normalize_key(self, name: str, environment: bool = False) -> str:
        """Canonicalize path separators in ``name`` and resolve references in it.

        ``/``, ``::`` and ``->`` become ``:`` for store lookups. For
        environment variable names ``:`` and ``.`` are also replaced and the
        separator is ``_``.
        """
        return self._normalize(name, environment, ())

    def _normalize(self, name: str, environment: bool, chain: _Chain) -> str:
        if environment:
            pattern, separator = _ENVIRONMENT_SEPARATORS, _ENVIRONMENT_SEPARATOR
        else:
            pattern, separator = _STORE_SEPARATORS, KEY_SEPARATOR
        name = _substitute(name, _keep_token, lambda segment: pattern.sub(separator, segment))
        return self._resolve(name, chain)

    # === Reference substitution ===

    def resolve_environment_references(self, text: str) -> str:
        """Replace every ``${env:NAME}`` token in ``text``; other text is untouched."""
        return self._resolve_environment(text, ())

    def resolve_variable_references(self, text: str) -> str:
        """Replace every ``${NAME}`` token in ``text`` with its store value."""
        return self._resolve_variables(text, ())

    def resolve(self, text: str) -> str:
        """Apply environment substitution, then store substitution."""
        return self._resolve(text, ())

    def _resolve(self, text: str, chain: _Chain) -> str:
        return self._resolve_variables(self._resolve_environment(text, chain), chain)

    def _resolve_environment(self, text: str, chain: _Chain) -> str:
        def replace(token: str, inner: str) -> str:
            if inner[: len(_ENV_MARKER)].lower() != _ENV_MARKER:
                return token
            value = self._environment_value(inner[len(_ENV_MARKER) :], chain)
            if value is None:
                logger.debug("Environment reference %r is not set, substituting empty string", token)
                return ""
            return value

        return _substitute(text, replace).strip()

    def _resolve_variables(self, text: str, chain: _Chain) -> str:
        def replace(token: str, inner: str) -> str:
            value = self._value(inner, chain)
            if value is None:
                logger.debug("Reference %r is not set, substituting empty string", token)
                return ""
            return value

        return _substitute(text, replace).strip()

    def _enter(self, chain: _Chain, marker: str) -> _Chain:
        if marker in chain:
            raise CircularReferenceError(reference_chain=[*chain, marker])
        if len(chain) >= self._max_depth:
            raise ReferenceDepthExceededError(max_depth=self._max_depth, reference_chain=[*chain, marker])
        return (*chain, marker)

    # === Lookups ===

    def get_value(self, key: str) -> str | None:
        """Get the value stored under ``key`` with all references resolved.

        Values without a ``${...}`` token are returned exactly as stored.
        Returns None for missing keys.
        """
        return self._value(key, ())

    def _value(self, key: str, chain: _Chain) -> str | None:
        normalized = self._normalize(key, False, chain)
        raw = self._store.get(normalized)
        if raw is None or not _has_reference(raw):
            return raw
        return self._resolve(raw, self._enter(chain, normalized.casefold()))

    def environment_variable_name(self, name: str) -> str:
        """The prefixed, normalized environment variable name for ``name``."""
        return self._environment_name(name, ())

    def _environment_name(self, name: str, chain: _Chain) -> str:
        normalized = self._normalize(name, True, chain)
        if not normalized.startswith(self._environment_prefix):
            normalized = f"{self._environment_prefix}{normalized}"
        return normalized

    def get_environment_value(self, name: str) -> str | None:
        """Get an environment variable with references in its value resolved.

        ``name`` is normalized to environment form and prefixed with the
        environment prefix unless it already carries it. Returns None when
        the variable is not set.
        """
        return self._environment_value(name, ())

    def _environment_value(self, name: str, chain: _Chain) -> str | None:
        variable = self._environment_name(name, chain)
        raw = self._environ.get(variable)
        if raw is None:
            return None
        return self._resolve(raw, self._enter(chain, f"env:{variable}"))

    def get_section(self, key: str) -> dict[str, Any] | list[Any] | None:
        """Get the nested section under ``key`` with every leaf resolved."""
        normalized = self.normalize_key(key)
        section = self._store.get_section(normalized)
        if section is None:
            return None
        return self._resolve_tree(section, normalized)

    def _resolve_tree(self, node: Any, path: str) -> Any:
        if isinstance(node, dict):
            return {k: self._resolve_tree(v, f"{path}{KEY_SEPARATOR}{k}") for k, v in node.items()}
        if isinstance(node, list):
            return [self._resolve_tree(v, f"{path}{KEY_SEPARATOR}{i}") for i, v in enumerate(node)]
        if isinstance(node, str) and _has_reference(node):
            return self._resolve(node, self._enter((), path.casefold()))
        return node

    # === Typed access ===

    def get_typed_value(
        self,
        source: str | None,
        value_type: Any,
        format: SerializerFormat = SerializerFormat.NONE,
    ) -> Any:
        """Convert ``source`` to ``value_type``.

        Structured deserialization is tried first and primitive coercion
        second. Raises TypeConversionError only when both fail.
        """
        return convert(source, value_type, format).unwrap()

    def get_typed(
        self,
        key: str,
        value_type: Any,
        format: SerializerFormat = SerializerFormat.NONE,
        default: Any = _MISSING,
    ) -> Any:
        """Get the value under ``key`` converted to ``value_type``.

        When ``key`` names a section rather than a single value, the section
        is rebuilt with its references resolved and validated as
        ``value_type`` (a pydantic model, dataclass, dict or list type).
        A missing key returns ``default`` when given and otherwise raises
        TypeConversionError, unless ``value_type`` accepts None.
        """
        value = self.get_value(key)
        if value is None:
            if self._store.has_section(self.normalize_key(key)):
                return validate_structure(self.get_section(key), value_type).unwrap()
            if default is not _MISSING:
                return default
        return self.get_typed_value(value, value_type, format)

    def get_environment_typed(
        self,
        name: str,
        value_type: Any,
        format: SerializerFormat = SerializerFormat.NONE,
        default: Any = _MISSING,
    ) -> Any:
        """Get an environment variable converted to ``value_type``."""
        value = self.get_environment_value(name)
        if value is None and default is not _MISSING:
            return default
        return self.get_typed_value(value, value_type, format)

    def get_section_value(
        self,
        value_type: Any,
        format: SerializerFormat = SerializerFormat.NONE,
        default: Any = _MISSING,
    ) -> Any:
        """Get a value whose key is the registered section name of ``value_type``.

        Types that were never registered are looked up by their ``__name__``.
        """
        return self.get_typed(self._sections.name_for(value_type), value_type, format, default)

    def __repr__(self) -> str:
        return f"VariableResolver(store={self._store!r}, environment_prefix={self._environment_prefix!r})"


def configure(
    *files: str | bytes | os.PathLike[str] | Iterable[Any],
    base_dir: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    environment_prefix: str = DEFAULT_ENVIRONMENT_PREFIX,
    include_environment: bool = True,
    sections: SectionRegistry | None = None,
    max_depth: int = 32,
) -> VariableResolver:
    """Load ``files`` into a new store and return a resolver over it.

    With ``include_environment`` the variables starting with
    ``environment_prefix`` are layered over the file values.
    """
    store = load_configuration(
        _flatten_files(files),
        base_dir=base_dir,
        environ=environ,
        environment_prefix=environment_prefix if include_environment else None,
    )
    return VariableResolver(
        store,
        environment_prefix=environment_prefix,
        environ=environ,
        max_depth=max_depth,
        sections=sections,
    )


def _flatten_files(files: Iterable[Any]) -> list[Any]:
    flat: list[Any] = []
    for item in files:
        if isinstance(item, (str, bytes, os.PathLike)):
            flat.append(item)
        else:
            flat.extend(item)
    return flat
