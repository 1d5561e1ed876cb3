"""Configuration file and environment loaders."""

from __future__ import annotations

import json
import logging
import os
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Callable

import yaml

from syncstream_config.errors import ConfigFileNotFoundError, ConfigFormatError, ConfigParseError
from syncstream_config.store import KEY_SEPARATOR, ConfigurationStore

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "load_json_file",
    "load_yaml_file",
    "load_xml_file",
    "load_file",
    "load_environment",
    "load_configuration",
]

logger = logging.getLogger(__name__)

ENVIRONMENT_SEPARATOR = "__"


def _read_text(path: Path) -> str:
    if not path.is_file():
        raise ConfigFileNotFoundError(file_path=str(path))
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigParseError(file_path=str(path), reason=str(exc), cause=exc) from exc


def _require_mapping(data: Any, path: Path) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigParseError(
            file_path=str(path),
            reason=f"top level must be a mapping, got {type(data).__name__}",
        )
    return data


def load_json_file(path: str | Path) -> dict[str, Any]:
    """Load a JSON configuration file into a nested mapping."""
    path = Path(path)
    content = _read_text(path)
    if not content.strip():
        return {}
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ConfigParseError(
            file_path=str(path),
            reason=f"invalid JSON at line {exc.lineno}, column {exc.colno}: {exc.msg}",
            cause=exc,
        ) from exc
    return _require_mapping(data, path)


def load_yaml_file(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file into a nested mapping."""
    path = Path(path)
    content = _read_text(path)
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        if mark is not None:
            reason = f"invalid YAML at line {mark.line + 1}, column {mark.column + 1}: {exc}"
        else:
            reason = f"invalid YAML: {exc}"
        raise ConfigParseError(file_path=str(path), reason=reason, cause=exc) from exc
    return _require_mapping(data, path)


def _local_name(tag: str) -> str:
    # Drop "{namespace}" qualifiers
    return tag.rsplit("}", 1)[-1]


def _merge_dict(base: dict[str, Any], override: dict[str, Any]) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value


def _element_to_value(element: ET.Element) -> Any:
    """Convert an XML element into a string leaf or a nested mapping.

    Attributes become keys, a ``name`` attribute nests the element under that
    name, and repeated sibling tags without a name become a list.
    """
    attributes = {k: v for k, v in element.attrib.items() if k.lower() != "name"}
    children = list(element)
    if not children and not attributes:
        return (element.text or "").strip()

    result: dict[str, Any] = dict(attributes)
    counts: dict[str, int] = {}
    for child in children:
        tag = _local_name(child.tag)
        counts[tag] = counts.get(tag, 0) + 1

    for child in children:
        tag = _local_name(child.tag)
        value = _element_to_value(child)
        name = next((v for k, v in child.attrib.items() if k.lower() == "name"), None)
        if name is not None:
            section = result.setdefault(tag, {})
            _merge_dict(section, {name: value})
        elif counts[tag] > 1:
            result.setdefault(tag, []).append(value)
        else:
            result[tag] = value
    return result


def load_xml_file(path: str | Path) -> dict[str, Any]:
    """Load an XML configuration file into a nested mapping.

    The root element only wraps the document and does not contribute a key.
    """
    path = Path(path)
    content = _read_text(path)
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        line, column = exc.position
        raise ConfigParseError(
            file_path=str(path),
            reason=f"invalid XML at line {line}, column {column + 1}",
            cause=exc,
        ) from exc
    value = _element_to_value(root)
    if isinstance(value, str):
        return {}
    return value


_LOADERS: dict[str, Callable[[str | Path], dict[str, Any]]] = {
    ".json": load_json_file,
    ".yaml": load_yaml_file,
    ".yml": load_yaml_file,
    ".xml": load_xml_file,
}

SUPPORTED_EXTENSIONS = tuple(_LOADERS)


def load_file(path: str | Path) -> dict[str, Any]:
    """Load a configuration file, choosing the parser by extension."""
    path = Path(str(path).strip())
    loader = _LOADERS.get(path.suffix.lower())
    if loader is None:
        raise ConfigFormatError(file_path=str(path))
    return loader(path)


def load_environment(environ: Mapping[str, str], prefix: str = "") -> dict[str, str]:
    """Collect environment variables that start with ``prefix``.

    The prefix is stripped and ``__`` is mapped to the ``:`` key separator,
    so ``SS_DATABASE__HOST`` becomes ``DATABASE:HOST``.
    """
    loaded: dict[str, str] = {}
    for name, value in environ.items():
        if prefix and not name.startswith(prefix):
            continue
        key = name[len(prefix) :].replace(ENVIRONMENT_SEPARATOR, KEY_SEPARATOR)
        if key:
            loaded[key] = value
    logger.debug("Loaded %d environment variables with prefix %r", len(loaded), prefix)
    return loaded


def _locate(file: str | bytes | os.PathLike[str], base_dir: Path | None) -> Path | None:
    path = Path(os.fsdecode(file).strip())
    if path.is_file():
        return path
    if base_dir is not None and not path.is_absolute():
        candidate = base_dir / path
        if candidate.is_file():
            return candidate
    return None


def load_configuration(
    files: Iterable[str | bytes | os.PathLike[str]],
    *,
    base_dir: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    environment_prefix: str | None = None,
    store: ConfigurationStore | None = None,
) -> ConfigurationStore:
    """Load files, then prefixed environment variables, into one store.

    Files are applied in order so later files override earlier ones. Files
    that cannot be found (also relative to ``base_dir``) or that have an
    unsupported extension are skipped with a warning. Environment variables
    are layered last, and only when ``environment_prefix`` is given.
    """
    if store is None:
        store = ConfigurationStore()
    base = Path(base_dir) if base_dir is not None else None

    for file in files:
        path = _locate(file, base)
        if path is None:
            logger.warning("Configuration file not found, skipping: %s", file)
            continue
        if path.suffix.lower() not in _LOADERS:
            logger.warning("Unsupported configuration format, skipping: %s", path)
            continue
        store.update(load_file(path))
        logger.debug("Loaded configuration file %s", path)

    if environment_prefix is not None:
        env = environ if environ is not None else os.environ
        store.update(load_environment(env, environment_prefix))

    return store
