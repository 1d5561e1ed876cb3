"""Flattened, case-insensitive configuration key/value store."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

__all__ = ["ConfigurationStore", "KEY_SEPARATOR"]

KEY_SEPARATOR = ":"


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _listify(node: Any) -> Any:
    """Turn mappings keyed 0..n-1 into lists, recursively."""
    if not isinstance(node, dict):
        return node
    converted = {k: _listify(v) for k, v in node.items()}
    keys = list(converted)
    if keys and all(k.isdigit() for k in keys) and sorted(int(k) for k in keys) == list(range(len(keys))):
        return [converted[str(i)] for i in range(len(keys))]
    return converted


class ConfigurationStore:
    """Ordered mapping from ``:``-separated keys to string values.

    Nested mappings are flattened on the way in (``{"db": {"host": "x"}}``
    becomes ``db:host = "x"``) and list items are keyed by index. Lookups are
    case-insensitive; the casing of the first insertion is kept for iteration.
    Later writes to the same key replace the earlier value.
    """

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, tuple[str, str]] = {}
        if data:
            self.update(data)

    def get(self, key: str, default: str | None = None) -> str | None:
        """Get the leaf value stored under ``key``."""
        entry = self._values.get(key.casefold())
        if entry is None:
            return default
        return entry[1]

    def set(self, key: str, value: Any) -> None:
        folded = key.casefold()
        existing = self._values.get(folded)
        original = existing[0] if existing is not None else key
        self._values[folded] = (original, _stringify(value))

    def update(self, data: Any, prefix: str = "") -> None:
        """Flatten ``data`` into the store under ``prefix``."""
        if isinstance(data, Mapping):
            for key, value in data.items():
                child = f"{prefix}{KEY_SEPARATOR}{key}" if prefix else str(key)
                self.update(value, child)
        elif isinstance(data, (list, tuple)):
            for index, value in enumerate(data):
                child = f"{prefix}{KEY_SEPARATOR}{index}" if prefix else str(index)
                self.update(value, child)
        elif prefix:
            self.set(prefix, data)
        else:
            raise TypeError(f"Cannot store a bare {type(data).__name__} without a key")

    def has_section(self, key: str) -> bool:
        """Whether any key lives underneath ``key``."""
        prefix = key.casefold() + KEY_SEPARATOR
        return any(folded.startswith(prefix) for folded in self._values)

    def get_section(self, key: str = "") -> dict[str, Any] | list[Any] | None:
        """Rebuild the nested structure stored under ``key``.

        An empty key returns the whole tree. Returns None when nothing is
        stored under the section.
        """
        if key:
            prefix = key.casefold() + KEY_SEPARATOR
            depth = len(key.split(KEY_SEPARATOR))
        else:
            prefix = ""
            depth = 0

        tree: dict[str, Any] = {}
        found = False
        for folded, (original, value) in self._values.items():
            if not folded.startswith(prefix):
                continue
            found = True
            parts = original.split(KEY_SEPARATOR)[depth:]
            node = tree
            for part in parts[:-1]:
                child = node.get(part)
                if not isinstance(child, dict):
                    child = {}
                    node[part] = child
                node = child
            if not isinstance(node.get(parts[-1]), dict):
                node[parts[-1]] = value

        if not found:
            return None
        return _listify(tree)

    def as_dict(self) -> dict[str, str]:
        """Flat copy of the store, keyed by original casing."""
        return {original: value for original, value in self._values.values()}

    def keys(self) -> list[str]:
        return [original for original, _ in self._values.values()]

    def items(self) -> list[tuple[str, str]]:
        return list(self._values.values())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.casefold() in self._values

    def __getitem__(self, key: str) -> str:
        entry = self._values.get(key.casefold())
        if entry is None:
            raise KeyError(f"Configuration key '{key}' not found")
        return entry[1]

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ConfigurationStore({len(self)} keys)"
