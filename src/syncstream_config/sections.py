"""Explicit mapping from configuration types to their section names."""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from syncstream_config.errors import SectionRegistrationError

__all__ = ["SectionRegistry"]

T = TypeVar("T")


class SectionRegistry:
    """Registration table from a type to the store key its values live under.

    Usage::

        sections = SectionRegistry()

        @sections.section("database")
        class DatabaseSettings(BaseModel):
            host: str
            port: int = 5432

        sections.name_for(DatabaseSettings)  # "database"

    Types that were never registered fall back to their ``__name__``.
    """

    def __init__(self) -> None:
        self._names: dict[Any, str] = {}

    def register(self, value_type: Any, name: str) -> None:
        """Register ``value_type`` under section ``name``.

        Re-registering the same name is a no-op; a different name raises
        SectionRegistrationError.
        """
        if not name:
            raise ValueError("Section name must be a non-empty string")
        existing = self._names.get(value_type)
        if existing is not None and existing != name:
            raise SectionRegistrationError(
                type_name=getattr(value_type, "__name__", str(value_type)),
                existing=existing,
                requested=name,
            )
        self._names[value_type] = name

    def unregister(self, value_type: Any) -> bool:
        """Remove a registration. Returns False if the type was not registered."""
        return self._names.pop(value_type, None) is not None

    def section(self, name: str) -> Callable[[type[T]], type[T]]:
        """Class decorator form of :meth:`register`."""

        def decorator(cls: type[T]) -> type[T]:
            self.register(cls, name)
            return cls

        return decorator

    def name_for(self, value_type: Any) -> str:
        """Section name for ``value_type``, defaulting to the type's name."""
        name = self._names.get(value_type)
        if name is not None:
            return name
        return getattr(value_type, "__name__", str(value_type))

    def __contains__(self, value_type: object) -> bool:
        return value_type in self._names

    def __len__(self) -> int:
        return len(self._names)
