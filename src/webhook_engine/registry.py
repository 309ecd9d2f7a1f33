from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType

from webhook_engine.handlers import EventHandler

HandlerFactory = Callable[[], EventHandler]


class HandlerRegistry:
    """Read-only table from event type to handler factory, built once at startup."""

    def __init__(self, entries: Mapping[str, HandlerFactory] | Iterable[tuple[str, HandlerFactory]]) -> None:
        pairs = entries.items() if isinstance(entries, Mapping) else entries
        table: dict[str, HandlerFactory] = {}
        for event_type, factory in pairs:
            key = str(event_type)
            if not key:
                raise ValueError("event type must be non-empty")
            if key in table:
                raise ValueError(f"duplicate registration for {key}")
            if not callable(factory):
                raise ValueError(f"factory for {key} is not callable")
            table[key] = factory
        self._table = MappingProxyType(table)

    def lookup(self, event_type: str) -> HandlerFactory | None:
        return self._table.get(event_type)

    def is_handled(self, event_type: str) -> bool:
        return event_type in self._table

    @property
    def event_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._table))
