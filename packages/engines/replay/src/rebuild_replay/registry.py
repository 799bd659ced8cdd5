"""ProjectionRegistry — explicit, ordered event type to handler mapping."""

from __future__ import annotations

from rebuild_core.primitives.exceptions import HandlerRegistrationError

from .ports import WILDCARD, IProjectionHandler, IProjectionRegistry


class ProjectionRegistry(IProjectionRegistry):
    """Maps event type names to handlers.

    Handlers are returned in the order they were registered, whether they
    subscribed to a specific type or to the wildcard, so dispatch order is a
    pure function of the registration calls made at startup.
    """

    def __init__(self) -> None:
        self._registrations: list[tuple[IProjectionHandler, frozenset[str]]] = []
        self._by_type: dict[str, list[IProjectionHandler]] = {}

    def register(self, handler: IProjectionHandler) -> None:
        event_types = frozenset(handler.handles)
        if not event_types:
            raise HandlerRegistrationError(
                f"{type(handler).__name__} does not handle any event type"
            )
        if any(existing is handler for existing, _ in self._registrations):
            raise HandlerRegistrationError(
                f"{type(handler).__name__} is already registered"
            )
        self._registrations.append((handler, event_types))
        self._by_type.clear()

    def get_handlers(self, event_type: str) -> list[IProjectionHandler]:
        cached = self._by_type.get(event_type)
        if cached is None:
            cached = [
                handler
                for handler, event_types in self._registrations
                if WILDCARD in event_types or event_type in event_types
            ]
            self._by_type[event_type] = cached
        return list(cached)

    @property
    def handlers(self) -> list[IProjectionHandler]:
        """All registered handlers, in registration order."""
        return [handler for handler, _ in self._registrations]

    def __len__(self) -> int:
        return len(self._registrations)
