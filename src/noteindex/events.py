"""EventBus, host document events, and index notifications."""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from noteindex.ref import Document

logger = logging.getLogger(__name__)


class DocumentEventType(Enum):
    """Lifecycle events the host document store publishes."""

    MODIFIED = "modified"
    CREATED = "created"
    DELETED = "deleted"
    RENAMED = "renamed"


class IndexEventType(Enum):
    """Notifications the embedding index publishes for UI consumers."""

    STATS_UPDATED = "stats_updated"
    GENERATION_STARTED = "generation_started"
    GENERATION_COMPLETED = "generation_completed"
    GENERATION_ERROR = "generation_error"
    SERVICE_INITIALIZED = "service_initialized"
    FILE_PROCESSED = "file_processed"


@dataclass(frozen=True, slots=True)
class DocumentEvent:
    """Immutable record of a host document mutation.

    Attributes:
        event_type: The kind of mutation that occurred.
        document: Handle to the affected document (destination for renames).
        old_path: Previous path (renames only).
    """

    event_type: DocumentEventType
    document: Document
    old_path: str | None = None

    @property
    def path(self) -> str:
        return self.document.path


@dataclass(frozen=True, slots=True)
class IndexEvent:
    """Immutable index notification.

    Attributes:
        event_type: Which notification this is.
        data: Event payload (``progress``, ``stats``, ``error``, ``path``,
            ``success`` depending on the type).
        timestamp: Emission time in epoch milliseconds.
    """

    event_type: IndexEventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    @property
    def path(self) -> str | None:
        return self.data.get("path")


E = TypeVar("E", bound=Enum)


class Subscription:
    """Handle returned by :meth:`EventBus.subscribe`; call :meth:`unsubscribe` to detach."""

    __slots__ = ("_bus", "_event_type", "_handler", "_active")

    def __init__(self, bus: EventBus[Any], event_type: Enum, handler: Callable[..., Any]) -> None:
        self._bus = bus
        self._event_type = event_type
        self._handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    @property
    def event_type(self) -> Enum:
        return self._event_type

    def unsubscribe(self) -> bool:
        """Detach the handler.  Returns False if already detached."""
        if not self._active:
            return False
        self._active = False
        return self._bus.unregister(self._event_type, self._handler)


class EventBus(Generic[E]):
    """Dispatches events to registered handlers, keyed by an event-type enum.

    Handlers may be plain callables or coroutine functions and are called
    sequentially in registration order.  Exceptions are logged but never
    propagated, so a failing handler cannot interrupt indexing.
    """

    def __init__(self, event_types: type[E]) -> None:
        self._event_types = event_types
        self._handlers: dict[E, list[Callable[..., Any]]] = {et: [] for et in event_types}

    def register(self, event_type: E, handler: Callable[..., Any]) -> None:
        """Append *handler* to the list for *event_type*."""
        self._handlers[event_type].append(handler)

    def unregister(self, event_type: E, handler: Callable[..., Any]) -> bool:
        """Remove first occurrence of *handler*. Return True if found."""
        handlers = self._handlers[event_type]
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    def subscribe(self, event_type: E, handler: Callable[..., Any]) -> Subscription:
        """Register *handler* and return a handle that can unsubscribe it."""
        self.register(event_type, handler)
        return Subscription(self, event_type, handler)

    async def emit(self, event: Any) -> None:
        """Dispatch *event* to all registered handlers for its ``event_type``."""
        for handler in list(self._handlers[event.event_type]):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning(
                    "Handler %r failed for %s",
                    handler,
                    event.event_type.value,
                    exc_info=True,
                )

    @property
    def handler_count(self) -> int:
        """Total number of registered handlers across all event types."""
        return sum(len(h) for h in self._handlers.values())

    def clear(self) -> None:
        """Remove all registered handlers."""
        for handlers in self._handlers.values():
            handlers.clear()


def document_bus() -> EventBus[DocumentEventType]:
    """Create a bus for host document events."""
    return EventBus(DocumentEventType)


def index_bus() -> EventBus[IndexEventType]:
    """Create a bus for index notifications."""
    return EventBus(IndexEventType)
