from .background_worker import IBackgroundWorker
from .event_store import IEventSource, StoredEvent
from .schema import ISchemaMigrator

__all__ = [
    "IBackgroundWorker",
    "IEventSource",
    "ISchemaMigrator",
    "StoredEvent",
]
