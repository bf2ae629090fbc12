"""Local fallback storage for cloud variables.

Provides a persistent, namespaced key/value store shared between
processes, and a watcher that reports changes made by other processes.
"""

from .local_store import LocalFallbackStore, StoreChange, to_store_text
from .watcher import StoreWatcher

__all__ = [
    "LocalFallbackStore",
    "StoreChange",
    "StoreWatcher",
    "to_store_text",
]
