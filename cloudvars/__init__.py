"""cloudvars - resilient cloud variable sync client."""

from .client import SyncClient
from .config import CLOUD_PREFIX, CloudConfig, Config, SessionConfig, StoreConfig, load_config
from .events import EventSource
from .protocol import VarUpdate
from .session import CloudSession
from .storage import LocalFallbackStore

__version__ = "0.1.0"

__all__ = [
    "CLOUD_PREFIX",
    "CloudConfig",
    "CloudSession",
    "Config",
    "EventSource",
    "LocalFallbackStore",
    "SessionConfig",
    "StoreConfig",
    "SyncClient",
    "VarUpdate",
    "load_config",
]
