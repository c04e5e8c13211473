"""Core components for Trim Engine."""

from trim_engine.core.config import settings
from trim_engine.core.operations import OperationManager
from trim_engine.core.storage import StorageManager

__all__ = ["settings", "OperationManager", "StorageManager"]
