"""Alert persistence layer backed by async SQLite."""

from alertbot.data.database import AlertDatabase
from alertbot.data.store import AlertStore, StoreCapabilities

__all__ = ["AlertDatabase", "AlertStore", "StoreCapabilities"]
