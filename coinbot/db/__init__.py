from coinbot.db.database import JsonDocument
from coinbot.db.repositories import (
    InventoryItem,
    UserRecord,
    UserRecords,
    UserRecordStore,
)

__all__ = [
    "InventoryItem",
    "JsonDocument",
    "UserRecord",
    "UserRecords",
    "UserRecordStore",
]
