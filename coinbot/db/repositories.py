from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

from coinbot.config import DEFAULT_BALANCE, USER_DATA_PATH
from coinbot.db.database import JsonDocument


def _to_int(value: object, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class InventoryItem:
    id: str
    quantity: int
    acquired: int = 0
    metadata: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, raw: dict) -> "InventoryItem":
        metadata = raw.get("metadata")
        return cls(
            id=str(raw.get("id", "")),
            quantity=_to_int(raw.get("quantity"), 0),
            acquired=_to_int(raw.get("acquired"), 0),
            metadata=dict(metadata) if isinstance(metadata, dict) else None,
        )

    def to_dict(self) -> dict:
        out: dict[str, Any] = {
            "id": self.id,
            "quantity": int(self.quantity),
            "acquired": int(self.acquired),
        }
        if self.metadata is not None:
            out["metadata"] = dict(self.metadata)
        return out


@dataclass
class UserRecord:
    balance: int
    inventory: list[InventoryItem] = field(default_factory=list)
    # Keys written by other commands (game stats, cards, cooldowns) ride along untouched.
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def default(cls, balance: int = DEFAULT_BALANCE) -> "UserRecord":
        return cls(balance=int(balance))

    @classmethod
    def from_dict(cls, raw: dict, default_balance: int = DEFAULT_BALANCE) -> "UserRecord":
        inventory_raw = raw.get("inventory")
        inventory = [
            InventoryItem.from_dict(item)
            for item in (inventory_raw if isinstance(inventory_raw, list) else [])
            if isinstance(item, dict) and item.get("id")
        ]
        extra = {k: v for k, v in raw.items() if k not in {"balance", "inventory"}}
        return cls(
            balance=max(0, _to_int(raw.get("balance"), default_balance)),
            inventory=inventory,
            extra=extra,
        )

    def to_dict(self) -> dict:
        out = dict(self.extra)
        out["balance"] = int(self.balance)
        out["inventory"] = [item.to_dict() for item in self.inventory]
        return out

    def find_item(self, item_id: str) -> InventoryItem | None:
        for item in self.inventory:
            if item.id == item_id:
                return item
        return None

    def item_quantity(self, item_id: str) -> int:
        item = self.find_item(item_id)
        return int(item.quantity) if item is not None else 0

    def take_item(self, item_id: str, quantity: int) -> None:
        item = self.find_item(item_id)
        if item is None or item.quantity < quantity:
            raise ValueError(f"not enough {item_id} to take {quantity}")
        if item.quantity <= quantity:
            self.inventory = [i for i in self.inventory if i.id != item_id]
        else:
            item.quantity -= quantity

    def give_item(self, item_id: str, quantity: int, acquired: int) -> None:
        item = self.find_item(item_id)
        if item is not None:
            item.quantity += quantity
            return
        self.inventory.append(InventoryItem(id=item_id, quantity=quantity, acquired=acquired))


class UserRecords:
    """Mutable view over the shared user document inside one transaction."""

    def __init__(self, data: dict, default_balance: int) -> None:
        self._data = data
        self._default_balance = default_balance
        self._loaded: dict[str, UserRecord] = {}

    def get(self, user_id: int) -> UserRecord:
        key = str(user_id)
        record = self._loaded.get(key)
        if record is not None:
            return record
        raw = self._data.get(key)
        if isinstance(raw, dict):
            record = UserRecord.from_dict(raw, self._default_balance)
        else:
            record = UserRecord.default(self._default_balance)
        self._loaded[key] = record
        return record

    def put(self, user_id: int, record: UserRecord) -> None:
        self._loaded[str(user_id)] = record

    def flush(self) -> None:
        for key, record in self._loaded.items():
            self._data[key] = record.to_dict()


class UserRecordStore:
    def __init__(
        self,
        path: Path | str = USER_DATA_PATH,
        *,
        default_balance: int = DEFAULT_BALANCE,
    ) -> None:
        self.document = JsonDocument(path)
        self.default_balance = int(default_balance)

    @contextmanager
    def transaction(self) -> Iterator[UserRecords]:
        """Read-modify-write of every record touched inside the block, saved in one write."""
        with self.document.transaction() as data:
            records = UserRecords(data, self.default_balance)
            yield records
            records.flush()

    def read(self, user_id: int) -> UserRecord:
        key = str(user_id)
        data = self.document.load()
        raw = data.get(key)
        if isinstance(raw, dict) and isinstance(raw.get("inventory"), list):
            return UserRecord.from_dict(raw, self.default_balance)
        # First sight of this user (or a record missing its inventory): persist the default shape.
        with self.transaction() as records:
            return records.get(user_id)

    def write(self, user_id: int, record: UserRecord) -> None:
        with self.transaction() as records:
            records.put(user_id, record)

    def item_quantity(self, user_id: int, item_id: str) -> int:
        return self.read(user_id).item_quantity(item_id)
