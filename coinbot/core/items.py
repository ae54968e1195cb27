from __future__ import annotations

import json
from pathlib import Path

from coinbot.config import SHOP_ITEMS_PATH

DEFAULT_ITEM_EMOJI = "📦"


class ItemCatalog:
    """Read-only view of ``shopItems.json`` (a JSON list of item objects).

    The parsed list is kept until the file's mtime or size changes, so edits
    made by admin tooling apply without a restart. Passing ``items`` pins the
    catalog to a fixed list.
    """

    def __init__(self, path: Path | str = SHOP_ITEMS_PATH, items: list[dict] | None = None) -> None:
        self.path = Path(path)
        self._fixed = list(items) if items is not None else None
        self._cache_key: tuple[int, int] | None = None
        self._cache: list[dict] = []

    def all(self) -> list[dict]:
        if self._fixed is not None:
            return list(self._fixed)
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            self._cache_key = None
            return []
        key = (stat.st_mtime_ns, stat.st_size)
        if key != self._cache_key:
            self._cache = self._load()
            self._cache_key = key
        return list(self._cache)

    def _load(self) -> list[dict]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except json.JSONDecodeError as exc:
            print(f"[items] could not parse {self.path}: {exc}")
            return []
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict) and item.get("id")]

    def get(self, item_id: str) -> dict | None:
        for item in self.all():
            if str(item.get("id")) == item_id:
                return item
        return None

    def is_tradeable(self, item_id: str) -> bool:
        item = self.get(item_id)
        if item is None:
            return False
        return item.get("tradeable") is not False

    def emoji(self, item_id: str) -> str:
        item = self.get(item_id)
        return str((item or {}).get("emoji") or DEFAULT_ITEM_EMOJI)

    def name(self, item_id: str) -> str:
        item = self.get(item_id)
        if item is None:
            return "Unknown Item"
        return str(item.get("name") or item_id)
