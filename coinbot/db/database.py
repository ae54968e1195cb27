from __future__ import annotations

import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

_LOCKS: dict[str, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _LOCKS_GUARD:
        lock = _LOCKS.get(key)
        if lock is None:
            lock = threading.RLock()
            _LOCKS[key] = lock
        return lock


class JsonDocument:
    """A JSON object stored in one file, read and rewritten wholesale.

    Every instance pointing at the same path shares one re-entrant lock, so a
    ``transaction()`` is the single writer of that file for its duration.
    Writes go to a temp file in the same directory and are swapped in with
    ``os.replace``.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = _lock_for(self.path)

    def load(self) -> dict:
        with self._lock:
            if not self.path.exists():
                return {}
            raw = self.path.read_text(encoding="utf-8")
            if not raw.strip():
                return {}
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as exc:
                print(f"[db] could not parse {self.path}: {exc}")
                raise
            if not isinstance(data, dict):
                raise ValueError(f"{self.path} must contain a JSON object")
            return data

    def save(self, data: dict) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                dir=str(self.path.parent),
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, indent=2)
                os.replace(tmp_name, self.path)
            except Exception:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise

    @contextmanager
    def transaction(self) -> Iterator[dict]:
        """Load, hand out the document for mutation, and save it on a clean exit.

        If the body raises, nothing is written.
        """
        with self._lock:
            data = self.load()
            yield data
            self.save(data)
