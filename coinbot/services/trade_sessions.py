from __future__ import annotations

import heapq
import itertools
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from coinbot.services.trade_errors import (
    AlreadyTrading,
    CannotTradeWithSelf,
    NotParticipant,
    SessionExpiredOrInvalid,
)


class TradeState(str, Enum):
    OPEN = "open"
    READY_PENDING = "ready_pending"
    SETTLED = "settled"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    EXPIRED = "expired"


@dataclass
class TradeOffer:
    items: dict[str, int] = field(default_factory=dict)
    currency: int = 0

    def add_item(self, item_id: str, quantity: int) -> None:
        total = int(self.items.get(item_id, 0)) + int(quantity)
        if total <= 0:
            self.items.pop(item_id, None)
        else:
            self.items[item_id] = total

    def remove_item(self, item_id: str) -> bool:
        return self.items.pop(item_id, None) is not None


@dataclass
class TradeSession:
    session_id: str
    initiator_id: int
    counterparty_id: int
    initiator_offer: TradeOffer = field(default_factory=TradeOffer)
    counterparty_offer: TradeOffer = field(default_factory=TradeOffer)
    initiator_ready: bool = False
    counterparty_ready: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: float = 0.0
    ui_handle: Any = None
    closed_as: TradeState | None = None

    @property
    def state(self) -> TradeState:
        if self.closed_as is not None:
            return self.closed_as
        if self.initiator_ready or self.counterparty_ready:
            return TradeState.READY_PENDING
        return TradeState.OPEN

    @property
    def participants(self) -> tuple[int, int]:
        return self.initiator_id, self.counterparty_id

    def is_participant(self, user_id: int) -> bool:
        return int(user_id) in self.participants

    def is_initiator(self, user_id: int) -> bool:
        return int(user_id) == self.initiator_id

    def offer_for(self, user_id: int) -> TradeOffer:
        if int(user_id) == self.initiator_id:
            return self.initiator_offer
        if int(user_id) == self.counterparty_id:
            return self.counterparty_offer
        raise NotParticipant()

    def toggle_ready(self, user_id: int) -> bool:
        if not self.is_participant(user_id):
            raise NotParticipant()
        if self.is_initiator(user_id):
            self.initiator_ready = not self.initiator_ready
            return self.initiator_ready
        self.counterparty_ready = not self.counterparty_ready
        return self.counterparty_ready

    def both_ready(self) -> bool:
        return self.initiator_ready and self.counterparty_ready

    def reset_ready(self) -> None:
        self.initiator_ready = False
        self.counterparty_ready = False


class DeadlineQueue:
    """Min-heap of ``(due, key)`` one-shot deadlines with lazy cancellation."""

    def __init__(self) -> None:
        self._heap: list[tuple[float, int, str]] = []
        self._active: dict[str, float] = {}
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._active)

    def schedule(self, key: str, due: float) -> None:
        self._active[key] = float(due)
        heapq.heappush(self._heap, (float(due), next(self._seq), key))

    def cancel(self, key: str) -> None:
        self._active.pop(key, None)

    def pop_due(self, now: float) -> list[str]:
        fired: list[str] = []
        while self._heap and self._heap[0][0] <= now:
            due, _seq, key = heapq.heappop(self._heap)
            if self._active.get(key) != due:
                continue
            del self._active[key]
            fired.append(key)
        return fired

    def clear(self) -> None:
        self._heap.clear()
        self._active.clear()


def _new_session_id() -> str:
    return secrets.token_urlsafe(6).replace("-", "").replace("_", "")


class TradeSessionRegistry:
    """Active trade sessions of one bot process, keyed by session id.

    Owns the expiry deadlines: each session gets a one-shot deadline
    ``timeout_seconds`` after creation on ``clock``. The deadline is never
    pushed back by activity.
    """

    def __init__(
        self,
        timeout_seconds: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Callable[[], str] = _new_session_id,
    ) -> None:
        self.timeout_seconds = float(timeout_seconds)
        self._clock = clock
        self._id_factory = id_factory
        self._sessions: dict[str, TradeSession] = {}
        self._deadlines = DeadlineQueue()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def session_for_user(self, user_id: int) -> TradeSession | None:
        for session in self._sessions.values():
            if session.is_participant(user_id):
                return session
        return None

    def create(self, initiator_id: int, counterparty_id: int) -> TradeSession:
        initiator_id = int(initiator_id)
        counterparty_id = int(counterparty_id)
        if initiator_id == counterparty_id:
            raise CannotTradeWithSelf()
        if self.session_for_user(initiator_id) or self.session_for_user(counterparty_id):
            raise AlreadyTrading()
        session_id = ""
        for _ in range(8):
            candidate = self._id_factory()
            if candidate and candidate not in self._sessions:
                session_id = candidate
                break
        if not session_id:
            raise RuntimeError("Unable to create unique trade id")
        now = self._clock()
        session = TradeSession(
            session_id=session_id,
            initiator_id=initiator_id,
            counterparty_id=counterparty_id,
            expires_at=now + self.timeout_seconds,
        )
        self._sessions[session_id] = session
        self._deadlines.schedule(session_id, session.expires_at)
        return session

    def get(self, session_id: str) -> TradeSession | None:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> TradeSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionExpiredOrInvalid()
        return session

    def remove(self, session_id: str) -> TradeSession | None:
        self._deadlines.cancel(session_id)
        return self._sessions.pop(session_id, None)

    def pop_expired(self, now: float | None = None) -> list[TradeSession]:
        """Remove and return sessions whose deadline passed with neither side ready.

        A deadline that fires while someone is ready is spent without effect.
        """
        current = self._clock() if now is None else float(now)
        expired: list[TradeSession] = []
        for session_id in self._deadlines.pop_due(current):
            session = self._sessions.get(session_id)
            if session is None:
                continue
            if session.initiator_ready or session.counterparty_ready:
                continue
            del self._sessions[session_id]
            session.closed_as = TradeState.EXPIRED
            expired.append(session)
        return expired

    def close(self) -> None:
        self._sessions.clear()
        self._deadlines.clear()
