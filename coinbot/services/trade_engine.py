from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from coinbot.core.items import ItemCatalog
from coinbot.services.trade_errors import (
    SETTLEMENT_ERRORS,
    Forbidden,
    InvalidAmount,
    InvalidQuantity,
    ItemNotTradeable,
    NotParticipant,
    TradeError,
)
from coinbot.services.trade_sessions import TradeSession, TradeSessionRegistry, TradeState
from coinbot.services.trade_settlement import SettlementProcessor, SettlementReceipt


class TradeOutcome(str, Enum):
    SETTLED = "settled"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    EXPIRED = "expired"


class TradePresenter(Protocol):
    async def refresh(self, session: TradeSession) -> None: ...

    async def notify(self, session: TradeSession, outcome: TradeOutcome, detail: str) -> None: ...


@dataclass(frozen=True)
class ReadyResult:
    ready: bool
    outcome: TradeOutcome | None = None
    receipt: SettlementReceipt | None = None
    error: TradeError | None = None


class TradeNegotiationEngine:
    def __init__(
        self,
        registry: TradeSessionRegistry,
        settlement: SettlementProcessor,
        catalog: ItemCatalog,
        presenter: TradePresenter,
        *,
        currency_mode: str = "replace",
    ) -> None:
        self.registry = registry
        self.settlement = settlement
        self.catalog = catalog
        self.presenter = presenter
        self.currency_mode = currency_mode

    def _session_for(self, session_id: str, acting_user_id: int) -> TradeSession:
        session = self.registry.require(session_id)
        if not session.is_participant(acting_user_id):
            raise NotParticipant()
        return session

    async def open_trade(self, initiator_id: int, counterparty_id: int, ui_handle: Any = None) -> TradeSession:
        session = self.registry.create(initiator_id, counterparty_id)
        session.ui_handle = ui_handle
        print(f"[trade] opened {session.session_id}: {session.initiator_id} -> {session.counterparty_id}")
        return session

    async def add_item(self, session_id: str, acting_user_id: int, item_id: str, quantity: int) -> TradeSession:
        session = self._session_for(session_id, acting_user_id)
        if int(quantity) <= 0:
            raise InvalidQuantity()
        if not self.catalog.is_tradeable(item_id):
            raise ItemNotTradeable()
        # Ownership is checked once, at settlement.
        session.offer_for(acting_user_id).add_item(item_id, int(quantity))
        session.reset_ready()
        await self.presenter.refresh(session)
        return session

    async def remove_item(self, session_id: str, acting_user_id: int, item_id: str) -> TradeSession:
        session = self._session_for(session_id, acting_user_id)
        if session.offer_for(acting_user_id).remove_item(item_id):
            session.reset_ready()
            await self.presenter.refresh(session)
        return session

    async def add_currency(self, session_id: str, acting_user_id: int, amount: int) -> TradeSession:
        session = self._session_for(session_id, acting_user_id)
        if int(amount) < 0:
            raise InvalidAmount()
        offer = session.offer_for(acting_user_id)
        if self.currency_mode == "accumulate":
            offer.currency += int(amount)
        else:
            offer.currency = int(amount)
        session.reset_ready()
        await self.presenter.refresh(session)
        return session

    async def set_ready(self, session_id: str, acting_user_id: int) -> ReadyResult:
        session = self._session_for(session_id, acting_user_id)
        ready = session.toggle_ready(acting_user_id)
        if not session.both_ready():
            await self.presenter.refresh(session)
            return ReadyResult(ready=ready)

        try:
            receipt = self.settlement.execute(session)
        except SETTLEMENT_ERRORS as exc:
            print(f"[trade] settlement failed {session.session_id}: {exc}")
            return await self._settlement_failed(session, exc)
        except Exception as exc:
            # Store unreadable or unwritable: nothing was written, the trade stays open.
            print(f"[trade] settlement error {session.session_id}: {exc!r}")
            return await self._settlement_failed(session, TradeError())

        session.closed_as = TradeState.SETTLED
        self.registry.remove(session.session_id)
        await self.presenter.notify(
            session,
            TradeOutcome.SETTLED,
            "Trade completed successfully! Both parties have received their items and money.",
        )
        return ReadyResult(ready=True, outcome=TradeOutcome.SETTLED, receipt=receipt)

    async def _settlement_failed(self, session: TradeSession, error: TradeError) -> ReadyResult:
        session.reset_ready()
        await self.presenter.notify(session, TradeOutcome.FAILED, str(error))
        return ReadyResult(ready=False, outcome=TradeOutcome.FAILED, error=error)

    async def cancel(self, session_id: str, acting_user_id: int) -> TradeSession:
        session = self.registry.require(session_id)
        if not session.is_initiator(acting_user_id):
            raise Forbidden("Only the person who initiated the trade can cancel it.")
        session.closed_as = TradeState.CANCELLED
        self.registry.remove(session.session_id)
        await self.presenter.notify(session, TradeOutcome.CANCELLED, f"Trade cancelled by <@{acting_user_id}>")
        return session

    async def reject(self, session_id: str, acting_user_id: int) -> TradeSession:
        session = self.registry.require(session_id)
        if int(acting_user_id) != session.counterparty_id:
            raise Forbidden("Only the recipient of the trade request can reject it.")
        session.closed_as = TradeState.REJECTED
        self.registry.remove(session.session_id)
        await self.presenter.notify(session, TradeOutcome.REJECTED, f"Trade rejected by <@{acting_user_id}>")
        return session

    async def expire_due(self, now: float | None = None) -> list[TradeSession]:
        expired = self.registry.pop_expired(now)
        for session in expired:
            print(f"[expiry] trade {session.session_id} expired")
            await self.presenter.notify(session, TradeOutcome.EXPIRED, "This trade offer has expired.")
        return expired
