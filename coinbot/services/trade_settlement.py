from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from coinbot.db.repositories import UserRecord, UserRecordStore
from coinbot.services.trade_errors import InsufficientFunds, InsufficientItems
from coinbot.services.trade_sessions import TradeOffer, TradeSession


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class SettlementReceipt:
    session_id: str
    initiator_id: int
    counterparty_id: int
    initiator_balance: int
    counterparty_balance: int
    items_to_counterparty: dict[str, int]
    items_to_initiator: dict[str, int]
    settled_at: int


def _check_items(record: UserRecord, offer: TradeOffer, who: str) -> None:
    for item_id, qty in offer.items.items():
        owned = record.item_quantity(item_id)
        if owned < qty:
            raise InsufficientItems(f"{who} doesn't have enough {item_id} ({owned}/{qty}).")


def _move_items(giver: UserRecord, receiver: UserRecord, offer: TradeOffer, acquired: int) -> None:
    for item_id, qty in offer.items.items():
        giver.take_item(item_id, qty)
        receiver.give_item(item_id, qty, acquired)


class SettlementProcessor:
    """Moves both offers between the two user records, all or nothing.

    Both records are read fresh inside one store transaction, every balance
    and item check runs before the first mutation, and both records are
    written back together.
    """

    def __init__(self, store: UserRecordStore, *, clock_ms: Callable[[], int] = _now_ms) -> None:
        self.store = store
        self._clock_ms = clock_ms

    def execute(self, session: TradeSession) -> SettlementReceipt:
        give = session.initiator_offer
        take = session.counterparty_offer
        with self.store.transaction() as records:
            initiator = records.get(session.initiator_id)
            counterparty = records.get(session.counterparty_id)

            if initiator.balance < give.currency:
                raise InsufficientFunds(
                    f"<@{session.initiator_id}> doesn't have enough coins "
                    f"({initiator.balance:,}/{give.currency:,})."
                )
            if counterparty.balance < take.currency:
                raise InsufficientFunds(
                    f"<@{session.counterparty_id}> doesn't have enough coins "
                    f"({counterparty.balance:,}/{take.currency:,})."
                )
            _check_items(initiator, give, f"<@{session.initiator_id}>")
            _check_items(counterparty, take, f"<@{session.counterparty_id}>")

            settled_at = self._clock_ms()
            _move_items(initiator, counterparty, give, settled_at)
            _move_items(counterparty, initiator, take, settled_at)

            initiator.balance += take.currency - give.currency
            counterparty.balance += give.currency - take.currency

        print(
            f"[trade] completed {session.session_id}: "
            f"initiator={session.initiator_id} gave {len(give.items)} item(s) + {give.currency} coins; "
            f"counterparty={session.counterparty_id} gave {len(take.items)} item(s) + {take.currency} coins"
        )
        return SettlementReceipt(
            session_id=session.session_id,
            initiator_id=session.initiator_id,
            counterparty_id=session.counterparty_id,
            initiator_balance=initiator.balance,
            counterparty_balance=counterparty.balance,
            items_to_counterparty=dict(give.items),
            items_to_initiator=dict(take.items),
            settled_at=settled_at,
        )
