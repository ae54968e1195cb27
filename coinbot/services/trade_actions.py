"""Correlation ids carried by every trade control.

Wire shape: ``trade:<kind>:<session_id>[:<user_id>[:<extra>]]``. The user id
is the participant the control was built for; ``extra`` is the action's
argument (a coin amount, an item id). Ids that do not start with ``trade:``
belong to some other handler and decode to ``None``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from coinbot.services.trade_errors import MalformedCorrelationId

TRADE_PREFIX = "trade"
CUSTOM_ID_MAX_LENGTH = 100


@dataclass(frozen=True)
class TradeAction:
    session_id: str
    user_id: int | None

    kind: ClassVar[str] = ""
    needs_user: ClassVar[bool] = True

    def extra(self) -> str | None:
        return None

    @classmethod
    def from_fields(cls, session_id: str, user_id: int | None, extra: str | None) -> "TradeAction":
        if extra:
            raise MalformedCorrelationId()
        return cls(session_id, user_id)


@dataclass(frozen=True)
class OpenItemPicker(TradeAction):
    kind: ClassVar[str] = "add_items"


@dataclass(frozen=True)
class OpenRemovePicker(TradeAction):
    kind: ClassVar[str] = "remove_items"


@dataclass(frozen=True)
class OpenMoneyPicker(TradeAction):
    kind: ClassVar[str] = "add_money"


@dataclass(frozen=True)
class SelectItem(TradeAction):
    kind: ClassVar[str] = "select_item"


@dataclass(frozen=True)
class SelectRemoveItem(TradeAction):
    kind: ClassVar[str] = "select_remove"


@dataclass(frozen=True)
class OpenMoneyModal(TradeAction):
    kind: ClassVar[str] = "money_custom"


@dataclass(frozen=True)
class Ready(TradeAction):
    kind: ClassVar[str] = "ready"


@dataclass(frozen=True)
class SubmitMoney(TradeAction):
    kind: ClassVar[str] = "money_amount"


@dataclass(frozen=True)
class Cancel(TradeAction):
    kind: ClassVar[str] = "cancel"
    needs_user: ClassVar[bool] = False


@dataclass(frozen=True)
class Reject(TradeAction):
    kind: ClassVar[str] = "reject"
    needs_user: ClassVar[bool] = False


@dataclass(frozen=True)
class QuickMoney(TradeAction):
    amount: int

    kind: ClassVar[str] = "money"

    def extra(self) -> str | None:
        return str(self.amount)

    @classmethod
    def from_fields(cls, session_id: str, user_id: int | None, extra: str | None) -> "QuickMoney":
        if not extra or not extra.isdecimal():
            raise MalformedCorrelationId()
        return cls(session_id, user_id, int(extra))


@dataclass(frozen=True)
class SubmitQuantity(TradeAction):
    item_id: str

    kind: ClassVar[str] = "quantity"

    def extra(self) -> str | None:
        return self.item_id

    @classmethod
    def from_fields(cls, session_id: str, user_id: int | None, extra: str | None) -> "SubmitQuantity":
        if not extra:
            raise MalformedCorrelationId()
        return cls(session_id, user_id, extra)


ACTION_TYPES: dict[str, type[TradeAction]] = {
    action.kind: action
    for action in (
        OpenItemPicker,
        OpenRemovePicker,
        OpenMoneyPicker,
        SelectItem,
        SelectRemoveItem,
        OpenMoneyModal,
        Ready,
        SubmitMoney,
        Cancel,
        Reject,
        QuickMoney,
        SubmitQuantity,
    )
}

# Actions that arrive as modal submits rather than button/menu clicks.
MODAL_ACTIONS = (SubmitQuantity, SubmitMoney)


def encode_action(action: TradeAction) -> str:
    parts = [TRADE_PREFIX, action.kind, action.session_id]
    extra = action.extra()
    if action.user_id is not None:
        parts.append(str(int(action.user_id)))
    elif action.needs_user or extra is not None:
        raise ValueError(f"{action.kind} needs a user id")
    if extra is not None:
        parts.append(extra)
    custom_id = ":".join(parts)
    if len(custom_id) > CUSTOM_ID_MAX_LENGTH:
        raise ValueError(f"custom id too long ({len(custom_id)} chars)")
    return custom_id


def is_trade_custom_id(custom_id: str | None) -> bool:
    return bool(custom_id) and str(custom_id).startswith(f"{TRADE_PREFIX}:")


def decode_action(custom_id: str | None) -> TradeAction | None:
    if not is_trade_custom_id(custom_id):
        return None
    # maxsplit keeps colons inside the extra field (item ids may contain them)
    parts = str(custom_id).split(":", 4)
    if len(parts) < 3:
        raise MalformedCorrelationId()
    kind, session_id = parts[1], parts[2]
    action_type = ACTION_TYPES.get(kind)
    if action_type is None or not session_id.isalnum():
        raise MalformedCorrelationId()

    user_id: int | None = None
    if len(parts) > 3:
        if not parts[3].isdecimal():
            raise MalformedCorrelationId()
        user_id = int(parts[3])
    elif action_type.needs_user:
        raise MalformedCorrelationId()
    extra = parts[4] if len(parts) > 4 else None
    return action_type.from_fields(session_id, user_id, extra)
