from __future__ import annotations


class TradeError(Exception):
    """A rejected trade action. ``str(exc)`` is safe to show to the user."""

    default_message = "Something went wrong with the trade."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class AlreadyTrading(TradeError):
    default_message = "One or both users are already in an active trade."


class CannotTradeWithSelf(TradeError):
    default_message = "You can't trade with yourself."


class NotParticipant(TradeError):
    default_message = "You are not part of this trade."


class Forbidden(TradeError):
    default_message = "You are not allowed to do that in this trade."


class InvalidQuantity(TradeError):
    default_message = "Please enter a valid positive number."


class InvalidAmount(TradeError):
    default_message = "Please enter a valid amount."


class ItemNotTradeable(TradeError):
    default_message = "That item can't be traded."


class InsufficientFunds(TradeError):
    default_message = "Not enough coins for this trade."


class InsufficientItems(TradeError):
    default_message = "Not enough items for this trade."


class SessionExpiredOrInvalid(TradeError):
    default_message = "This trade is no longer active."


class MalformedCorrelationId(SessionExpiredOrInvalid):
    pass


# Raised by settlement; these leave the session open for renegotiation.
SETTLEMENT_ERRORS = (InsufficientFunds, InsufficientItems)
