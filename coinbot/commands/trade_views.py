from __future__ import annotations

import discord
from discord import ButtonStyle, Embed

from coinbot.core.items import ItemCatalog
from coinbot.db.repositories import InventoryItem
from coinbot.services.trade_actions import (
    Cancel,
    OpenItemPicker,
    OpenMoneyModal,
    OpenMoneyPicker,
    OpenRemovePicker,
    QuickMoney,
    Ready,
    Reject,
    SelectItem,
    SelectRemoveItem,
    SubmitMoney,
    SubmitQuantity,
    TradeAction,
    encode_action,
)
from coinbot.services.trade_engine import TradeOutcome
from coinbot.services.trade_sessions import TradeOffer, TradeSession

_SELECT_LIMIT = 25

_OUTCOME_TITLES = {
    TradeOutcome.SETTLED: ("Trade Completed", "✅ Trade completed successfully!", 0x00FF00),
    TradeOutcome.FAILED: ("Trade Failed", "❌ Trade failed!", 0xFF0000),
    TradeOutcome.CANCELLED: ("Trade Cancelled", "Trade has been cancelled.", 0xFF0000),
    TradeOutcome.REJECTED: ("Trade Rejected", "Trade has been rejected.", 0xFF0000),
    TradeOutcome.EXPIRED: ("Trade Expired", "This trade has expired due to inactivity.", 0xFF0000),
}


def format_money(amount: int) -> str:
    return f"💰 {int(amount):,} coins"


def _offer_text(offer: TradeOffer, catalog: ItemCatalog) -> str:
    lines = [
        f"{catalog.emoji(item_id)} {qty}x {catalog.name(item_id)}"
        for item_id, qty in offer.items.items()
    ]
    text = "\n".join(lines) if lines else "No items added"
    if offer.currency > 0:
        text += f"\n{format_money(offer.currency)}"
    return text


def _ready_text(ready: bool) -> str:
    return "✅ Ready" if ready else "⏳ Not Ready"


def build_trade_embed(
    session: TradeSession,
    catalog: ItemCatalog,
    initiator_name: str,
    counterparty_name: str,
) -> Embed:
    embed = Embed(
        title=f"Trade: {initiator_name} ⟷ {counterparty_name}",
        color=0x0099FF,
        timestamp=session.created_at,
    )
    embed.add_field(
        name=f"{initiator_name}'s Offer ({_ready_text(session.initiator_ready)})",
        value=_offer_text(session.initiator_offer, catalog),
        inline=False,
    )
    embed.add_field(
        name=f"{counterparty_name}'s Offer ({_ready_text(session.counterparty_ready)})",
        value=_offer_text(session.counterparty_offer, catalog),
        inline=False,
    )
    embed.set_footer(text=f"Trade ID: {session.session_id}")
    return embed


def build_outcome_embed(outcome: TradeOutcome, detail: str) -> Embed:
    title, _content, color = _OUTCOME_TITLES[outcome]
    embed = Embed(title=title, description=detail, color=color)
    embed.timestamp = discord.utils.utcnow()
    return embed


def outcome_content(outcome: TradeOutcome) -> str:
    return _OUTCOME_TITLES[outcome][1]


def _button(action: TradeAction, label: str, style: ButtonStyle) -> discord.ui.Button:
    return discord.ui.Button(label=label, style=style, custom_id=encode_action(action))


class TradeControlsView(discord.ui.View):
    """Private control row for one participant. Clicks are routed by custom id."""

    def __init__(self, session: TradeSession, user_id: int) -> None:
        super().__init__(timeout=None)
        sid = session.session_id
        self.add_item(_button(OpenItemPicker(sid, user_id), "Add Items", ButtonStyle.primary))
        self.add_item(_button(OpenRemovePicker(sid, user_id), "Remove Items", ButtonStyle.secondary))
        self.add_item(_button(OpenMoneyPicker(sid, user_id), "Add Money", ButtonStyle.primary))
        self.add_item(_button(Ready(sid, user_id), "Ready", ButtonStyle.success))
        if session.is_initiator(user_id):
            self.add_item(_button(Cancel(sid, None), "Cancel Trade", ButtonStyle.danger))
        else:
            self.add_item(_button(Reject(sid, None), "Reject Trade", ButtonStyle.danger))


class ItemPickerView(discord.ui.View):
    def __init__(self, action: SelectItem | SelectRemoveItem, options: list[discord.SelectOption], placeholder: str) -> None:
        super().__init__(timeout=180)
        self.add_item(
            discord.ui.Select(
                custom_id=encode_action(action),
                placeholder=placeholder,
                min_values=1,
                max_values=1,
                options=options[:_SELECT_LIMIT],
            )
        )


def inventory_options(items: list[InventoryItem], catalog: ItemCatalog) -> list[discord.SelectOption]:
    return [
        discord.SelectOption(
            label=catalog.name(item.id)[:100],
            value=item.id,
            description=f"You have: {item.quantity}",
            emoji=catalog.emoji(item.id),
        )
        for item in items[:_SELECT_LIMIT]
    ]


def offer_options(offer: TradeOffer, catalog: ItemCatalog) -> list[discord.SelectOption]:
    return [
        discord.SelectOption(
            label=f"{catalog.name(item_id)} × {qty}"[:100],
            value=item_id,
            emoji=catalog.emoji(item_id),
        )
        for item_id, qty in list(offer.items.items())[:_SELECT_LIMIT]
    ]


class MoneyPickerView(discord.ui.View):
    def __init__(self, session_id: str, user_id: int, amounts: list[int]) -> None:
        super().__init__(timeout=180)
        for amount in amounts:
            self.add_item(
                _button(QuickMoney(session_id, user_id, amount), f"{amount:,}", ButtonStyle.secondary)
            )
        self.add_item(_button(OpenMoneyModal(session_id, user_id), "Custom Amount", ButtonStyle.primary))


class QuantityModal(discord.ui.Modal):
    def __init__(self, session_id: str, user_id: int, item_id: str, max_digits: int = 3) -> None:
        super().__init__(
            title="Add Item to Trade",
            custom_id=encode_action(SubmitQuantity(session_id, user_id, item_id)),
        )
        upper = 10 ** max_digits - 1
        self.add_item(
            discord.ui.TextInput(
                custom_id="quantity",
                label="How many do you want to trade?",
                style=discord.TextStyle.short,
                min_length=1,
                max_length=max_digits,
                placeholder=f"Enter a number (1-{upper})",
                required=True,
            )
        )


class MoneyModal(discord.ui.Modal):
    def __init__(self, session_id: str, user_id: int) -> None:
        super().__init__(
            title="Add Money to Trade",
            custom_id=encode_action(SubmitMoney(session_id, user_id)),
        )
        self.add_item(
            discord.ui.TextInput(
                custom_id="amount",
                label="Enter amount",
                style=discord.TextStyle.short,
                min_length=1,
                max_length=10,
                placeholder="Enter amount of coins",
                required=True,
            )
        )


class DiscordTradePresenter:
    """Redraws the public trade message held in ``session.ui_handle``."""

    def __init__(self, client: discord.Client, catalog: ItemCatalog) -> None:
        self.client = client
        self.catalog = catalog

    def _name(self, user_id: int) -> str:
        user = self.client.get_user(int(user_id))
        if user is None:
            return f"User {user_id}"
        return user.display_name

    def trade_embed(self, session: TradeSession) -> Embed:
        return build_trade_embed(
            session,
            self.catalog,
            self._name(session.initiator_id),
            self._name(session.counterparty_id),
        )

    async def refresh(self, session: TradeSession) -> None:
        message = session.ui_handle
        if message is None:
            return
        try:
            await message.edit(embed=self.trade_embed(session))
        except (discord.NotFound, discord.Forbidden, discord.HTTPException) as exc:
            print(f"[trade] failed to refresh trade message {session.session_id}: {exc}")

    async def notify(self, session: TradeSession, outcome: TradeOutcome, detail: str) -> None:
        message = session.ui_handle
        if message is None:
            return
        mentions = f"<@{session.initiator_id}> <@{session.counterparty_id}>"
        try:
            if outcome == TradeOutcome.FAILED:
                # The trade stays open: keep the offer on screen and say why it failed.
                await message.edit(
                    content=f"{outcome_content(outcome)} {mentions}\n{detail}\nBoth sides must press Ready again.",
                    embed=self.trade_embed(session),
                )
                return
            await message.edit(
                content=f"{outcome_content(outcome)} {mentions}",
                embed=build_outcome_embed(outcome, detail),
                view=None,
            )
        except (discord.NotFound, discord.Forbidden, discord.HTTPException) as exc:
            print(f"[trade] failed to post {outcome.value} for trade {session.session_id}: {exc}")
