from __future__ import annotations

from typing import Any, Awaitable, Callable

import discord
from discord import Interaction, User, app_commands

from coinbot.commands.trade_views import (
    ItemPickerView,
    MoneyModal,
    MoneyPickerView,
    QuantityModal,
    TradeControlsView,
    format_money,
    inventory_options,
    offer_options,
)
from coinbot.core.items import ItemCatalog
from coinbot.db.repositories import UserRecordStore
from coinbot.services.trade_actions import (
    ACTION_TYPES,
    MODAL_ACTIONS,
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
    decode_action,
)
from coinbot.services.trade_engine import TradeNegotiationEngine, TradeOutcome
from coinbot.services.trade_errors import (
    InsufficientFunds,
    InsufficientItems,
    InvalidAmount,
    InvalidQuantity,
    ItemNotTradeable,
    NotParticipant,
    SessionExpiredOrInvalid,
    TradeError,
)
from coinbot.services.trade_sessions import TradeSession

GENERIC_ERROR_MESSAGE = "Something went wrong with the trade."

Handler = Callable[[Interaction, TradeSession, Any], Awaitable[None]]


def modal_fields(interaction: Interaction) -> dict[str, str]:
    """Flatten submitted modal inputs into ``{custom_id: value}``."""
    out: dict[str, str] = {}
    rows = (interaction.data or {}).get("components", [])
    for row in rows:
        children = row.get("components")
        if children is None and isinstance(row.get("component"), dict):
            children = [row["component"]]
        for child in children or []:
            custom_id = child.get("custom_id")
            if custom_id:
                out[str(custom_id)] = str(child.get("value", ""))
    return out


def selected_values(interaction: Interaction) -> list[str]:
    return [str(v) for v in (interaction.data or {}).get("values", [])]


async def reply_private(interaction: Interaction, content: str, **kwargs: Any) -> None:
    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=True, **kwargs)
        return
    await interaction.response.send_message(content, ephemeral=True, **kwargs)


def _parse_int(raw: str) -> int | None:
    text = str(raw or "").strip().replace(",", "")
    try:
        return int(text)
    except ValueError:
        return None


class TradeInteractionGateway:
    """Routes trade buttons, select menus and modal submits to the negotiation engine.

    Every trade control carries a correlation id (see ``trade_actions``). The
    gateway decodes it, checks the session is still registered and that the
    clicking user is the one the control was built for, then runs the action.
    Rejected actions are answered privately to the clicking user.
    """

    def __init__(
        self,
        engine: TradeNegotiationEngine,
        store: UserRecordStore,
        catalog: ItemCatalog,
        *,
        quick_amounts: list[int] | None = None,
        max_quantity_digits: int = 3,
    ) -> None:
        self.engine = engine
        self.store = store
        self.catalog = catalog
        self.quick_amounts = list(quick_amounts or [100, 500, 1000, 5000])
        self.max_quantity_digits = int(max_quantity_digits)
        self._handlers: dict[type[TradeAction], Handler] = {
            OpenItemPicker: self._open_item_picker,
            OpenRemovePicker: self._open_remove_picker,
            OpenMoneyPicker: self._open_money_picker,
            SelectItem: self._select_item,
            SelectRemoveItem: self._select_remove_item,
            QuickMoney: self._quick_money,
            OpenMoneyModal: self._open_money_modal,
            Ready: self._ready,
            Cancel: self._cancel,
            Reject: self._reject,
            SubmitQuantity: self._submit_quantity,
            SubmitMoney: self._submit_money,
        }
        missing = set(ACTION_TYPES.values()) - set(self._handlers)
        if missing:
            raise RuntimeError(f"trade actions without a handler: {sorted(a.kind for a in missing)}")

    async def on_button_or_menu(self, interaction: Interaction) -> bool:
        return await self._handle(interaction, from_modal=False)

    async def on_modal_submit(self, interaction: Interaction) -> bool:
        return await self._handle(interaction, from_modal=True)

    async def _handle(self, interaction: Interaction, *, from_modal: bool) -> bool:
        custom_id = (interaction.data or {}).get("custom_id")
        try:
            action = decode_action(custom_id)
            if action is None:
                return False
            if isinstance(action, MODAL_ACTIONS) != from_modal:
                raise SessionExpiredOrInvalid()
            session = self._authorize(interaction, action)
            await self._handlers[type(action)](interaction, session, action)
        except TradeError as exc:
            await reply_private(interaction, str(exc))
        except Exception as exc:
            print(f"[trade] error handling interaction {custom_id}: {exc!r}")
            try:
                await reply_private(interaction, GENERIC_ERROR_MESSAGE)
            except discord.HTTPException as reply_exc:
                print(f"[trade] failed to send error response: {reply_exc}")
        return True

    def _authorize(self, interaction: Interaction, action: TradeAction) -> TradeSession:
        session = self.engine.registry.require(action.session_id)
        user_id = int(interaction.user.id)
        if action.user_id is not None and action.user_id != user_id:
            raise NotParticipant()
        # Cancel and reject controls carry no user id; the engine answers anyone
        # without the right role with Forbidden.
        if action.needs_user and not session.is_participant(user_id):
            raise NotParticipant()
        return session

    async def start_trade(self, interaction: Interaction, target: User) -> None:
        initiator = interaction.user
        if target.id == initiator.id:
            await reply_private(interaction, "You can't trade with yourself.")
            return
        if target.bot:
            await reply_private(interaction, "You can't trade with bots.")
            return
        try:
            session = await self.engine.open_trade(initiator.id, target.id)
        except TradeError as exc:
            await reply_private(interaction, str(exc))
            return

        try:
            await interaction.response.send_message(
                f"{target.mention}, {initiator.mention} wants to trade with you!",
                embed=self.engine.presenter.trade_embed(session),
            )
            session.ui_handle = await interaction.original_response()
            await interaction.followup.send(
                f"Use these controls to manage your trade with {target.display_name}:",
                view=TradeControlsView(session, initiator.id),
                ephemeral=True,
            )
        except Exception:
            self.engine.registry.remove(session.session_id)
            raise

        target_controls = TradeControlsView(session, target.id)
        try:
            await target.send(
                f"{initiator.display_name} wants to trade with you! Use these controls to manage the trade:",
                view=target_controls,
            )
        except (discord.Forbidden, discord.HTTPException):
            # DMs closed: post the counterparty's controls in the channel; only they can use them.
            await interaction.followup.send(
                f"{target.mention}, I couldn't send you a direct message. "
                "Use these controls to manage your side of the trade:",
                view=target_controls,
            )

    async def _open_item_picker(self, interaction: Interaction, session: TradeSession, action: OpenItemPicker) -> None:
        record = self.store.read(interaction.user.id)
        if not record.inventory:
            raise InsufficientItems("You don't have any items in your inventory to trade.")
        tradeable = [item for item in record.inventory if self.catalog.is_tradeable(item.id)]
        if not tradeable:
            raise InsufficientItems("You don't have any tradeable items.")
        await interaction.response.send_message(
            "Select an item to add to the trade:",
            view=ItemPickerView(
                SelectItem(session.session_id, interaction.user.id),
                inventory_options(tradeable, self.catalog),
                "Select an item to trade",
            ),
            ephemeral=True,
        )

    async def _open_remove_picker(self, interaction: Interaction, session: TradeSession, action: OpenRemovePicker) -> None:
        offer = session.offer_for(interaction.user.id)
        if not offer.items:
            raise TradeError("You haven't added any items to this trade.")
        await interaction.response.send_message(
            "Select an item to take out of the trade:",
            view=ItemPickerView(
                SelectRemoveItem(session.session_id, interaction.user.id),
                offer_options(offer, self.catalog),
                "Select an offered item",
            ),
            ephemeral=True,
        )

    async def _open_money_picker(self, interaction: Interaction, session: TradeSession, action: OpenMoneyPicker) -> None:
        record = self.store.read(interaction.user.id)
        await interaction.response.send_message(
            f"Your balance: {format_money(record.balance)}\nSelect an amount to add:",
            view=MoneyPickerView(session.session_id, interaction.user.id, self.quick_amounts),
            ephemeral=True,
        )

    async def _select_item(self, interaction: Interaction, session: TradeSession, action: SelectItem) -> None:
        values = selected_values(interaction)
        if not values:
            raise InvalidQuantity("No item selected.")
        item_id = values[0]
        if not self.catalog.is_tradeable(item_id):
            raise ItemNotTradeable()
        await interaction.response.send_modal(
            QuantityModal(session.session_id, interaction.user.id, item_id, self.max_quantity_digits)
        )

    async def _select_remove_item(self, interaction: Interaction, session: TradeSession, action: SelectRemoveItem) -> None:
        values = selected_values(interaction)
        if not values:
            raise InvalidQuantity("No item selected.")
        await self.engine.remove_item(session.session_id, interaction.user.id, values[0])
        await reply_private(interaction, f"Removed {self.catalog.name(values[0])} from the trade.")

    async def _open_money_modal(self, interaction: Interaction, session: TradeSession, action: OpenMoneyModal) -> None:
        await interaction.response.send_modal(MoneyModal(session.session_id, interaction.user.id))

    async def _offer_money(self, interaction: Interaction, session: TradeSession, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount()
        offered = session.offer_for(interaction.user.id).currency
        total = offered + amount if self.engine.currency_mode == "accumulate" else amount
        balance = self.store.read(interaction.user.id).balance
        if balance < total:
            raise InsufficientFunds(f"You don't have enough money. Your balance: {format_money(balance)}")
        await self.engine.add_currency(session.session_id, interaction.user.id, amount)
        await reply_private(interaction, f"Added {format_money(amount)} to the trade.")

    async def _quick_money(self, interaction: Interaction, session: TradeSession, action: QuickMoney) -> None:
        await self._offer_money(interaction, session, action.amount)

    async def _submit_money(self, interaction: Interaction, session: TradeSession, action: SubmitMoney) -> None:
        amount = _parse_int(modal_fields(interaction).get("amount", ""))
        if amount is None:
            raise InvalidAmount()
        await self._offer_money(interaction, session, amount)

    async def _submit_quantity(self, interaction: Interaction, session: TradeSession, action: SubmitQuantity) -> None:
        quantity = _parse_int(modal_fields(interaction).get("quantity", ""))
        if quantity is None or quantity <= 0:
            raise InvalidQuantity()
        already = session.offer_for(interaction.user.id).items.get(action.item_id, 0)
        owned = self.store.item_quantity(interaction.user.id, action.item_id)
        if owned < already + quantity:
            raise InsufficientItems(f"You don't have {already + quantity} of this item.")
        await self.engine.add_item(session.session_id, interaction.user.id, action.item_id, quantity)
        await reply_private(interaction, f"Added {quantity}x {self.catalog.name(action.item_id)} to the trade.")

    async def _ready(self, interaction: Interaction, session: TradeSession, action: Ready) -> None:
        result = await self.engine.set_ready(session.session_id, interaction.user.id)
        if result.outcome == TradeOutcome.SETTLED:
            await reply_private(interaction, "Trade completed successfully! Check your inventory and balance.")
        elif result.outcome == TradeOutcome.FAILED:
            await reply_private(interaction, f"The trade failed. {result.error}")
        else:
            state = "ready" if result.ready else "not ready"
            await reply_private(interaction, f"You are now {state} for the trade.")

    async def _cancel(self, interaction: Interaction, session: TradeSession, action: Cancel) -> None:
        await self.engine.cancel(session.session_id, interaction.user.id)
        await reply_private(interaction, "You have cancelled the trade.")

    async def _reject(self, interaction: Interaction, session: TradeSession, action: Reject) -> None:
        await self.engine.reject(session.session_id, interaction.user.id)
        await reply_private(interaction, "You have rejected the trade.")


def setup_trade(tree: app_commands.CommandTree, gateway: TradeInteractionGateway) -> None:
    @tree.command(name="trade", description="Trade items or money with another user.")
    @app_commands.describe(user="The user to trade with.")
    async def trade(interaction: Interaction, user: User) -> None:
        await gateway.start_trade(interaction, user)
