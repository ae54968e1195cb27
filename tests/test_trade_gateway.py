import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import discord

from coinbot.commands.trade import GENERIC_ERROR_MESSAGE, TradeInteractionGateway, modal_fields
from coinbot.commands.trade_views import QuantityModal, TradeControlsView
from coinbot.core.items import ItemCatalog
from coinbot.db.repositories import InventoryItem, UserRecord, UserRecordStore
from coinbot.services.trade_engine import TradeNegotiationEngine
from coinbot.services.trade_sessions import TradeSessionRegistry, TradeState
from coinbot.services.trade_settlement import SettlementProcessor

CATALOG_ITEMS = [
    {"id": "itemX", "name": "Item X"},
    {"id": "itemY", "name": "Item Y"},
    {"id": "bound", "name": "Soulbound", "tradeable": False},
]


class StubPresenter:
    def __init__(self) -> None:
        self.notices = []

    def trade_embed(self, session):
        return discord.Embed(title=f"Trade {session.session_id}")

    async def refresh(self, session) -> None:
        return None

    async def notify(self, session, outcome, detail) -> None:
        self.notices.append(outcome)


def make_interaction(user_id: int, data: dict | None = None) -> MagicMock:
    interaction = MagicMock()
    interaction.user.id = user_id
    interaction.data = data or {}
    interaction.response.is_done.return_value = False
    interaction.response.send_message = AsyncMock()
    interaction.response.send_modal = AsyncMock()
    interaction.followup.send = AsyncMock()
    interaction.original_response = AsyncMock(return_value=MagicMock(name="trade_message"))
    return interaction


def make_user(user_id: int, *, bot: bool = False) -> MagicMock:
    user = MagicMock()
    user.id = user_id
    user.bot = bot
    user.mention = f"<@{user_id}>"
    user.display_name = f"user{user_id}"
    user.send = AsyncMock()
    return user


def quantity_submit(custom_id: str, value: str) -> dict:
    return {
        "custom_id": custom_id,
        "components": [{"type": 1, "components": [{"type": 4, "custom_id": "quantity", "value": value}]}],
    }


class TradeInteractionGatewayTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = UserRecordStore(Path(self._tmp.name) / "userdata.json", default_balance=1000)
        self.store.write(1, UserRecord(balance=1000, inventory=[InventoryItem("bound", 1, 1)]))
        self.store.write(2, UserRecord(balance=100, inventory=[InventoryItem("itemY", 5, 1)]))
        self.catalog = ItemCatalog(items=CATALOG_ITEMS)
        self.registry = TradeSessionRegistry(60)
        self.presenter = StubPresenter()
        self.engine = TradeNegotiationEngine(
            self.registry,
            SettlementProcessor(self.store),
            self.catalog,
            self.presenter,
        )
        self.gateway = TradeInteractionGateway(self.engine, self.store, self.catalog)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _reply_text(self, interaction: MagicMock) -> str:
        interaction.response.send_message.assert_awaited()
        args, kwargs = interaction.response.send_message.await_args
        self.assertTrue(kwargs.get("ephemeral"))
        return args[0]

    async def test_ignores_foreign_custom_ids(self) -> None:
        interaction = make_interaction(1, {"custom_id": "shop:buy:itemX"})
        handled = await self.gateway.on_button_or_menu(interaction)
        self.assertFalse(handled)
        interaction.response.send_message.assert_not_awaited()

    async def test_unknown_session_is_reported_inactive(self) -> None:
        interaction = make_interaction(1, {"custom_id": "trade:ready:gone42:1"})
        self.assertTrue(await self.gateway.on_button_or_menu(interaction))
        self.assertEqual(self._reply_text(interaction), "This trade is no longer active.")

    async def test_malformed_id_is_reported_inactive(self) -> None:
        interaction = make_interaction(1, {"custom_id": "trade:ready"})
        self.assertTrue(await self.gateway.on_button_or_menu(interaction))
        self.assertEqual(self._reply_text(interaction), "This trade is no longer active.")

    async def test_control_built_for_someone_else_is_refused(self) -> None:
        session = await self.engine.open_trade(1, 2)
        interaction = make_interaction(2, {"custom_id": f"trade:ready:{session.session_id}:1"})
        await self.gateway.on_button_or_menu(interaction)
        self.assertEqual(self._reply_text(interaction), "You are not part of this trade.")
        self.assertFalse(session.initiator_ready or session.counterparty_ready)

    async def test_modal_action_arriving_as_button_is_refused(self) -> None:
        session = await self.engine.open_trade(1, 2)
        interaction = make_interaction(2, quantity_submit(f"trade:quantity:{session.session_id}:2:itemY", "1"))
        await self.gateway.on_button_or_menu(interaction)
        self.assertEqual(self._reply_text(interaction), "This trade is no longer active.")
        self.assertEqual(session.counterparty_offer.items, {})

    async def test_quick_money_offers_coins(self) -> None:
        session = await self.engine.open_trade(1, 2)
        interaction = make_interaction(1, {"custom_id": f"trade:money:{session.session_id}:1:500"})
        await self.gateway.on_button_or_menu(interaction)
        self.assertEqual(session.initiator_offer.currency, 500)
        self.assertIn("Added", self._reply_text(interaction))

    async def test_quick_money_checks_balance_first(self) -> None:
        session = await self.engine.open_trade(1, 2)
        interaction = make_interaction(2, {"custom_id": f"trade:money:{session.session_id}:2:500"})
        await self.gateway.on_button_or_menu(interaction)
        self.assertIn("You don't have enough money", self._reply_text(interaction))
        self.assertEqual(session.counterparty_offer.currency, 0)

    async def test_custom_money_modal(self) -> None:
        session = await self.engine.open_trade(1, 2)
        interaction = make_interaction(
            1,
            {
                "custom_id": f"trade:money_amount:{session.session_id}:1",
                "components": [{"type": 1, "components": [{"type": 4, "custom_id": "amount", "value": "1,000"}]}],
            },
        )
        await self.gateway.on_modal_submit(interaction)
        self.assertEqual(session.initiator_offer.currency, 1000)

    async def test_quantity_modal_adds_items_against_inventory(self) -> None:
        session = await self.engine.open_trade(1, 2)
        custom_id = f"trade:quantity:{session.session_id}:2:itemY"

        first = make_interaction(2, quantity_submit(custom_id, "3"))
        await self.gateway.on_modal_submit(first)
        self.assertEqual(session.counterparty_offer.items, {"itemY": 3})

        second = make_interaction(2, quantity_submit(custom_id, "3"))
        await self.gateway.on_modal_submit(second)
        self.assertEqual(self._reply_text(second), "You don't have 6 of this item.")
        self.assertEqual(session.counterparty_offer.items, {"itemY": 3})

    async def test_quantity_modal_rejects_non_numbers(self) -> None:
        session = await self.engine.open_trade(1, 2)
        interaction = make_interaction(2, quantity_submit(f"trade:quantity:{session.session_id}:2:itemY", "abc"))
        await self.gateway.on_modal_submit(interaction)
        self.assertEqual(self._reply_text(interaction), "Please enter a valid positive number.")

    async def test_selecting_an_item_opens_quantity_modal(self) -> None:
        session = await self.engine.open_trade(1, 2)
        interaction = make_interaction(
            2, {"custom_id": f"trade:select_item:{session.session_id}:2", "values": ["itemY"]}
        )
        await self.gateway.on_button_or_menu(interaction)
        interaction.response.send_modal.assert_awaited_once()
        modal = interaction.response.send_modal.await_args.args[0]
        self.assertIsInstance(modal, QuantityModal)
        self.assertEqual(modal.custom_id, f"trade:quantity:{session.session_id}:2:itemY")

    async def test_item_picker_needs_tradeable_inventory(self) -> None:
        session = await self.engine.open_trade(1, 2)
        interaction = make_interaction(1, {"custom_id": f"trade:add_items:{session.session_id}:1"})
        await self.gateway.on_button_or_menu(interaction)
        self.assertEqual(self._reply_text(interaction), "You don't have any tradeable items.")

    async def test_ready_reports_new_state(self) -> None:
        session = await self.engine.open_trade(1, 2)
        interaction = make_interaction(1, {"custom_id": f"trade:ready:{session.session_id}:1"})
        await self.gateway.on_button_or_menu(interaction)
        self.assertEqual(self._reply_text(interaction), "You are now ready for the trade.")
        self.assertTrue(session.initiator_ready)

    async def test_counterparty_cannot_use_cancel(self) -> None:
        session = await self.engine.open_trade(1, 2)
        interaction = make_interaction(2, {"custom_id": f"trade:cancel:{session.session_id}"})
        await self.gateway.on_button_or_menu(interaction)
        self.assertEqual(self._reply_text(interaction), "Only the person who initiated the trade can cancel it.")
        self.assertIn(session.session_id, self.registry)

    async def test_outsider_using_channel_controls_is_forbidden(self) -> None:
        session = await self.engine.open_trade(1, 2)
        cancel = make_interaction(7, {"custom_id": f"trade:cancel:{session.session_id}"})
        await self.gateway.on_button_or_menu(cancel)
        self.assertEqual(self._reply_text(cancel), "Only the person who initiated the trade can cancel it.")

        reject = make_interaction(7, {"custom_id": f"trade:reject:{session.session_id}"})
        await self.gateway.on_button_or_menu(reject)
        self.assertEqual(self._reply_text(reject), "Only the recipient of the trade request can reject it.")
        self.assertIn(session.session_id, self.registry)

    async def test_outsider_cannot_use_participant_controls(self) -> None:
        session = await self.engine.open_trade(1, 2)
        interaction = make_interaction(7, {"custom_id": f"trade:ready:{session.session_id}:7"})
        await self.gateway.on_button_or_menu(interaction)
        self.assertEqual(self._reply_text(interaction), "You are not part of this trade.")

    async def test_reject_closes_trade(self) -> None:
        session = await self.engine.open_trade(1, 2)
        interaction = make_interaction(2, {"custom_id": f"trade:reject:{session.session_id}"})
        await self.gateway.on_button_or_menu(interaction)
        self.assertEqual(session.state, TradeState.REJECTED)
        self.assertEqual(self._reply_text(interaction), "You have rejected the trade.")

    async def test_unexpected_errors_get_generic_reply(self) -> None:
        session = await self.engine.open_trade(1, 2)
        self.engine.set_ready = AsyncMock(side_effect=RuntimeError("disk on fire"))
        interaction = make_interaction(1, {"custom_id": f"trade:ready:{session.session_id}:1"})
        self.assertTrue(await self.gateway.on_button_or_menu(interaction))
        self.assertEqual(self._reply_text(interaction), GENERIC_ERROR_MESSAGE)

    async def test_start_trade_posts_message_and_controls(self) -> None:
        interaction = make_interaction(1)
        interaction.user = make_user(1)
        target = make_user(2)

        await self.gateway.start_trade(interaction, target)

        session = self.registry.session_for_user(1)
        self.assertIsNotNone(session)
        self.assertIs(session.ui_handle, interaction.original_response.return_value)
        interaction.response.send_message.assert_awaited_once()
        followup_kwargs = interaction.followup.send.await_args.kwargs
        self.assertTrue(followup_kwargs["ephemeral"])
        self.assertIsInstance(followup_kwargs["view"], TradeControlsView)
        target.send.assert_awaited_once()

    async def test_start_trade_falls_back_when_dms_closed(self) -> None:
        interaction = make_interaction(1)
        interaction.user = make_user(1)
        target = make_user(2)
        target.send.side_effect = discord.Forbidden(MagicMock(status=403, reason="Forbidden"), "closed")

        await self.gateway.start_trade(interaction, target)

        self.assertEqual(interaction.followup.send.await_count, 2)
        fallback = interaction.followup.send.await_args
        self.assertIn("<@2>", fallback.args[0])
        self.assertIsInstance(fallback.kwargs["view"], TradeControlsView)

    async def test_start_trade_refuses_self_bots_and_busy_users(self) -> None:
        interaction = make_interaction(1)
        interaction.user = make_user(1)
        await self.gateway.start_trade(interaction, make_user(1))
        self.assertEqual(self._reply_text(interaction), "You can't trade with yourself.")

        interaction = make_interaction(1)
        interaction.user = make_user(1)
        await self.gateway.start_trade(interaction, make_user(9, bot=True))
        self.assertEqual(self._reply_text(interaction), "You can't trade with bots.")

        await self.engine.open_trade(2, 3)
        interaction = make_interaction(1)
        interaction.user = make_user(1)
        await self.gateway.start_trade(interaction, make_user(2))
        self.assertEqual(self._reply_text(interaction), "One or both users are already in an active trade.")
        self.assertEqual(len(self.registry), 1)


class ModalFieldsTests(unittest.TestCase):
    def test_reads_action_rows_and_labels(self) -> None:
        interaction = MagicMock()
        interaction.data = {
            "components": [
                {"type": 1, "components": [{"type": 4, "custom_id": "quantity", "value": "7"}]},
                {"type": 18, "component": {"type": 4, "custom_id": "amount", "value": "12"}},
            ]
        }
        self.assertEqual(modal_fields(interaction), {"quantity": "7", "amount": "12"})


if __name__ == "__main__":
    unittest.main()
