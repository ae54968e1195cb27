import asyncio

import discord

from coinbot.commands import setup_commands
from coinbot.commands.trade import TradeInteractionGateway
from coinbot.commands.trade_views import DiscordTradePresenter
from coinbot.config.runtime import ensure_app_config_defaults, get_app_config, parse_quick_amounts
from coinbot.config.settings import DATA_DIR, GUILD_ID, TOKEN
from coinbot.core.items import ItemCatalog
from coinbot.db.repositories import UserRecordStore
from coinbot.services.trade_engine import TradeNegotiationEngine
from coinbot.services.trade_sessions import TradeSessionRegistry
from coinbot.services.trade_settlement import SettlementProcessor


class CoinBot(discord.Client):
    def __init__(self) -> None:
        intents = discord.Intents.default()
        super().__init__(intents=intents)
        self.tree = discord.app_commands.CommandTree(self)
        self._synced = False
        self._expiry_task: asyncio.Task | None = None
        self.trade_registry: TradeSessionRegistry | None = None
        self.trade_engine: TradeNegotiationEngine | None = None
        self.trade_gateway: TradeInteractionGateway | None = None

    async def setup_hook(self) -> None:
        store = UserRecordStore(default_balance=int(get_app_config("DEFAULT_BALANCE")))
        catalog = ItemCatalog()
        self.trade_registry = TradeSessionRegistry(
            timeout_seconds=int(get_app_config("TRADE_TIMEOUT_SECONDS")),
        )
        self.trade_engine = TradeNegotiationEngine(
            self.trade_registry,
            SettlementProcessor(store),
            catalog,
            DiscordTradePresenter(self, catalog),
            currency_mode=str(get_app_config("CURRENCY_OFFER_MODE")),
        )
        self.trade_gateway = TradeInteractionGateway(
            self.trade_engine,
            store,
            catalog,
            quick_amounts=parse_quick_amounts(str(get_app_config("TRADE_QUICK_AMOUNTS"))),
            max_quantity_digits=int(get_app_config("ITEM_QUANTITY_MAX_DIGITS")),
        )
        setup_commands(self.tree, self.trade_gateway)

    async def on_ready(self) -> None:
        if self._synced:
            return

        if GUILD_ID > 0:
            # Dev mode: guild commands show up immediately.
            guild = discord.Object(id=GUILD_ID)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
        else:
            await self.tree.sync()

        self._synced = True
        print(f"[ready] logged in as {self.user} ({len(self.guilds)} guilds)")
        if self._expiry_task is None:
            self._expiry_task = asyncio.create_task(self._trade_expiry_loop())

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if self.trade_gateway is None:
            return
        if interaction.type == discord.InteractionType.component:
            await self.trade_gateway.on_button_or_menu(interaction)
        elif interaction.type == discord.InteractionType.modal_submit:
            await self.trade_gateway.on_modal_submit(interaction)

    async def _trade_expiry_loop(self) -> None:
        while not self.is_closed():
            poll_seconds = float(get_app_config("EXPIRY_POLL_SECONDS"))
            try:
                if self.trade_engine is not None:
                    await self.trade_engine.expire_due()
            except Exception as exc:
                print(f"[expiry] loop error: {exc}")
            await asyncio.sleep(poll_seconds)

    async def close(self) -> None:
        if self._expiry_task is not None:
            self._expiry_task.cancel()
            self._expiry_task = None
        if self.trade_registry is not None:
            self.trade_registry.close()
        await super().close()


def run() -> None:
    if not TOKEN:
        raise SystemExit("No bot token: set TOKEN in .env or put it in a TOKEN file.")
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    ensure_app_config_defaults()
    bot = CoinBot()
    bot.run(TOKEN)
