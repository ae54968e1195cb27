from discord import app_commands

from coinbot.commands.trade import TradeInteractionGateway, setup_trade
from coinbot.commands.tradeconfig import setup_tradeconfig


def setup_commands(tree: app_commands.CommandTree, trade_gateway: TradeInteractionGateway) -> None:
    setup_trade(tree, trade_gateway)
    setup_tradeconfig(tree)
