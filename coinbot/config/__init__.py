from coinbot.config.settings import (
    APP_STATE_PATH,
    CURRENCY_OFFER_MODE,
    DATA_DIR,
    DEFAULT_BALANCE,
    GUILD_ID,
    SHOP_ITEMS_PATH,
    TOKEN,
    TRADE_QUICK_AMOUNTS,
    TRADE_TIMEOUT_SECONDS,
    USER_DATA_PATH,
)

__all__ = [
    "APP_STATE_PATH",
    "CURRENCY_OFFER_MODE",
    "DATA_DIR",
    "DEFAULT_BALANCE",
    "GUILD_ID",
    "SHOP_ITEMS_PATH",
    "TOKEN",
    "TRADE_QUICK_AMOUNTS",
    "TRADE_TIMEOUT_SECONDS",
    "USER_DATA_PATH",
]
