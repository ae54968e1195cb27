import os
from pathlib import Path

from dotenv import load_dotenv


_ROOT = Path(__file__).resolve().parents[2]
_TOKEN_PATH = _ROOT / "TOKEN"

load_dotenv(_ROOT / ".env")


def _read_token() -> str:
    token = os.getenv("TOKEN", "").strip()
    if token:
        return token
    if _TOKEN_PATH.exists():
        return _TOKEN_PATH.read_text(encoding="utf-8").strip()
    return ""


TOKEN = _read_token()
GUILD_ID = int(os.getenv("GUILD_ID", "0") or 0)     # >0 = sync commands to this guild only (dev mode)
DATA_DIR = Path(os.getenv("COINBOT_DATA_DIR", "") or (_ROOT / "data"))
USER_DATA_PATH = DATA_DIR / "userdata.json"
SHOP_ITEMS_PATH = DATA_DIR / "shopItems.json"
APP_STATE_PATH = DATA_DIR / "app_state.json"

# APP CONFIGS
DEFAULT_BALANCE = 1000                      # Balance given to a user record on first read
TRADE_TIMEOUT_SECONDS = 60                  # Trade expires this long after creation (not reset by activity)
TRADE_QUICK_AMOUNTS = "100,500,1000,5000"   # Quick-pick coin buttons in the money picker (max 4)
CURRENCY_OFFER_MODE = "replace"             # "replace" = new coin offer overwrites; "accumulate" = adds up
ITEM_QUANTITY_MAX_DIGITS = 3                # Max digits accepted by the item quantity modal
EXPIRY_POLL_SECONDS = 1.0                   # Cadence of the background expiry sweep
