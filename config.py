import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = Path(os.getenv("ENV_PATH", BASE_DIR / ".env"))
load_dotenv(ENV_PATH, override=True)


def _parse_int(value: Optional[str], default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _parse_float(value: Optional[str], default: float) -> float:
    try:
        return float(str(value).strip().replace(",", "."))
    except (TypeError, ValueError):
        return default


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _parse_csv(
    value: Optional[str],
    default: List[str],
    *,
    cast=str,
) -> list:
    if not value:
        return [cast(item) for item in default]
    parts = [item.strip() for item in value.replace(";", ",").split(",")]
    parts = [item for item in parts if item]
    return [cast(item) for item in parts]


def _resolve_path(raw: Optional[str], default: Path) -> Path:
    if not raw:
        return default
    path = Path(raw)
    if path.is_absolute() or (len(raw) >= 2 and raw[1] == ":"):
        return path
    return BASE_DIR / path


def _resolve_path_from(base: Path, raw: Optional[str], default: Path) -> Path:
    if not raw:
        return default
    path = Path(raw)
    if path.is_absolute() or (len(raw) >= 2 and raw[1] == ":"):
        return path
    return base / path


BOT_TOKEN = os.getenv("BOT_TOKEN", "").strip()
DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
REDIS_URL = os.getenv("REDIS_URL", "").strip()
PUBLIC_BOT_USERNAME = os.getenv("PUBLIC_BOT_USERNAME", "").strip()
ADMIN_TELEGRAM_ID = _parse_int(os.getenv("ADMIN_TELEGRAM_ID"), 0)
BOT_MODE = os.getenv("BOT_MODE", "polling").strip().lower()
WEBHOOK_URL = os.getenv("WEBHOOK_URL", "").strip()
WEBHOOK_PATH = os.getenv("WEBHOOK_PATH", "/telegram").strip()
WEBHOOK_SECRET_TOKEN = os.getenv("WEBHOOK_SECRET_TOKEN", "").strip()
WEBHOOK_LISTEN = os.getenv("WEBHOOK_LISTEN", "0.0.0.0").strip()
WEBHOOK_PORT = _parse_int(os.getenv("WEBHOOK_PORT"), 8080)
MINIAPP_URL = os.getenv("MINIAPP_URL", "").strip()
SUPPORT_URL = os.getenv("SUPPORT_URL", "").strip()
REQUIRED_CHANNEL = os.getenv("REQUIRED_CHANNEL", "@LuckyGame_uz").strip()
SUBSCRIPTION_REQUIRED = _parse_bool(os.getenv("SUBSCRIPTION_REQUIRED"), True)
JOB_SECRET = os.getenv("JOB_SECRET", "").strip()
CORS_ORIGIN = os.getenv("CORS_ORIGIN", "*").strip()

LOG_DIR = _resolve_path(os.getenv("LOG_DIR"), BASE_DIR / "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip()
LOG_RUNTIME_FILE = _resolve_path_from(
    LOG_DIR,
    os.getenv("LOG_RUNTIME_FILE"),
    LOG_DIR / "runtime" / "runtime.log",
)
LOG_BATTLE_FILE = _resolve_path_from(
    LOG_DIR,
    os.getenv("LOG_BATTLE_FILE"),
    LOG_DIR / "battle" / "battle.log",
)
LOG_WITHDRAWALS_FILE = _resolve_path_from(
    LOG_DIR,
    os.getenv("LOG_WITHDRAWALS_FILE"),
    LOG_DIR / "withdrawals" / "withdrawals.log",
)
LOG_GAMES_FILE = _resolve_path_from(
    LOG_DIR,
    os.getenv("LOG_GAMES_FILE"),
    LOG_DIR / "games" / "games.log",
)

NEW_USER_COINS = _parse_int(os.getenv("NEW_USER_COINS"), 500)
NEW_USER_TICKETS = _parse_int(os.getenv("NEW_USER_TICKETS"), 3)
BOT_START_COINS = _parse_int(os.getenv("BOT_START_COINS"), 300)
WINNING_SOURCES = set(_parse_csv(os.getenv("WINNING_SOURCES"), ["lottery", "wheel", "task"]))
DAILY_STAT_FIELDS = {
    "ads": "ads_watched",
    "wheel": "wheel_spins",
    "games": "games_played",
}

DRAW_INTERVAL_SEC = _parse_int(os.getenv("DRAW_INTERVAL_SEC"), 15 * 60)
DRAW_NUMBERS_COUNT = _parse_int(os.getenv("DRAW_NUMBERS_COUNT"), 7)
DRAW_NUMBERS_MAX = _parse_int(os.getenv("DRAW_NUMBERS_MAX"), 42)
DRAW_HISTORY_COUNT = _parse_int(os.getenv("DRAW_HISTORY_COUNT"), 24)
DRAW_RESULT_GRACE_SEC = _parse_int(os.getenv("DRAW_RESULT_GRACE_SEC"), 3 * 60 * 60)

BATTLE_INTERVAL_SEC = _parse_int(os.getenv("BATTLE_INTERVAL_SEC"), 30 * 60)
BATTLE_WINNER_PERCENT = _parse_float(os.getenv("BATTLE_WINNER_PERCENT"), 0.5)
BATTLE_WINNER_REWARD = _parse_int(os.getenv("BATTLE_WINNER_REWARD"), 20)
BATTLE_LOSER_REWARD = _parse_int(os.getenv("BATTLE_LOSER_REWARD"), 40)
BATTLE_TICK_SEC = _parse_int(os.getenv("BATTLE_TICK_SEC"), 60)
BATTLE_CLAIM_TIMEOUT_SEC = _parse_int(os.getenv("BATTLE_CLAIM_TIMEOUT_SEC"), 10 * 60)

TASK_RESET_HOURS = _parse_csv(os.getenv("TASK_RESET_HOURS"), ["0", "6", "12", "18"], cast=int)
REFERRAL_REWARD = _parse_int(os.getenv("REFERRAL_REWARD"), 50)
REFERRAL_TASK_TARGET = _parse_int(os.getenv("REFERRAL_TASK_TARGET"), 2)
REFERRAL_TASK_BONUS = _parse_int(os.getenv("REFERRAL_TASK_BONUS"), 100)

WITHDRAWAL_MIN_AMOUNT = _parse_int(os.getenv("WITHDRAWAL_MIN_AMOUNT"), 5000)
MAX_COIN_DELTA = _parse_int(os.getenv("MAX_COIN_DELTA"), 1_000_000)

MINES_BET_OPTIONS = _parse_csv(os.getenv("MINES_BET_OPTIONS"), ["10", "25", "50", "100"], cast=int)
BOX_BET_OPTIONS = _parse_csv(os.getenv("BOX_BET_OPTIONS"), ["20", "50", "100", "200"], cast=int)
EGG_MAX_ENERGY = _parse_int(os.getenv("EGG_MAX_ENERGY"), 5)
EGG_ENERGY_RECOVERY_SEC = _parse_int(os.getenv("EGG_ENERGY_RECOVERY_SEC"), 5 * 60)

BROADCAST_DELAY_SEC = _parse_float(os.getenv("BROADCAST_DELAY_SEC"), 0.05)
TOP_USERS_LIMIT = _parse_int(os.getenv("TOP_USERS_LIMIT"), 20)
