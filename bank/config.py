import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret: str | None
    stripe_secret_key: str | None
    currency: str
    log_level: str
    log_json: bool
    hold_recovery_grace_seconds: int


@lru_cache()
def get_settings() -> Settings:
    """Read settings from the environment once per process."""
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./bank.db"),
        jwt_secret=os.getenv("JWT_SECRET"),
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
        currency=os.getenv("PAYMENT_CURRENCY", "eur").lower(),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_json=_flag("LOG_JSON", "true"),
        hold_recovery_grace_seconds=int(os.getenv("HOLD_RECOVERY_GRACE_SECONDS", "300")),
    )
