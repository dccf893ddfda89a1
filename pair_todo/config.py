from dataclasses import dataclass
import os
from pathlib import Path

try:
    from dotenv import load_dotenv
    load_dotenv()
except Exception:
    pass


DB_BACKENDS = ("sqlite", "postgres")


@dataclass(frozen=True)
class Settings:
    bot_token: str
    allowed_telegram_ids: tuple[int, ...]
    db_backend: str
    db_path: Path
    database_url: str
    week_timezone: str
    log_level: str
    db_busy_timeout_s: float = 30.0


def _parse_ids(raw: str) -> tuple[int, ...]:
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            raise RuntimeError(f"ALLOWED_TELEGRAM_IDS has an invalid id: {part!r}")
    return tuple(ids)


def load_settings(require_bot_token: bool = True) -> Settings:
    bot_token = os.getenv("BOT_TOKEN", "").strip()
    allowed = _parse_ids(os.getenv("ALLOWED_TELEGRAM_IDS", ""))
    database_url = os.getenv("DATABASE_URL", "").strip()
    backend = os.getenv("DB_BACKEND", "").strip().lower()
    db_raw = os.getenv("DB_PATH", "data/pair_todo.db").strip()
    week_tz = os.getenv("WEEK_TIMEZONE", "America/New_York").strip()
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    busy_raw = os.getenv("DB_BUSY_TIMEOUT_S", "30").strip()

    if not backend:
        backend = "postgres" if database_url.startswith(("postgres://", "postgresql://")) else "sqlite"
    if backend not in DB_BACKENDS:
        raise RuntimeError(f"DB_BACKEND must be one of {', '.join(DB_BACKENDS)} (got {backend!r})")
    if backend == "postgres" and not database_url:
        raise RuntimeError("DATABASE_URL missing in .env (required for DB_BACKEND=postgres)")

    if require_bot_token and not bot_token:
        raise RuntimeError("BOT_TOKEN missing in .env")
    if require_bot_token and not allowed:
        raise RuntimeError("ALLOWED_TELEGRAM_IDS missing/invalid in .env")

    try:
        busy_timeout = float(busy_raw)
    except ValueError:
        raise RuntimeError(f"DB_BUSY_TIMEOUT_S must be a number (got {busy_raw!r})")

    # relative db_path is resolved by the entry point
    return Settings(
        bot_token=bot_token,
        allowed_telegram_ids=allowed,
        db_backend=backend,
        db_path=Path(db_raw),
        database_url=database_url,
        week_timezone=week_tz,
        log_level=log_level,
        db_busy_timeout_s=busy_timeout,
    )
