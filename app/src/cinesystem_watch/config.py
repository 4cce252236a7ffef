from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv
import logging
import os

load_dotenv()

CACHE_BACKENDS = ("file", "redis", "none")
DATE_MODES = ("today", "tomorrow", "fixed")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Config:
    timezone: str
    city_id: str
    theater_id: str
    date_mode: str
    fixed_date: str

    data_dir: Path
    payload_dir: Path
    cache_backend: str
    redis_url: str | None
    redis_key_prefix: str
    upcoming_enabled: bool
    upcoming_max_days_ahead: int

    @property
    def source_id(self) -> str:
        return self.theater_id


def load_config() -> Config:
    logger = logging.getLogger(__name__)
    data_dir = Path(os.getenv("DATA_DIR", "./data"))
    data_dir.mkdir(parents=True, exist_ok=True)

    def _int(name: str, default: int) -> int:
        try:
            return int(os.getenv(name, str(default)).strip())
        except Exception:
            logger.warning("invalid %s=%s, using default=%s", name, os.getenv(name, ""), default)
            return default

    def _bool(name: str, default: bool) -> bool:
        raw = os.getenv(name)
        if raw is None or raw.strip() == "":
            return default
        val = raw.strip().lower()
        if val in ("1", "true", "yes", "on"):
            return True
        if val in ("0", "false", "no", "off"):
            return False
        logger.warning(
            "invalid %s=%s, using default=%s",
            name,
            raw,
            default,
        )
        return default

    def _choice(name: str, default: str, choices: tuple[str, ...]) -> str:
        val = os.getenv(name, default).strip().lower()
        if val not in choices:
            logger.warning("invalid %s=%s, using default=%s", name, val, default)
            return default
        return val

    upcoming_max_days_ahead = _int("UPCOMING_MAX_DAYS_AHEAD", 14)
    if upcoming_max_days_ahead <= 0:
        logger.warning(
            "invalid UPCOMING_MAX_DAYS_AHEAD=%s, using default=14",
            os.getenv("UPCOMING_MAX_DAYS_AHEAD", ""),
        )
        upcoming_max_days_ahead = 14

    redis_url = os.getenv("REDIS_URL", "").strip() or None

    return Config(
        timezone=os.getenv("TIMEZONE", "America/Maceio"),
        city_id=os.getenv("CITY_ID", "53").strip(),
        theater_id=os.getenv("THEATER_ID", "1162").strip(),
        date_mode=_choice("DATE_MODE", "today", DATE_MODES),
        fixed_date=os.getenv("FIXED_DATE", "").strip(),

        data_dir=data_dir,
        payload_dir=Path(os.getenv("PAYLOAD_DIR", "./payloads")),
        cache_backend=_choice("CACHE_BACKEND", "file", CACHE_BACKENDS),
        redis_url=redis_url,
        redis_key_prefix=os.getenv("REDIS_KEY_PREFIX", "cinesystem").strip() or "cinesystem",
        upcoming_enabled=_bool("UPCOMING_ENABLED", True),
        upcoming_max_days_ahead=upcoming_max_days_ahead,
    )
