import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from token_relay.utils.flags import parse_force_flag

load_dotenv()

logger = logging.getLogger("token_relay.config")

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return parse_force_flag(raw)


@dataclass(frozen=True)
class Settings:
    # Token source
    TOKEN_SOURCE_URL: str = os.getenv("TOKEN_SOURCE_URL", "https://open.spotify.com/")
    TOKEN_PATH_SUFFIX: str = os.getenv("TOKEN_PATH_SUFFIX", "/api/token")
    TOKEN_FETCH_DEADLINE_SECONDS: float = float(os.getenv("TOKEN_FETCH_DEADLINE_SECONDS") or "15")

    # Cache
    TOKEN_SAFETY_MARGIN_MS: int = int(os.getenv("TOKEN_SAFETY_MARGIN_MS") or "10000")

    # Browser
    BROWSER_HEADLESS: bool = _bool_env("BROWSER_HEADLESS", True)

    # App
    LOG_LEVEL: str = (os.getenv("LOG_LEVEL") or "INFO").upper()

    def __post_init__(self) -> None:
        if self.TOKEN_FETCH_DEADLINE_SECONDS <= 0:
            raise ValueError(
                f"TOKEN_FETCH_DEADLINE_SECONDS must be > 0, got {self.TOKEN_FETCH_DEADLINE_SECONDS}"
            )
        if self.TOKEN_SAFETY_MARGIN_MS < 0:
            raise ValueError(f"TOKEN_SAFETY_MARGIN_MS must be >= 0, got {self.TOKEN_SAFETY_MARGIN_MS}")
        if not self.TOKEN_PATH_SUFFIX.startswith("/"):
            raise ValueError(f"TOKEN_PATH_SUFFIX must start with '/', got '{self.TOKEN_PATH_SUFFIX}'")
        if self.LOG_LEVEL not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(LOG_LEVELS)}, got '{self.LOG_LEVEL}'")

    def log_summary(self) -> None:
        """Log the loaded settings."""
        logger.info(
            "settings_loaded",
            extra={
                "extra": {
                    "TOKEN_SOURCE_URL": self.TOKEN_SOURCE_URL,
                    "TOKEN_PATH_SUFFIX": self.TOKEN_PATH_SUFFIX,
                    "TOKEN_FETCH_DEADLINE_SECONDS": self.TOKEN_FETCH_DEADLINE_SECONDS,
                    "TOKEN_SAFETY_MARGIN_MS": self.TOKEN_SAFETY_MARGIN_MS,
                    "BROWSER_HEADLESS": self.BROWSER_HEADLESS,
                    "LOG_LEVEL": self.LOG_LEVEL,
                }
            },
        )


settings = Settings()
