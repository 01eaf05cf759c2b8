from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, List

from dotenv import load_dotenv

load_dotenv()


def _split_csv(raw: str | None) -> List[str]:
    if not raw:
        return []
    return [token.strip() for token in raw.split(",") if token.strip()]


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class Settings:
    """Central configuration driven by environment variables."""

    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    request_timeout_seconds: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "10"))

    data_dir: Path = field(default_factory=lambda: Path(os.getenv("DATA_DIR", "./data")))
    cache_filename: str = os.getenv("CACHE_FILENAME", "price_cache.json")

    price_source: str = os.getenv("PRICE_SOURCE", "coingecko")
    coingecko_api_key: str | None = os.getenv("COINGECKO_API_KEY")
    coingecko_api_key_type: str = os.getenv("COINGECKO_API_KEY_TYPE", "demo")
    tracked_symbols_raw: str | None = os.getenv("TRACKED_SYMBOLS", "btc,eth")
    selected_coins_raw: str | None = os.getenv("SELECTED_COINS", "bitcoin,ethereum")

    rate_limit_max_requests: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "3600"))
    nonce_secret: str | None = os.getenv("NONCE_SECRET")
    nonce_lifetime_seconds: int = int(os.getenv("NONCE_LIFETIME_SECONDS", "86400"))
    admin_api_key: str | None = os.getenv("ADMIN_API_KEY")

    scheduler_enabled: bool = _env_flag("SCHEDULER_ENABLED", "true")
    scheduler_tick_seconds: float = float(os.getenv("SCHEDULER_TICK_SECONDS", "30"))
    cors_allow_origins_raw: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    def ensure_paths(self) -> None:
        """Create expected directories if they do not exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def cache_path(self) -> Path:
        return self.data_dir / self.cache_filename

    @property
    def tracked_symbols(self) -> List[str]:
        # Order is kept so provider batches are stable between runs.
        seen: dict[str, None] = {}
        for token in _split_csv(self.tracked_symbols_raw):
            seen.setdefault(token.lower(), None)
        return list(seen)

    @property
    def selected_coin_ids(self) -> List[str]:
        return _split_csv(self.selected_coins_raw)

    @property
    def cors_origins(self) -> List[str]:
        return _split_csv(self.cors_allow_origins_raw) or ["*"]

    def source_options(self) -> dict[str, str | None]:
        """Credentials and options handed to provider adapters."""
        return {
            "coingecko_api_key": self.coingecko_api_key,
            "coingecko_api_key_type": self.coingecko_api_key_type,
        }


# Singleton-style settings import
settings: Final[Settings] = Settings()
settings.ensure_paths()
