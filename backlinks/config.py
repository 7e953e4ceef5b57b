"""Centralised settings for the backlink checker.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Fetcher
    # ------------------------------------------------------------------
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "15.0"))
    )
    # Shorter bound for on-demand checks where a caller waits synchronously.
    single_check_timeout: float = field(
        default_factory=lambda: float(os.environ.get("SINGLE_CHECK_TIMEOUT", "8.0"))
    )
    max_redirects: int = field(
        default_factory=lambda: int(os.environ.get("MAX_REDIRECTS", "5"))
    )

    # ------------------------------------------------------------------
    # Scheduler
    # ------------------------------------------------------------------
    pacing_delay: float = field(
        default_factory=lambda: float(os.environ.get("PACING_DELAY", "1.0"))
    )

    # ------------------------------------------------------------------
    # Domain rating (Ahrefs)
    # ------------------------------------------------------------------
    ahrefs_api_key: str = field(
        default_factory=lambda: os.environ.get("AHREFS_API", "")
    )
    ahrefs_base_url: str = field(
        default_factory=lambda: os.environ.get(
            "AHREFS_BASE_URL", "https://api.ahrefs.com/v3"
        )
    )
    domain_rating_timeout: float = field(
        default_factory=lambda: float(os.environ.get("DOMAIN_RATING_TIMEOUT", "10.0"))
    )

    # ------------------------------------------------------------------
    # Progress channel
    # ------------------------------------------------------------------
    observer_queue_size: int = field(
        default_factory=lambda: int(os.environ.get("OBSERVER_QUEUE_SIZE", "256"))
    )

    # ------------------------------------------------------------------
    # HTTP server
    # ------------------------------------------------------------------
    host: str = field(default_factory=lambda: os.environ.get("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.environ.get("PORT", "4000")))
    cors_origins: list[str] = field(
        default_factory=lambda: [
            origin.strip()
            for origin in os.environ.get("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]
    )


# Module-level singleton, import this everywhere:
#   from backlinks.config import settings
settings = Settings()
