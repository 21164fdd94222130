"""Scraper settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_BASE_URL = "https://www.zzap.ru"


@dataclass(slots=True)
class Credentials:
    email: str
    password: str


@dataclass(slots=True)
class ScraperConfig:
    base_url: str = DEFAULT_BASE_URL
    email: str | None = None
    password: str | None = None
    timeout_ms: int = 30000
    cookie_file: Path = Path(".cache/zzap-session.json")
    session_ttl_minutes: int = 180
    dx_idle_ms: int = 1800
    dx_max_wait_ms: int = 15000
    between_items_delay_ms: int = 2000
    between_items_jitter_ms: int = 3000
    estimate_item_ms: int = 12000
    row_timeout_s: float = 180.0
    headless: bool = True

    @classmethod
    def from_env(cls) -> "ScraperConfig":
        env = os.environ
        return cls(
            base_url=env.get("ZZAP_BASE", DEFAULT_BASE_URL).rstrip("/"),
            email=env.get("ZZAP_EMAIL") or None,
            password=env.get("ZZAP_PASSWORD") or None,
            timeout_ms=int(env.get("ZZAP_TIMEOUT_MS", "30000")),
            cookie_file=Path(env.get("ZZAP_COOKIE_FILE", ".cache/zzap-session.json")),
            session_ttl_minutes=int(env.get("ZZAP_SESSION_TTL_MINUTES", "180")),
            dx_idle_ms=int(env.get("ZZAP_DX_IDLE_MS", "1800")),
            dx_max_wait_ms=int(env.get("ZZAP_DX_MAX_WAIT_MS", "15000")),
            between_items_delay_ms=int(env.get("ZZAP_BETWEEN_ITEMS_DELAY_MS", "2000")),
            between_items_jitter_ms=int(env.get("ZZAP_BETWEEN_ITEMS_JITTER_MS", "3000")),
            estimate_item_ms=int(env.get("ZZAP_ESTIMATE_ITEM_MS", "12000")),
            row_timeout_s=float(env.get("ZZAP_ROW_TIMEOUT_S", "180")),
            headless=env.get("ZZAP_HEADLESS", "1") not in {"0", "false", "no"},
        )

    @property
    def credentials(self) -> Credentials | None:
        if self.email and self.password:
            return Credentials(email=self.email, password=self.password)
        return None

    def estimate_seconds(self, rows: int) -> float:
        """Rough wall-clock estimate for a job of ``rows`` rows."""
        per_item = self.estimate_item_ms + self.between_items_delay_ms + self.between_items_jitter_ms / 2
        return round(rows * per_item / 1000, 1)
