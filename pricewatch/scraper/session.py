"""Authenticated browser session reuse."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Sequence

from playwright.async_api import BrowserContext, Page
from playwright.async_api import Error as PlaywrightError

from pricewatch.scraper import SiteProfile
from pricewatch.scraper.config import Credentials, ScraperConfig
from pricewatch.scraper.strategies import is_logged_in

logger = logging.getLogger(__name__)


class CookieJar:
    """Cookie cache file with a time-to-live.

    The file holds ``{"cookies": [...], "saved_at": <epoch seconds>}``.
    """

    def __init__(self, path: Path, *, ttl_minutes: int = 180, clock: Callable[[], float] = time.time) -> None:
        self.path = path
        self.ttl_seconds = ttl_minutes * 60
        self._clock = clock

    def load(self) -> list[dict[str, Any]] | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Invalid session cache; discarding")
            self.clear()
            return None
        saved_at = float(data.get("saved_at") or 0)
        if self._clock() - saved_at > self.ttl_seconds:
            logger.info("Session cache expired")
            return None
        cookies = data.get("cookies")
        return cookies if isinstance(cookies, list) and cookies else None

    def save(self, cookies: list[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"cookies": cookies, "saved_at": self._clock()}
        self.path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


async def _fill_first(page: Page, selectors: Sequence[str], value: str) -> bool:
    for selector in selectors:
        locator = page.locator(selector).first
        if await locator.count():
            await locator.fill(value)
            return True
    return False


async def _click_first(page: Page, selectors: Sequence[str]) -> bool:
    for selector in selectors:
        locator = page.locator(selector).first
        if await locator.count():
            await locator.click()
            return True
    return False


class SessionManager:
    def __init__(self, profile: SiteProfile, config: ScraperConfig, *, jar: CookieJar | None = None) -> None:
        self.profile = profile
        self.config = config
        self.jar = jar or CookieJar(config.cookie_file, ttl_minutes=config.session_ttl_minutes)

    async def restore(self, context: BrowserContext) -> bool:
        cookies = self.jar.load()
        if not cookies:
            return False
        await context.add_cookies(cookies)
        return True

    async def is_logged_in(self, page: Page) -> bool:
        return is_logged_in(await page.content(), self.profile)

    async def ensure_logged_in(self, page: Page, credentials: Credentials | None) -> bool:
        """Make sure ``page``'s context is authenticated.

        Returns ``False`` instead of raising: an anonymous session still sees
        offer prices, only the statistics sub-page needs a login.
        """
        try:
            await page.goto(self.profile.base_url, wait_until="domcontentloaded")
            if await self.is_logged_in(page):
                return True
            self.jar.clear()
            if credentials is None:
                logger.info("No credentials configured; continuing anonymously")
                return False
            return await self._login(page, credentials)
        except PlaywrightError as exc:
            logger.warning("Login check failed: %s", exc)
            return False

    async def _login(self, page: Page, credentials: Credentials) -> bool:
        await page.goto(self.profile.base_url + self.profile.login_path, wait_until="domcontentloaded")
        if not await _fill_first(page, self.profile.email_selectors, credentials.email):
            logger.warning("Login form not found")
            return False
        if not await _fill_first(page, self.profile.password_selectors, credentials.password):
            logger.warning("Password field not found")
            return False
        await page.keyboard.press("Enter")
        await page.wait_for_load_state("domcontentloaded")
        if not await self.is_logged_in(page) and await _click_first(page, self.profile.submit_selectors):
            await page.wait_for_load_state("domcontentloaded")
        if not await self.is_logged_in(page):
            logger.warning("Login as %s did not succeed", credentials.email)
            return False
        self.jar.save(await page.context.cookies())
        logger.info("Logged in as %s", credentials.email)
        return True
