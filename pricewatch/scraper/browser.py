"""Headless Chromium lifecycle."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from playwright.async_api import BrowserContext, async_playwright

from pricewatch.scraper.config import ScraperConfig

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
LAUNCH_ARGS = ["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"]


@asynccontextmanager
async def open_context(config: ScraperConfig) -> AsyncIterator[BrowserContext]:
    """Launch a browser for one unit of work and close it afterwards."""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=config.headless, args=LAUNCH_ARGS)
        try:
            context = await browser.new_context(
                user_agent=USER_AGENT,
                locale="ru-RU",
                timezone_id="Europe/Moscow",
                viewport={"width": 1440, "height": 900},
            )
            context.set_default_timeout(config.timeout_ms)
            context.set_default_navigation_timeout(config.timeout_ms)
            yield context
        finally:
            await browser.close()
            logger.debug("Browser closed")
