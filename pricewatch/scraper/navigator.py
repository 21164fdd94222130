"""Navigation to offer and statistics pages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote, urlparse

from playwright.async_api import BrowserContext, Page
from playwright.async_api import Error as PlaywrightError

from pricewatch.scraper import SiteProfile
from pricewatch.scraper.config import ScraperConfig
from pricewatch.scraper.strategies import (
    STATS_AFTER_CLICK_STRATEGIES,
    STATS_LINK_STRATEGIES,
    ParsedPage,
    StrategyResult,
    is_captcha,
    run_strategies,
)
from pricewatch.utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PageHandle:
    page: Page | None
    url: str | None = None
    html: str | None = None

    @property
    def ok(self) -> bool:
        return self.page is not None

    def parsed(self) -> ParsedPage:
        return ParsedPage.parse(self.html, self.url)


class PageNavigator:
    def __init__(
        self,
        context: BrowserContext,
        profile: SiteProfile,
        config: ScraperConfig,
        *,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.context = context
        self.profile = profile
        self.config = config
        self.rate_limiter = rate_limiter or RateLimiter(
            delay=config.between_items_delay_ms / 1000,
            jitter=config.between_items_jitter_ms / 1000,
        )

    def search_urls(self, article: str, brand: str | None = None) -> list[str]:
        values = {"article": quote(article, safe=""), "brand": quote(brand or "", safe="")}
        return [self.profile.base_url + template.format(**values) for template in self.profile.search_templates]

    async def _goto(self, page: Page, url: str) -> bool:
        await self.rate_limiter.wait_for_host(urlparse(url).netloc)
        try:
            response = await page.goto(url, wait_until="domcontentloaded", timeout=self.config.timeout_ms)
        except PlaywrightError as exc:
            logger.info("Navigation to %s failed: %s", url, exc)
            return False
        if response is not None and response.status >= 400:
            logger.info("Navigation to %s returned %s", url, response.status)
            return False
        return True

    async def _settle(self, page: Page, selector: str) -> None:
        try:
            await page.wait_for_selector(selector, timeout=self.config.timeout_ms // 3)
        except PlaywrightError:
            logger.debug("Selector %s did not appear on %s", selector, page.url)

    async def open_offers(self, article: str, brand: str | None = None) -> PageHandle:
        """Open the first search URL that loads; an empty handle when none does."""
        page = await self.context.new_page()
        for url in self.search_urls(article, brand):
            if not await self._goto(page, url):
                continue
            await self._settle(page, self.profile.offer_row_selector)
            handle = PageHandle(page=page, url=page.url, html=await page.content())
            if is_captcha(handle.parsed(), self.profile):
                logger.warning("Captcha shown for %s", article)
                break
            return handle
        await page.close()
        return PageHandle(page=None)

    async def open_statistics(self, handle: PageHandle) -> PageHandle:
        """Open the statistics sub-page reachable from an offers page."""
        if not handle.ok:
            return PageHandle(page=None)
        result = run_strategies(STATS_LINK_STRATEGIES, handle.parsed(), self.profile)
        if not result.found:
            result = await self._click_stats_control(handle)
        if not result.found:
            logger.info("No statistics link on %s", handle.url)
            return PageHandle(page=None)
        return await self._open_secondary(result.value)

    async def _click_stats_control(self, handle: PageHandle) -> StrategyResult:
        try:
            control = handle.page.get_by_text(self.profile.stats_link_text, exact=False).first
            if await control.count():
                await control.click()
                await handle.page.wait_for_load_state("domcontentloaded")
                handle.html = await handle.page.content()
                handle.url = handle.page.url
        except PlaywrightError as exc:
            logger.info("Statistics control click failed: %s", exc)
        return run_strategies(STATS_AFTER_CLICK_STRATEGIES, handle.parsed(), self.profile)

    async def _open_secondary(self, url: str) -> PageHandle:
        # new_page() keeps the same context, so session cookies travel with it
        page = await self.context.new_page()
        if not await self._goto(page, url):
            await page.close()
            return PageHandle(page=None)
        handle = PageHandle(page=page, url=page.url, html=await page.content())
        if is_captcha(handle.parsed(), self.profile):
            logger.warning("Captcha shown on statistics page %s", url)
            await page.close()
            return PageHandle(page=None)
        return handle
