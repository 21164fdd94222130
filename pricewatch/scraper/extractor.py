"""One-row extraction: offer prices plus the monthly request history."""

from __future__ import annotations

import logging
from datetime import date
from typing import AsyncContextManager, Callable

import httpx
from playwright.async_api import BrowserContext

from pricewatch.jobs.models import InputRow, RowResult
from pricewatch.logic.months import month_label, month_range
from pricewatch.logic.prices import pick_unit_price
from pricewatch.logic.series import SeriesPoint, series_to_stats
from pricewatch.scraper import SiteProfile, load_site_profile
from pricewatch.scraper.ai_offers import OfferAIClient
from pricewatch.scraper.browser import open_context
from pricewatch.scraper.capture import NetworkCapture
from pricewatch.scraper.config import ScraperConfig
from pricewatch.scraper.navigator import PageHandle, PageNavigator
from pricewatch.scraper.session import SessionManager
from pricewatch.scraper.strategies import OFFER_STRATEGIES, run_strategies
from pricewatch.utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

MAX_PRICES = 3

LogFn = Callable[[str], None]
ContextFactory = Callable[[ScraperConfig], AsyncContextManager[BrowserContext]]


def prices_from_snippets(snippets: list[str]) -> list[float]:
    prices: list[float] = []
    for snippet in snippets:
        offer = pick_unit_price(snippet)
        if offer is None or offer.price in prices:
            continue
        prices.append(offer.price)
        if len(prices) >= MAX_PRICES:
            break
    return prices


def points_in_period(points: list[SeriesPoint], period_from: date, period_to: date) -> list[SeriesPoint]:
    wanted = set(month_range(period_from, period_to))
    return [point for point in points if (point.year, point.month) in wanted]


class RowExtractor:
    """Runs one row through a fresh browser context and closes it afterwards."""

    def __init__(
        self,
        config: ScraperConfig,
        profile: SiteProfile | None = None,
        *,
        ai_client: OfferAIClient | None = None,
        context_factory: ContextFactory = open_context,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.config = config
        self.profile = profile or load_site_profile(base_url=config.base_url)
        self.sessions = SessionManager(self.profile, config)
        self.ai_client = ai_client
        self.context_factory = context_factory
        self.rate_limiter = rate_limiter or RateLimiter(
            delay=config.between_items_delay_ms / 1000,
            jitter=config.between_items_jitter_ms / 1000,
        )

    async def extract(
        self,
        row: InputRow,
        *,
        period_from: date,
        period_to: date,
        include_stats: bool = True,
        log: LogFn | None = None,
    ) -> RowResult:
        emit = log or (lambda message: logger.info(message))
        async with self.context_factory(self.config) as context:
            await self.sessions.restore(context)
            login_page = await context.new_page()
            logged_in = await self.sessions.ensure_logged_in(login_page, self.config.credentials)
            await login_page.close()
            emit(f"{row.article} / {row.brand}: {'сессия активна' if logged_in else 'без авторизации'}")

            capture = NetworkCapture(
                self.profile,
                idle_ms=self.config.dx_idle_ms,
                max_wait_ms=self.config.dx_max_wait_ms,
            )
            capture.attach(context)
            try:
                navigator = PageNavigator(context, self.profile, self.config, rate_limiter=self.rate_limiter)
                offers_page = await navigator.open_offers(row.article, row.brand)
                if not offers_page.ok:
                    emit(f"{row.article} / {row.brand}: страница предложений недоступна")
                    return RowResult(article=row.article, brand=row.brand, error="offers page unavailable")

                prices, note = await self._prices(row, offers_page)
                emit(f"{row.article} / {row.brand}: цены {prices or '—'}")

                stats: dict[str, float] = {}
                if include_stats:
                    stats_page = await navigator.open_statistics(offers_page)
                    if stats_page.ok or capture.candidates or capture.requests_seen:
                        points = await capture.capture_series(stats_page.html)
                        stats = series_to_stats(points_in_period(points, period_from, period_to), month_label)
                    emit(f"{row.article} / {row.brand}: статистика за {len(stats)} мес.")
            finally:
                capture.detach(context)
            return RowResult(article=row.article, brand=row.brand, prices=prices, stats=stats, ai=note)

    async def _prices(self, row: InputRow, handle: PageHandle) -> tuple[list[float], str | None]:
        result = run_strategies(OFFER_STRATEGIES, handle.parsed(), self.profile)
        snippets: list[str] = result.value or []
        if not snippets:
            return [], None
        if self.ai_client is not None:
            try:
                ai = await self.ai_client.extract_offers(row.article, row.brand, snippets)
            except (httpx.HTTPError, KeyError, IndexError, ValueError) as exc:
                logger.warning("AI extraction failed for %s: %s", row.article, exc)
            else:
                prices: list[float] = []
                for offer in ai.offers:
                    if offer.price not in prices:
                        prices.append(offer.price)
                if prices:
                    return prices[:MAX_PRICES], ai.note
                return prices_from_snippets(snippets), ai.note
        return prices_from_snippets(snippets), None
