"""Network capture of statistics payloads.

The statistics chart is filled by XHR calls to ``statpartpricehistory.aspx``.
The capture listens to every response of a browser context, keeps bodies of
the qualifying ones, waits until the traffic goes quiet and parses the best
candidate.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable
from urllib.parse import parse_qs, urlparse

from playwright.async_api import BrowserContext, Response
from playwright.async_api import Error as PlaywrightError

from pricewatch.logic.series import SeriesPoint, extract_series
from pricewatch.scraper import SiteProfile

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05
# Extra quiet time while only the throwaway preliminary call may have arrived
FEW_CANDIDATES_SETTLE = 1.0


@dataclass(slots=True)
class CapturedResponse:
    url: str
    content_type: str
    body: str
    seq: int


def is_stats_response(url: str, profile: SiteProfile) -> bool:
    parsed = urlparse(url)
    if profile.stats_path.lower() not in parsed.path.lower():
        return False
    params = {key.lower() for key in parse_qs(parsed.query, keep_blank_values=True)}
    return not any(marker.lower() in params for marker in profile.stats_exclude_params)


def score_candidate(candidate: CapturedResponse) -> int:
    content_type = candidate.content_type.lower()
    score = 10 if ("json" in content_type or "javascript" in content_type) else 0
    if "[" in candidate.body or "{" in candidate.body:
        score += 5
    return score + min(5, len(candidate.body) // 1000)


def rank_candidates(candidates: list[CapturedResponse]) -> list[CapturedResponse]:
    """Best first; equal scores favour the later response."""
    return sorted(candidates, key=lambda c: (score_candidate(c), c.seq), reverse=True)


def select_best(candidates: list[CapturedResponse]) -> CapturedResponse | None:
    ranked = rank_candidates(candidates)
    return ranked[0] if ranked else None


class NetworkCapture:
    def __init__(
        self,
        profile: SiteProfile,
        *,
        idle_ms: int = 1800,
        max_wait_ms: int = 15000,
        few_candidates_settle: float = FEW_CANDIDATES_SETTLE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.profile = profile
        self.idle = idle_ms / 1000
        self.max_wait = max_wait_ms / 1000
        self.few_candidates_settle = few_candidates_settle
        self.candidates: list[CapturedResponse] = []
        self.requests_seen = 0
        self._clock = clock
        self._pending: set[asyncio.Task] = set()
        self._last_seen: float | None = None
        self._seq = 0

    def attach(self, context: BrowserContext) -> None:
        context.on("request", self._on_request)
        context.on("response", self._on_response)

    def detach(self, context: BrowserContext) -> None:
        context.remove_listener("request", self._on_request)
        context.remove_listener("response", self._on_response)

    def _on_request(self, request) -> None:
        if is_stats_response(request.url, self.profile):
            self.requests_seen += 1
            self._last_seen = self._clock()

    def _on_response(self, response: Response) -> None:
        if not is_stats_response(response.url, self.profile):
            return
        self._last_seen = self._clock()
        task = asyncio.ensure_future(self._read(response))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _read(self, response: Response) -> None:
        try:
            body = await response.text()
        except PlaywrightError as exc:
            logger.debug("Could not read %s: %s", response.url, exc)
            return
        self._seq += 1
        self.candidates.append(
            CapturedResponse(
                url=response.url,
                content_type=(response.headers or {}).get("content-type", ""),
                body=body,
                seq=self._seq,
            )
        )
        self._last_seen = self._clock()

    def _quiet_for(self) -> float:
        if self._last_seen is None:
            return 0.0
        return self._clock() - self._last_seen

    async def wait_for_data(self) -> None:
        """Wait for the first candidate, then for a quiet period, bounded by ``max_wait``."""
        deadline = self._clock() + self.max_wait
        while self._clock() < deadline:
            if self.candidates and not self._pending:
                settle = self.idle + (self.few_candidates_settle if len(self.candidates) <= 2 else 0.0)
                if self._quiet_for() >= settle:
                    return
            await asyncio.sleep(POLL_INTERVAL)
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def capture_series(self, fallback_html: str | None = None) -> list[SeriesPoint]:
        """Parse the best captured payload; ``[]`` when nothing usable arrived."""
        await self.wait_for_data()
        for candidate in rank_candidates(self.candidates):
            points = extract_series(candidate.body)
            if points:
                logger.info("Parsed %s points from %s", len(points), candidate.url)
                return points
        if fallback_html:
            return extract_series(fallback_html)
        return []
