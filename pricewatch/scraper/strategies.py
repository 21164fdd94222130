"""Ordered lookup strategies over fetched page markup.

Every strategy takes a parsed page and the site profile and answers with a
``StrategyResult``. A cascade stops at the first strategy that finds
something, so a strategy is added by inserting it into the relevant list.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Sequence
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from pricewatch.logic.prices import PRICE_RE
from pricewatch.scraper import SiteProfile

QUOTED_URL_RE = re.compile(r"[\"']([^\"']+)[\"']")
MAX_TEXT_SNIPPETS = 10


@dataclass(slots=True, frozen=True)
class StrategyResult:
    found: bool
    value: Any = None


NOT_FOUND = StrategyResult(False)


@dataclass(slots=True)
class ParsedPage:
    html: str
    url: str
    soup: BeautifulSoup

    @classmethod
    def parse(cls, html: str | None, url: str | None = None) -> "ParsedPage":
        return cls(html=html or "", url=url or "", soup=BeautifulSoup(html or "", "html.parser"))


Strategy = Callable[[ParsedPage, SiteProfile], StrategyResult]


def run_strategies(strategies: Sequence[Strategy], page: ParsedPage, profile: SiteProfile) -> StrategyResult:
    for strategy in strategies:
        result = strategy(page, profile)
        if result.found:
            return result
    return NOT_FOUND


# Session markers


def logout_by_id(page: ParsedPage, profile: SiteProfile) -> StrategyResult:
    element = page.soup.select_one(profile.logout_selector)
    return StrategyResult(True, element) if element is not None else NOT_FOUND


def logout_by_text(page: ParsedPage, profile: SiteProfile) -> StrategyResult:
    pattern = profile.logout_pattern
    for anchor in page.soup.find_all("a"):
        if pattern.search(anchor.get_text(" ", strip=True)):
            return StrategyResult(True, anchor)
    return NOT_FOUND


LOGGED_IN_STRATEGIES: list[Strategy] = [logout_by_id, logout_by_text]


def is_logged_in(html: str, profile: SiteProfile) -> bool:
    return run_strategies(LOGGED_IN_STRATEGIES, ParsedPage.parse(html), profile).found


def is_captcha(page: ParsedPage, profile: SiteProfile) -> bool:
    marker = profile.captcha_path.rsplit("/", 1)[-1].lower()
    if marker in page.url.lower():
        return True
    for element in page.soup.select("form[action], iframe[src], img[src]"):
        if marker in (element.get("action") or element.get("src") or "").lower():
            return True
    return False


# Statistics sub-page


def stats_link_href(page: ParsedPage, profile: SiteProfile) -> StrategyResult:
    pattern = profile.stats_pattern
    for anchor in page.soup.find_all("a", href=True):
        if pattern.search(anchor["href"]):
            return StrategyResult(True, urljoin(page.url or profile.base_url, anchor["href"]))
    return NOT_FOUND


def stats_link_onclick(page: ParsedPage, profile: SiteProfile) -> StrategyResult:
    pattern = profile.stats_pattern
    for element in page.soup.find_all(onclick=True):
        for candidate in QUOTED_URL_RE.findall(element["onclick"]):
            if pattern.search(candidate):
                return StrategyResult(True, urljoin(page.url or profile.base_url, candidate))
    return NOT_FOUND


def stats_iframe(page: ParsedPage, profile: SiteProfile) -> StrategyResult:
    pattern = profile.stats_pattern
    for frame in page.soup.find_all("iframe", src=True):
        if pattern.search(frame["src"]):
            return StrategyResult(True, urljoin(page.url or profile.base_url, frame["src"]))
    return NOT_FOUND


def stats_raw_html(page: ParsedPage, profile: SiteProfile) -> StrategyResult:
    name = re.escape(profile.stats_path.rsplit("/", 1)[-1])
    match = re.search(r"[\w./:-]*" + name + r"[^\"'\s<>]*", page.html, re.IGNORECASE)
    if not match:
        return NOT_FOUND
    return StrategyResult(True, urljoin(page.url or profile.base_url, match.group(0).replace("&amp;", "&")))


STATS_LINK_STRATEGIES: list[Strategy] = [stats_link_href, stats_link_onclick]
STATS_AFTER_CLICK_STRATEGIES: list[Strategy] = [stats_iframe, stats_link_href, stats_raw_html]


# Offer prices


def offer_grid_rows(page: ParsedPage, profile: SiteProfile) -> StrategyResult:
    snippets: list[str] = []
    for row in page.soup.select(profile.offer_row_selector):
        spans = [span.get_text(" ", strip=True) for span in row.select(profile.price_selector)]
        text = " ".join(span for span in spans if span) or row.get_text(" ", strip=True)
        if text:
            snippets.append(text)
    return StrategyResult(True, snippets) if snippets else NOT_FOUND


def offer_price_spans(page: ParsedPage, profile: SiteProfile) -> StrategyResult:
    snippets = [span.get_text(" ", strip=True) for span in page.soup.select(profile.price_selector)]
    snippets = [text for text in snippets if text]
    return StrategyResult(True, snippets) if snippets else NOT_FOUND


def offer_text_lines(page: ParsedPage, profile: SiteProfile) -> StrategyResult:
    for tag in page.soup(["script", "style", "noscript"]):
        tag.decompose()
    lines = [line.strip() for line in page.soup.get_text("\n").splitlines()]
    snippets = [line for line in lines if line and PRICE_RE.search(line)][:MAX_TEXT_SNIPPETS]
    return StrategyResult(True, snippets) if snippets else NOT_FOUND


OFFER_STRATEGIES: list[Strategy] = [offer_grid_rows, offer_price_spans, offer_text_lines]
