"""Unit price disambiguation for offer snippets."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

PHRASE_WINDOW = 20
MAX_PRICE = 10_000_000

CURRENCY_CODES = {
    "₽": "RUB",
    "р": "RUB",
    "р.": "RUB",
    "руб": "RUB",
    "rub": "RUB",
    "byn": "BYN",
    "kzt": "KZT",
    "usd": "USD",
    "$": "USD",
    "eur": "EUR",
    "€": "EUR",
}

PRICE_RE = re.compile(
    r"(?<![\d.,])(?P<int>\d{1,3}(?:[ .]\d{3})+|\d+)(?:[.,](?P<frac>\d{1,2}))?(?!\d)\s*"
    r"(?P<cur>₽|руб(?:\.|лей|ля|ль)?|р\.|р(?![а-яёa-z])|RUB|BYN|KZT|USD|EUR|\$|€)",
    re.IGNORECASE,
)
MIN_ORDER_RE = re.compile(
    r"мин(?:имал\w*)?\.?\s*заказ\w*(?:\s+от)?|заказ\w*(?:\s+от)?|(?<![а-яё])от(?![а-яё])",
    re.IGNORECASE,
)
PRICE_WORD_RE = re.compile(r"цена", re.IGNORECASE)


@dataclass(slots=True)
class ExtractedOffer:
    price: float
    currency: str | None
    raw: str


@dataclass(slots=True)
class _Candidate:
    value: float
    currency: str
    start: int
    end: int
    score: int = 1


def normalize_currency(value: str | None) -> str | None:
    if not value:
        return None
    token = value.strip().lower()
    if token.startswith("руб"):
        return "RUB"
    return CURRENCY_CODES.get(token, value.strip().upper())


def is_native_currency(currency: str | None) -> bool:
    return normalize_currency(currency) == "RUB"


def round_price(value: float, currency: str | None) -> float:
    if is_native_currency(currency):
        return int(math.floor(value + 0.5))
    return round(value, 2)


def _candidates(text: str) -> list[_Candidate]:
    found: list[_Candidate] = []
    for match in PRICE_RE.finditer(text):
        digits = re.sub(r"[ .]", "", match.group("int"))
        number = float(f"{digits}.{match.group('frac')}" if match.group("frac") else digits)
        if number <= 0 or number >= MAX_PRICE:
            continue
        found.append(
            _Candidate(
                value=number,
                currency=normalize_currency(match.group("cur")),
                start=match.start(),
                end=match.end(),
            )
        )
    return found


def _nearest(candidates: list[_Candidate], start: int, end: int) -> _Candidate | None:
    following = [c for c in candidates if c.start >= end and c.start - end <= PHRASE_WINDOW]
    if following:
        return min(following, key=lambda c: c.start - end)
    preceding = [c for c in candidates if c.end <= start and start - c.end <= PHRASE_WINDOW]
    if preceding:
        return min(preceding, key=lambda c: start - c.end)
    return None


def _targets(candidates: list[_Candidate], pattern: re.Pattern, text: str) -> list[_Candidate]:
    """Candidates introduced by at least one ``pattern`` phrase, each listed once."""
    targets: list[_Candidate] = []
    for match in pattern.finditer(text):
        target = _nearest(candidates, match.start(), match.end())
        if target is not None and not any(target is seen for seen in targets):
            targets.append(target)
    return targets


def pick_unit_price(raw: str | None, declared_currency: str | None = None) -> ExtractedOffer | None:
    """Pick the per-unit price from an offer snippet.

    Every currency-anchored number is a candidate with score 1. A minimum-order
    phrase costs the number it introduces 2 points, the word "цена" earns it 2,
    each at most once per number.
    The highest score wins, and on a tie the later number wins, because
    listings put the minimum order before the actual price.
    """
    if not raw:
        return None
    text = raw.replace("\u00a0", " ").replace("\u202f", " ")
    candidates = _candidates(text)
    if not candidates:
        return None
    for candidate in _targets(candidates, MIN_ORDER_RE, text):
        candidate.score -= 2
    for candidate in _targets(candidates, PRICE_WORD_RE, text):
        candidate.score += 2
    best = max(candidates, key=lambda c: (c.score, c.start))
    currency = best.currency or normalize_currency(declared_currency)
    return ExtractedOffer(price=round_price(best.value, currency), currency=currency, raw=raw)
