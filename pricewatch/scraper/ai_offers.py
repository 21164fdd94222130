"""Optional LLM pre-extraction of offer prices."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Iterable

import httpx

from pricewatch.logic.prices import MAX_PRICE, ExtractedOffer, normalize_currency, pick_unit_price, round_price
from pricewatch.utils.retry import retry_async

logger = logging.getLogger(__name__)

AI_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o-mini"
MAX_INPUT_CHARS = 12000
MAX_OFFERS = 3

SYSTEM_PROMPT = " ".join(
    [
        "You extract prices of the first 3 sale offers from noisy Russian e-commerce text.",
        "Return the UNIT price per item only. Ignore minimum order amounts, ranges and totals.",
        'Exclude numbers next to "Заказ от", "Мин. заказ", "Минимальный заказ" or a bare "от".',
        'If a line reads "Заказ от 3 000р. 9 272р.", the price is 9272.',
        "Do not invent offers.",
        'Respond with JSON only: {"offers": [{"price": number, "currency": string, "raw": string}],',
        '"note": string}. "raw" is the snippet (<=120 chars) the price came from; "note" is one',
        "short sentence in Russian about the offers (spread, anomalies).",
    ]
)


@dataclass(slots=True)
class AIOfferResult:
    offers: list[ExtractedOffer] = field(default_factory=list)
    note: str | None = None


def correct_offers(items: Iterable[Any]) -> list[ExtractedOffer]:
    """Re-check model-reported prices against their raw snippets."""
    offers: list[ExtractedOffer] = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        raw = str(item.get("raw") or "")
        currency = normalize_currency(item.get("currency") if isinstance(item.get("currency"), str) else None)
        price = item.get("price")
        price = float(price) if isinstance(price, (int, float)) and not isinstance(price, bool) else None
        picked = pick_unit_price(raw, currency)
        if picked and (price is None or price <= 0 or abs(picked.price - price) > 0.001):
            price = picked.price
            currency = currency or picked.currency
        if price is None or not 0 < price < MAX_PRICE:
            continue
        offers.append(ExtractedOffer(price=round_price(price, currency), currency=currency, raw=raw))
        if len(offers) >= MAX_OFFERS:
            break
    return offers


class OfferAIClient:
    def __init__(
        self,
        api_key: str,
        *,
        model: str | None = None,
        url: str | None = None,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model or DEFAULT_MODEL
        self.url = url or AI_API_URL
        self.session = session or httpx.AsyncClient(timeout=60.0)

    @classmethod
    def from_env(cls) -> "OfferAIClient | None":
        api_key = os.environ.get("AI_API_KEY")
        if not api_key:
            return None
        return cls(api_key, model=os.environ.get("AI_MODEL"), url=os.environ.get("AI_API_URL"))

    async def close(self) -> None:
        await self.session.aclose()

    async def extract_offers(self, article: str, brand: str, snippets: list[str]) -> AIOfferResult:
        text = "\n".join(snippets)[:MAX_INPUT_CHARS]
        payload = {
            "model": self.model,
            "temperature": 0,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": f"Article: {article}\nBrand: {brand}\n--- TEXT ---\n{text}"},
            ],
        }
        post = retry_async(self.session.post, exceptions=(httpx.TransportError,))
        response = await post(self.url, json=payload, headers={"Authorization": f"Bearer {self.api_key}"})
        response.raise_for_status()
        content = response.json()["choices"][0]["message"]["content"]
        try:
            parsed = json.loads(content)
        except (json.JSONDecodeError, TypeError):
            logger.warning("AI reply for %s is not a JSON string", article)
            return AIOfferResult()
        if not isinstance(parsed, dict):
            return AIOfferResult()
        note = str(parsed.get("note") or "").strip()
        return AIOfferResult(offers=correct_offers(parsed.get("offers") or []), note=note or None)
