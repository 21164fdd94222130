"""Browser-driven extraction from the parts pricing site."""

from __future__ import annotations

import pathlib
import re
from dataclasses import dataclass, field

import yaml

SITE_PATH = pathlib.Path(__file__).with_name("site.yml")


@dataclass(slots=True)
class SiteProfile:
    base_url: str
    login_path: str
    stats_path: str
    captcha_path: str
    logout_selector: str
    logout_text: str
    email_selectors: list[str]
    password_selectors: list[str]
    submit_selectors: list[str]
    search_templates: list[str]
    offer_row_selector: str
    price_selector: str
    stats_link_text: str
    stats_exclude_params: list[str] = field(default_factory=list)

    @property
    def stats_pattern(self) -> re.Pattern[str]:
        name = self.stats_path.rsplit("/", 1)[-1]
        return re.compile(re.escape(name), re.IGNORECASE)

    @property
    def logout_pattern(self) -> re.Pattern[str]:
        return re.compile(self.logout_text, re.IGNORECASE)


def load_site_profile(path: pathlib.Path = SITE_PATH, *, base_url: str | None = None) -> SiteProfile:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if base_url:
        data["base_url"] = base_url
    return SiteProfile(**data)
