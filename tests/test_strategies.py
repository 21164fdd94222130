from conftest import load_fixture
from pricewatch.scraper.strategies import (
    OFFER_STRATEGIES,
    STATS_AFTER_CLICK_STRATEGIES,
    STATS_LINK_STRATEGIES,
    ParsedPage,
    is_captcha,
    is_logged_in,
    run_strategies,
)

SEARCH_URL = "https://www.zzap.ru/public/search.aspx#rawdata=OC90"


def page(name, url=SEARCH_URL):
    return ParsedPage.parse(load_fixture(f"html/{name}"), url)


def test_logout_marker_means_logged_in(profile):
    assert is_logged_in(load_fixture("html/logged_in.html"), profile)
    assert not is_logged_in(load_fixture("html/offers.html"), profile)
    assert is_logged_in('<a href="/x">Выйти</a>', profile)


def test_offer_rows_prefer_price_spans(profile):
    result = run_strategies(OFFER_STRATEGIES, page("offers.html"), profile)
    assert result.found
    assert result.value == ["Заказ от 3 000р. 9 272р.", "5 100 руб."]


def test_offer_text_fallback_skips_scripts(profile):
    result = run_strategies(OFFER_STRATEGIES, page("stats_onclick.html"), profile)
    assert result.value == ["5 400 ₽", "Цена: 1 250 ₽ / Заказ от 10 000 ₽"]


def test_no_offers(profile):
    assert not run_strategies(OFFER_STRATEGIES, ParsedPage.parse("<p>Ничего не найдено</p>"), profile).found


def test_stats_link_from_href(profile):
    result = run_strategies(STATS_LINK_STRATEGIES, page("offers.html"), profile)
    assert result.value == "https://www.zzap.ru/user/statpartpricehistory.aspx?partnumber=OC90&class_man=KNECHT"


def test_stats_link_from_onclick(profile):
    result = run_strategies(STATS_LINK_STRATEGIES, page("stats_onclick.html"), profile)
    assert result.value == "https://www.zzap.ru/user/statpartpricehistory.aspx?partnumber=W71252"


def test_stats_after_click_prefers_iframe(profile):
    result = run_strategies(STATS_AFTER_CLICK_STRATEGIES, page("stats_frame.html"), profile)
    assert result.value == "https://www.zzap.ru/user/statpartpricehistory.aspx?partnumber=GDB1330&popup=1"


def test_stats_url_from_raw_markup(profile):
    html = "<script>loadChart('/user/StatPartPriceHistory.aspx?id=5');</script>"
    result = run_strategies(STATS_AFTER_CLICK_STRATEGIES, ParsedPage.parse(html, SEARCH_URL), profile)
    assert result.value == "https://www.zzap.ru/user/StatPartPriceHistory.aspx?id=5"


def test_captcha_detection(profile):
    assert is_captcha(page("captcha.html"), profile)
    assert is_captcha(ParsedPage.parse("<html></html>", "https://www.zzap.ru/sys/captcha.aspx"), profile)
    assert not is_captcha(page("offers.html"), profile)
