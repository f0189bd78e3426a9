"""Tests for PlaywrightScraper that do not need a real browser."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from playwright.async_api import Error as PlaywrightError

from profrater.config.settings import Settings
from profrater.core.exceptions import ScrapeError
from profrater.scraper.browser_scraper import PlaywrightScraper, build_search_url
from profrater.scraper.strategies import DEFAULT_STRATEGIES


class _FailingPlaywright:
    async def __aenter__(self) -> None:
        raise PlaywrightError("Executable doesn't exist")

    async def __aexit__(self, *exc_info: object) -> None:
        return None


def test_build_search_url_encodes_query() -> None:
    url = build_search_url("https://reviews.test/", "Jane Doe", "Test University")
    assert url == "https://reviews.test/search/professors?q=Jane+Doe+Test+University"


def test_from_settings_copies_browser_options() -> None:
    settings = Settings(
        browser_ws_endpoint="wss://browser.test/cdp",
        scrape_timeout_seconds=30,
        max_load_more_clicks=2,
        review_site_base_url="https://reviews.test",
    )

    scraper = PlaywrightScraper.from_settings(settings)

    assert scraper.ws_endpoint == "wss://browser.test/cdp"
    assert scraper.timeout_ms == 30_000
    assert scraper.max_load_more_clicks == 2
    assert scraper.strategies == DEFAULT_STRATEGIES


async def test_browser_failure_becomes_scrape_error() -> None:
    scraper = PlaywrightScraper(base_url="https://reviews.test")

    with patch(
        "profrater.scraper.browser_scraper.async_playwright", return_value=_FailingPlaywright()
    ):
        with pytest.raises(ScrapeError) as exc_info:
            await scraper.scrape("Jane Doe", "Test University")

    assert "Failed to scrape professor data for Jane Doe at Test University" in str(exc_info.value)
    assert exc_info.value.subject == "Jane Doe"
