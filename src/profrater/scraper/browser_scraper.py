"""Playwright-driven scraping collaborator.

Flow for one ``scrape(subject, organization)`` call:

1. open ``{base}/search/professors?q=<subject organization>``;
2. follow the first professor result and confirm a profile URL was reached;
3. scroll and click "Load More Ratings" a bounded number of times;
4. hand the page to :func:`~profrater.scraper.strategies.extract_first`.

The browser is either launched locally (headless Chromium) or attached to a
managed remote browser over CDP when ``browser_ws_endpoint`` is configured.
In both cases it is acquired inside ``async with`` blocks and closed on every
exit path, including cancellation by the worker's pipeline deadline.

Install Playwright and download the Chromium browser binary::

    pip install playwright>=1.48
    playwright install chromium
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence
from urllib.parse import urlencode

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from profrater.config.settings import Settings
from profrater.core.exceptions import NoReviewsFoundError, ScrapeError
from profrater.core.schemas.jobs import ScrapeResult
from profrater.scraper.config import (
    LOAD_MORE_SELECTOR,
    PROFILE_PATH_MARKER,
    RESULT_LINK_SELECTORS,
    SEARCH_PATH,
    SETTLE_DELAY_MS,
    USER_AGENT,
)
from profrater.scraper.strategies import (
    DEFAULT_STRATEGIES,
    ExtractionStrategy,
    extract_first,
)

logger = logging.getLogger(__name__)


def build_search_url(base_url: str, subject_name: str, organization_name: str) -> str:
    """Return the site search URL for ``"<subject> <organization>"``."""
    query = urlencode({"q": f"{subject_name} {organization_name}"})
    return f"{base_url.rstrip('/')}{SEARCH_PATH}?{query}"


class PlaywrightScraper:
    """Scrape a professor's ratings page with a real browser.

    Args:
        base_url: Review site origin.
        ws_endpoint: CDP endpoint of a remote browser, or ``None`` to launch
            Chromium locally.
        headless: Launch the local browser headless.
        timeout: Navigation timeout in seconds.
        max_load_more_clicks: Upper bound on "Load More Ratings" clicks.
        strategies: Extraction strategies, highest priority first.
    """

    def __init__(
        self,
        *,
        base_url: str = "https://www.ratemyprofessors.com",
        ws_endpoint: Optional[str] = None,
        headless: bool = True,
        timeout: int = 45,
        max_load_more_clicks: int = 5,
        strategies: Sequence[ExtractionStrategy] = DEFAULT_STRATEGIES,
    ) -> None:
        self.base_url = base_url
        self.ws_endpoint = ws_endpoint
        self.headless = headless
        self.timeout_ms = timeout * 1000
        self.max_load_more_clicks = max_load_more_clicks
        self.strategies = tuple(strategies)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PlaywrightScraper":
        return cls(
            base_url=settings.review_site_base_url,
            ws_endpoint=settings.browser_ws_endpoint,
            headless=settings.browser_headless,
            timeout=settings.scrape_timeout_seconds,
            max_load_more_clicks=settings.max_load_more_clicks,
        )

    async def scrape(self, subject_name: str, organization_name: str) -> ScrapeResult:
        """Return the reviews and aggregate statistics for one professor.

        Raises:
            NoReviewsFoundError: If the search returned no professor.
            ScrapeError: On navigation or browser failure.
        """
        search_url = build_search_url(self.base_url, subject_name, organization_name)
        logger.info(
            "scraper: starting scrape for %s at %s", subject_name, organization_name
        )

        try:
            async with async_playwright() as playwright:
                async with self._browser(playwright) as browser:
                    context = await browser.new_context(user_agent=USER_AGENT)
                    try:
                        page = await context.new_page()
                        page.set_default_timeout(self.timeout_ms)
                        await self._open_profile(
                            page, search_url, subject_name, organization_name
                        )
                        await self._load_all_ratings(page)
                        result = await extract_first(self.strategies, page)
                    finally:
                        await context.close()
        except PlaywrightError as exc:
            logger.warning("scraper: browser error for %s: %s", search_url, exc)
            raise ScrapeError(
                f"Failed to scrape professor data for {subject_name} at "
                f"{organization_name}: {exc}",
                subject=subject_name,
                organization=organization_name,
            ) from exc

        logger.info(
            "scraper: finished %s at %s with %d reviews",
            subject_name,
            organization_name,
            len(result.reviews),
        )
        return result

    @asynccontextmanager
    async def _browser(self, playwright: Playwright) -> AsyncIterator[Browser]:
        if self.ws_endpoint:
            browser = await playwright.chromium.connect_over_cdp(
                self.ws_endpoint, timeout=self.timeout_ms
            )
        else:
            browser = await playwright.chromium.launch(headless=self.headless)
        try:
            yield browser
        finally:
            await browser.close()

    async def _open_profile(
        self,
        page: Page,
        search_url: str,
        subject_name: str,
        organization_name: str,
    ) -> None:
        await page.goto(search_url, wait_until="domcontentloaded")

        link = None
        for selector in RESULT_LINK_SELECTORS:
            candidate = page.locator(selector).first
            try:
                await candidate.wait_for(state="visible", timeout=self.timeout_ms // 3)
            except PlaywrightError:
                continue
            link = candidate
            break
        if link is None:
            raise NoReviewsFoundError(subject_name, organization_name)

        await link.click()
        await page.wait_for_url(f"**{PROFILE_PATH_MARKER}**")
        if PROFILE_PATH_MARKER not in page.url:
            raise ScrapeError(
                f"Navigation failed: not on a professor page (url: {page.url})",
                subject=subject_name,
                organization=organization_name,
            )
        logger.debug("scraper: reached profile %s", page.url)

    async def _load_all_ratings(self, page: Page) -> None:
        """Scroll and expand the ratings list; best effort and bounded."""
        await page.mouse.wheel(0, 10_000)
        await page.wait_for_timeout(SETTLE_DELAY_MS)

        for clicks in range(self.max_load_more_clicks):
            button = page.locator(LOAD_MORE_SELECTOR).first
            try:
                if not await button.is_visible():
                    break
                await button.click()
            except PlaywrightError as exc:
                logger.debug("scraper: load-more stopped after %d clicks: %s", clicks, exc)
                break
            await page.wait_for_timeout(SETTLE_DELAY_MS)
