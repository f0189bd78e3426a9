"""Prioritised extraction strategies for a professor profile page.

Every strategy implements the same capability: given the loaded page,
return a :class:`~profrater.core.schemas.jobs.ScrapeResult` with at least one
review, or ``None`` when it found nothing it can vouch for.
:func:`extract_first` tries the strategies in order and keeps the first
success, so adding or removing a strategy never touches the browser flow.

Both shipped strategies work on the rendered HTML (``page.content()``) and
expose a synchronous ``parse(html)`` that needs no browser.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Optional, Protocol, Sequence

from bs4 import BeautifulSoup, Tag

from profrater.core.schemas.jobs import (
    NOT_SPECIFIED,
    ReviewRecord,
    ScrapeResult,
    SubjectAggregate,
    coerce_float,
)
from profrater.scraper.config import (
    CARD_COMMENT_SELECTORS,
    CARD_COURSE_SELECTORS,
    CARD_DATE_SELECTORS,
    CARD_DIFFICULTY_SELECTORS,
    CARD_HELP_TOTAL_SELECTOR,
    CARD_RATING_SELECTORS,
    CARD_TAG_SELECTOR,
    CARD_THUMBS_DOWN_SELECTORS,
    CARD_THUMBS_UP_SELECTORS,
    DEPARTMENT_SELECTORS,
    FEEDBACK_ITEM_SELECTOR,
    OVERALL_RATING_SELECTORS,
    PROFILE_NAME_SELECTORS,
    RELAY_STORE_GLOBAL,
    RELAY_TAG_SEPARATOR,
    REVIEW_CARD_SELECTORS,
    TOTAL_RATINGS_SELECTORS,
)

logger = logging.getLogger(__name__)


class PageLike(Protocol):
    """The slice of ``playwright.async_api.Page`` the strategies rely on."""

    async def content(self) -> str:
        ...


class ExtractionStrategy(Protocol):
    name: str

    async def try_extract(self, page: PageLike) -> Optional[ScrapeResult]:
        """Return the extracted data, or ``None`` if this strategy found none."""
        ...


class _HtmlStrategy:
    """Base for strategies that only need the rendered HTML."""

    name = "html"

    async def try_extract(self, page: PageLike) -> Optional[ScrapeResult]:
        return self.parse(await page.content())

    def parse(self, html: str) -> Optional[ScrapeResult]:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Strategy 1: embedded GraphQL cache
# ---------------------------------------------------------------------------


def _load_relay_store(html: str) -> Optional[dict[str, Any]]:
    """Decode the JSON object assigned to ``window.__RELAY_STORE__``."""
    marker = html.find(RELAY_STORE_GLOBAL)
    if marker < 0:
        return None
    start = html.find("{", html.find("=", marker))
    if start < 0:
        return None
    try:
        store, _ = json.JSONDecoder().raw_decode(html, start)
    except ValueError:
        return None
    return store if isinstance(store, dict) else None


class EmbeddedDataStrategy(_HtmlStrategy):
    """Read ratings from the normalised data cache the site embeds in the page.

    This is the most precise source: numbers are typed and every loaded
    rating is present, even ones not yet scrolled into view.
    """

    name = "embedded-data"

    def parse(self, html: str) -> Optional[ScrapeResult]:
        store = _load_relay_store(html)
        if not store:
            return None

        records = [r for r in store.values() if isinstance(r, dict)]
        profiles = [r for r in records if r.get("__typename") == "Teacher"]
        ratings = [r for r in records if r.get("__typename") == "Rating"]
        if not ratings:
            return None

        reviews = [self._review(r) for r in ratings]
        aggregate = SubjectAggregate()
        if profiles:
            profile = max(profiles, key=lambda t: coerce_float(t.get("numRatings")))
            aggregate = self._aggregate(profile)
        return ScrapeResult(reviews=reviews, subject_aggregate=aggregate)

    @staticmethod
    def _aggregate(profile: dict[str, Any]) -> SubjectAggregate:
        name = " ".join(
            part for part in (profile.get("firstName"), profile.get("lastName")) if part
        )
        # The site reports -1 when too few students answered.
        would_take_again = max(coerce_float(profile.get("wouldTakeAgainPercent")), 0.0)
        return SubjectAggregate(
            overall_rating=profile.get("avgRating"),
            total_ratings=profile.get("numRatings"),
            would_take_again_percent=round(would_take_again, 1),
            difficulty_rating=profile.get("avgDifficulty"),
            department=profile.get("department"),
            professor_name=name or None,
        )

    @staticmethod
    def _review(rating: dict[str, Any]) -> ReviewRecord:
        quality = rating.get("qualityRating")
        if quality is None:
            parts = [
                coerce_float(rating.get(k))
                for k in ("clarityRating", "helpfulRating")
                if rating.get(k) is not None
            ]
            quality = sum(parts) / len(parts) if parts else None
        raw_tags = rating.get("ratingTags") or ""
        return ReviewRecord(
            rating=quality,
            difficulty=rating.get("difficultyRating"),
            course=rating.get("class"),
            date=str(rating.get("date") or NOT_SPECIFIED),
            comment=str(rating.get("comment") or ""),
            tags=raw_tags.split(RELAY_TAG_SEPARATOR) if isinstance(raw_tags, str) else raw_tags,
            thumbs_up=rating.get("thumbsUpTotal"),
            thumbs_down=rating.get("thumbsDownTotal"),
        )


# ---------------------------------------------------------------------------
# Strategy 2: rendered DOM
# ---------------------------------------------------------------------------


def _text(node: Tag | None) -> str:
    return node.get_text(" ", strip=True) if node is not None else ""


def _first_text(root: Tag, selectors: Iterable[str]) -> str:
    for selector in selectors:
        value = _text(root.select_one(selector))
        if value:
            return value
    return ""


def _first_number(root: Tag, selectors: Iterable[str]) -> float:
    for selector in selectors:
        value = coerce_float(_text(root.select_one(selector)))
        if value > 0:
            return value
    return 0.0


class DomSelectorStrategy(_HtmlStrategy):
    """Scrape the rendered review cards with ordered CSS selector fallbacks."""

    name = "dom-selectors"

    def parse(self, html: str) -> Optional[ScrapeResult]:
        soup = BeautifulSoup(html, "html.parser")

        cards: list[Tag] = []
        for selector in REVIEW_CARD_SELECTORS:
            cards = soup.select(selector)
            if cards:
                break

        reviews = [review for review in (self._review(card) for card in cards) if review]
        if not reviews:
            return None
        return ScrapeResult(reviews=reviews, subject_aggregate=self._aggregate(soup))

    @staticmethod
    def _aggregate(soup: BeautifulSoup) -> SubjectAggregate:
        would_take_again = 0.0
        difficulty = 0.0
        for item in soup.select(FEEDBACK_ITEM_SELECTOR):
            text = _text(item)
            lowered = text.lower()
            if "would take again" in lowered and not would_take_again:
                would_take_again = coerce_float(text)
            elif "difficulty" in lowered and not difficulty:
                difficulty = coerce_float(text)

        return SubjectAggregate(
            overall_rating=_first_number(soup, OVERALL_RATING_SELECTORS),
            total_ratings=_first_text(soup, TOTAL_RATINGS_SELECTORS),
            would_take_again_percent=would_take_again,
            difficulty_rating=difficulty,
            department=_first_text(soup, DEPARTMENT_SELECTORS) or None,
            professor_name=_first_text(soup, PROFILE_NAME_SELECTORS) or None,
        )

    @staticmethod
    def _review(card: Tag) -> Optional[ReviewRecord]:
        comment = _first_text(card, CARD_COMMENT_SELECTORS)
        rating = _first_number(card, CARD_RATING_SELECTORS)
        if not comment and not rating:
            return None

        tags: list[str] = []
        for tag in card.select(CARD_TAG_SELECTOR):
            label = _text(tag)
            if label and label not in tags:
                tags.append(label)

        votes = [_text(node) for node in card.select(CARD_HELP_TOTAL_SELECTOR)]
        if len(votes) >= 2:
            thumbs_up, thumbs_down = votes[0], votes[1]
        else:
            thumbs_up = _first_text(card, CARD_THUMBS_UP_SELECTORS)
            thumbs_down = _first_text(card, CARD_THUMBS_DOWN_SELECTORS)

        return ReviewRecord(
            rating=rating,
            difficulty=_first_number(card, CARD_DIFFICULTY_SELECTORS),
            course=_first_text(card, CARD_COURSE_SELECTORS) or None,
            date=_first_text(card, CARD_DATE_SELECTORS) or NOT_SPECIFIED,
            comment=comment,
            tags=tags,
            thumbs_up=thumbs_up,
            thumbs_down=thumbs_down,
        )


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


DEFAULT_STRATEGIES: tuple[ExtractionStrategy, ...] = (
    EmbeddedDataStrategy(),
    DomSelectorStrategy(),
)


async def extract_first(
    strategies: Sequence[ExtractionStrategy],
    page: PageLike,
) -> ScrapeResult:
    """Run ``strategies`` in order and return the first non-empty result.

    A strategy that raises is logged and skipped.  When no strategy
    succeeds an empty :class:`ScrapeResult` is returned; deciding what an
    empty scrape means is up to the caller.
    """
    for strategy in strategies:
        try:
            result = await strategy.try_extract(page)
        except Exception:  # noqa: BLE001
            logger.warning("scraper: strategy %s failed", strategy.name, exc_info=True)
            continue
        if result is not None and result.reviews:
            logger.info(
                "scraper: strategy %s extracted %d reviews",
                strategy.name,
                len(result.reviews),
            )
            return result
        logger.debug("scraper: strategy %s found nothing", strategy.name)
    return ScrapeResult()
