"""Tests for the profile-page extraction strategies.

Strategies are fed static HTML; no browser is launched.
"""

from __future__ import annotations

import json
from typing import Optional

import pytest

from profrater.core.schemas.jobs import NOT_SPECIFIED, ReviewRecord, ScrapeResult
from profrater.scraper.strategies import (
    DomSelectorStrategy,
    EmbeddedDataStrategy,
    extract_first,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

_RELAY_STORE = {
    "client:root": {"__id": "client:root"},
    "VGVhY2hlci0x": {
        "__typename": "Teacher",
        "firstName": "Jane",
        "lastName": "Doe",
        "avgRating": 4.2,
        "numRatings": 42,
        "wouldTakeAgainPercent": 87.456,
        "avgDifficulty": 3.1,
        "department": "Computer Science",
    },
    "VGVhY2hlci0y": {
        "__typename": "Teacher",
        "firstName": "Someone",
        "lastName": "Else",
        "avgRating": 2.0,
        "numRatings": 3,
    },
    "UmF0aW5nLTE=": {
        "__typename": "Rating",
        "qualityRating": 5,
        "difficultyRating": 2,
        "class": "CS101",
        "date": "2024-01-15 12:00:00 +0000 UTC",
        "comment": "Clear lectures and fair exams.",
        "ratingTags": "Tough grader--Caring",
        "thumbsUpTotal": 3,
        "thumbsDownTotal": 1,
    },
    "UmF0aW5nLTI=": {
        "__typename": "Rating",
        "clarityRating": 4,
        "helpfulRating": 2,
        "difficultyRating": 4,
        "class": None,
        "date": "2023-11-02 12:00:00 +0000 UTC",
        "comment": "Hard but worth it.",
        "ratingTags": "",
    },
}


def _relay_html(store: dict) -> str:
    return (
        "<html><head><script>"
        f"window.__RELAY_STORE__ = {json.dumps(store)};"
        "window.__APP_VERSION__ = '1';"
        "</script></head><body></body></html>"
    )


_CARD = """
<div class="Rating__StyledRating-sc-1rhvpxz-1">
  <div class="CardNumRating__CardNumRatingNumber-sc-17t4b9u-2">{rating}</div>
  <div class="CardDifficulty__Value">{difficulty}</div>
  <div class="RatingHeader__StyledClass-sc-1dlkqw1-3">{course}</div>
  <div class="TimeStamp__StyledTimeStamp-sc-9q2r30-0">{date}</div>
  <div class="Comments__StyledComments-dzzyvm-0">{comment}</div>
  <div class="RatingTags__StyledTags-sc-1boeqx2-0">
    <span class="Tag-bs9vf4-0">Tough grader</span>
    <span class="Tag-bs9vf4-0">Tough grader</span>
    <span class="Tag-bs9vf4-0">Lots of homework</span>
  </div>
  <span class="Thumbs__HelpTotalNumber-sc-19shlav-2">{up}</span>
  <span class="Thumbs__HelpTotalNumber-sc-19shlav-2">{down}</span>
</div>
"""

_DOM_HTML = (
    "<html><body>"
    '<h1 class="NameTitle__Name-dowf0z-0">Jane Doe</h1>'
    '<div class="RatingValue__Numerator-qw8sqy-2">4.2</div>'
    '<div class="RatingValue__NumRatings-qw8sqy-0">Overall Quality Based on 42 ratings</div>'
    '<div class="FeedbackItem__StyledFeedbackItem">87% Would take again</div>'
    '<div class="FeedbackItem__StyledFeedbackItem">3.1 Level of Difficulty</div>'
    '<a class="TeacherDepartment__StyledDepartmentLink">Computer Science department</a>'
    + _CARD.format(
        rating="5.0", difficulty="2.0", course="CS101", date="Jan 15th, 2024",
        comment="Clear lectures and fair exams.", up="4", down="1",
    )
    + _CARD.format(
        rating="3.0", difficulty="4.0", course="", date="",
        comment="Hard but worth it.", up="0", down="2",
    )
    + "</body></html>"
)


class _Page:
    def __init__(self, html: str) -> None:
        self.html = html

    async def content(self) -> str:
        return self.html


# ---------------------------------------------------------------------------
# EmbeddedDataStrategy
# ---------------------------------------------------------------------------


class TestEmbeddedDataStrategy:
    def test_reads_ratings_and_most_rated_profile(self) -> None:
        result = EmbeddedDataStrategy().parse(_relay_html(_RELAY_STORE))

        assert result is not None
        aggregate = result.subject_aggregate
        assert aggregate.professor_name == "Jane Doe"
        assert aggregate.overall_rating == 4.2
        assert aggregate.total_ratings == 42
        assert aggregate.would_take_again_percent == 87.5
        assert aggregate.difficulty_rating == 3.1
        assert aggregate.department == "Computer Science"
        assert len(result.reviews) == 2

    def test_review_fields(self) -> None:
        result = EmbeddedDataStrategy().parse(_relay_html(_RELAY_STORE))
        assert result is not None
        first, second = result.reviews

        assert first.rating == 5
        assert first.course == "CS101"
        assert first.tags == ["Tough grader", "Caring"]
        assert first.thumbs_up == 3 and first.thumbs_down == 1

        # No qualityRating: mean of clarity and helpfulness.
        assert second.rating == 3.0
        assert second.course == NOT_SPECIFIED
        assert second.tags == []
        assert second.thumbs_up == 0

    def test_negative_would_take_again_is_clamped(self) -> None:
        store = dict(_RELAY_STORE)
        store["VGVhY2hlci0x"] = {**_RELAY_STORE["VGVhY2hlci0x"], "wouldTakeAgainPercent": -1}

        result = EmbeddedDataStrategy().parse(_relay_html(store))

        assert result is not None
        assert result.subject_aggregate.would_take_again_percent == 0

    @pytest.mark.parametrize(
        "html",
        [
            "<html><body>no data here</body></html>",
            "<script>window.__RELAY_STORE__ = {broken</script>",
            _relay_html({"x": {"__typename": "Teacher", "numRatings": 0}}),
        ],
    )
    def test_returns_none_without_ratings(self, html: str) -> None:
        assert EmbeddedDataStrategy().parse(html) is None


# ---------------------------------------------------------------------------
# DomSelectorStrategy
# ---------------------------------------------------------------------------


class TestDomSelectorStrategy:
    def test_parses_header_and_cards(self) -> None:
        result = DomSelectorStrategy().parse(_DOM_HTML)

        assert result is not None
        aggregate = result.subject_aggregate
        assert aggregate.professor_name == "Jane Doe"
        assert aggregate.overall_rating == 4.2
        assert aggregate.total_ratings == 42
        assert aggregate.would_take_again_percent == 87
        assert aggregate.difficulty_rating == 3.1
        assert aggregate.department == "Computer Science department"
        assert len(result.reviews) == 2

    def test_card_fields_and_defaults(self) -> None:
        result = DomSelectorStrategy().parse(_DOM_HTML)
        assert result is not None
        first, second = result.reviews

        assert first == ReviewRecord(
            rating=5.0,
            difficulty=2.0,
            course="CS101",
            date="Jan 15th, 2024",
            comment="Clear lectures and fair exams.",
            tags=["Tough grader", "Lots of homework"],
            thumbs_up=4,
            thumbs_down=1,
        )
        assert second.course == NOT_SPECIFIED
        assert second.date == NOT_SPECIFIED
        assert second.thumbs_down == 2

    def test_no_cards_returns_none(self) -> None:
        assert DomSelectorStrategy().parse("<html><body><h1>Jane Doe</h1></body></html>") is None


# ---------------------------------------------------------------------------
# extract_first
# ---------------------------------------------------------------------------


class _Static:
    def __init__(self, name: str, result: Optional[ScrapeResult] = None, error: bool = False):
        self.name = name
        self.result = result
        self.error = error
        self.called = False

    async def try_extract(self, page: _Page) -> Optional[ScrapeResult]:
        self.called = True
        if self.error:
            raise RuntimeError(f"{self.name} exploded")
        return self.result


class TestExtractFirst:
    async def test_falls_back_to_dom_when_no_embedded_data(self) -> None:
        result = await extract_first(
            (EmbeddedDataStrategy(), DomSelectorStrategy()), _Page(_DOM_HTML)
        )
        assert len(result.reviews) == 2

    async def test_first_success_wins(self) -> None:
        later = _Static("later", ScrapeResult(reviews=[ReviewRecord(rating=1, date="d", comment="c")]))

        result = await extract_first(
            (EmbeddedDataStrategy(), later), _Page(_relay_html(_RELAY_STORE))
        )

        assert len(result.reviews) == 2
        assert later.called is False

    async def test_failing_and_empty_strategies_are_skipped(self) -> None:
        winner = ScrapeResult(reviews=[ReviewRecord(rating=4, date="d", comment="ok")])
        strategies = (
            _Static("boom", error=True),
            _Static("empty", ScrapeResult()),
            _Static("winner", winner),
        )

        result = await extract_first(strategies, _Page(""))

        assert result == winner

    async def test_nothing_found_returns_empty_result(self) -> None:
        result = await extract_first((_Static("none"),), _Page(""))
        assert result.reviews == []
