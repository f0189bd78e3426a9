"""Constants and selector lists for the review-site scraper.

The review site renders with CSS-in-JS class names such as
``RatingValue__Numerator-qw8sqy-2``; selectors therefore match on class
substrings.  Each list is ordered by preference and the first selector that
yields a value wins.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------

#: Path of the professor search page, relative to the site base URL.
SEARCH_PATH: str = "/search/professors"

#: Substring every professor profile URL contains.
PROFILE_PATH_MARKER: str = "/professor/"

#: Search-result cards linking to a profile, in order of preference.
RESULT_LINK_SELECTORS: tuple[str, ...] = (
    'a[class*="TeacherCard"]',
    'a[href*="/professor/"]',
)

#: "Load more ratings" button.
LOAD_MORE_SELECTOR: str = 'button:has-text("Load More Ratings")'

#: Pause after each interaction so the client-side renderer can settle (ms).
SETTLE_DELAY_MS: int = 1_500

USER_AGENT: str = (
    "Mozilla/5.0 (X11; Linux x86_64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

# ---------------------------------------------------------------------------
# Embedded data
# ---------------------------------------------------------------------------

#: Name of the global the site assigns its normalised GraphQL cache to.
RELAY_STORE_GLOBAL: str = "__RELAY_STORE__"

#: Separator the site uses inside a rating's tag string.
RELAY_TAG_SEPARATOR: str = "--"

# ---------------------------------------------------------------------------
# DOM selectors: professor header
# ---------------------------------------------------------------------------

PROFILE_NAME_SELECTORS: tuple[str, ...] = (
    '[class*="NameTitle__Name"]',
    "h1",
)

OVERALL_RATING_SELECTORS: tuple[str, ...] = (
    '[class*="RatingValue__Numerator"]',
    '[class*="RatingValue"]',
    '[class*="avgRating"]',
)

TOTAL_RATINGS_SELECTORS: tuple[str, ...] = (
    '[class*="RatingValue__NumRatings"]',
    '[class*="rating-count"]',
)

FEEDBACK_ITEM_SELECTOR: str = '[class*="FeedbackItem"]'

DEPARTMENT_SELECTORS: tuple[str, ...] = (
    '[class*="TeacherDepartment"]',
    '[class*="department"]',
)

# ---------------------------------------------------------------------------
# DOM selectors: review cards
# ---------------------------------------------------------------------------

REVIEW_CARD_SELECTORS: tuple[str, ...] = (
    '[class*="Rating__StyledRating"]',
    '[class*="RatingCard"]',
    '[class*="rating-card"]',
)

CARD_RATING_SELECTORS: tuple[str, ...] = (
    '[class*="CardNumRating__CardNumRatingNumber"]',
    '[class*="CardNumRating"]',
    '[class*="quality"]',
)

CARD_DIFFICULTY_SELECTORS: tuple[str, ...] = (
    '[class*="Difficulty"]',
    '[class*="difficulty"]',
)

CARD_COURSE_SELECTORS: tuple[str, ...] = (
    '[class*="RatingHeader__StyledClass"]',
    '[class*="course"]',
)

CARD_DATE_SELECTORS: tuple[str, ...] = (
    '[class*="TimeStamp"]',
    '[class*="date"]',
)

CARD_COMMENT_SELECTORS: tuple[str, ...] = (
    '[class*="Comments__StyledComments"]',
    '[class*="Comments"]',
    '[class*="comment"]',
)

CARD_TAG_SELECTOR: str = '[class*="Tag-"], [class*="RatingTags"] span'

#: Vote counters; the first match is helpful, the second not helpful.
CARD_HELP_TOTAL_SELECTOR: str = '[class*="HelpTotalNumber"]'

CARD_THUMBS_UP_SELECTORS: tuple[str, ...] = (
    '[class*="thumbs-up"]',
    '[class*="helpful"]',
)

CARD_THUMBS_DOWN_SELECTORS: tuple[str, ...] = (
    '[class*="thumbs-down"]',
    '[class*="unhelpful"]',
)
