"""Anthropic Messages API client for the analysis collaborator.

Error handling maps HTTP outcomes to
:class:`~profrater.core.exceptions.AnalysisError` so that the worker can
persist a readable message:

- HTTP 429 -> "rate limited"
- HTTP 401/403 -> "invalid API key"
- Other non-2xx -> status and body excerpt
- Network errors and malformed bodies -> description of the failure
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import httpx

from profrater.analysis.prompt import SYSTEM_PROMPT, build_prompt
from profrater.config.settings import Settings
from profrater.core.exceptions import AnalysisError
from profrater.core.schemas.jobs import ReviewRecord, SubjectAggregate

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


def extract_text(response: dict[str, Any]) -> str:
    """Concatenate the ``text`` blocks of a Messages API response."""
    blocks = response.get("content") or []
    parts = [
        block.get("text", "")
        for block in blocks
        if isinstance(block, dict) and block.get("type") == "text"
    ]
    text = "".join(parts).strip()
    if not text:
        raise AnalysisError("analysis: model returned no text content")
    return text


class AnthropicAnalyzer:
    """Summarise reviews with a Claude model.

    Args:
        api_key: Anthropic API key.
        model: Model identifier.
        max_tokens: Upper bound on generated tokens.
        api_url: Messages endpoint.
        timeout: Request timeout in seconds.
        client: Optional shared ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = "claude-sonnet-4-5-20250929",
        max_tokens: int = 2048,
        api_url: str = "https://api.anthropic.com/v1/messages",
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.api_url = api_url
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnthropicAnalyzer":
        return cls(
            settings.anthropic_api_key,
            model=settings.anthropic_model,
            max_tokens=settings.anthropic_max_tokens,
            api_url=settings.anthropic_api_url,
            timeout=settings.analysis_timeout_seconds,
        )

    async def analyze(
        self,
        reviews: Sequence[ReviewRecord],
        aggregate: SubjectAggregate,
        question: Optional[str] = None,
    ) -> str:
        """Return a Markdown summary of ``reviews``.

        Raises:
            AnalysisError: If no API key is configured, or on any upstream
                failure.
        """
        if not self.api_key:
            raise AnalysisError("analysis: ANTHROPIC_API_KEY is not configured")

        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": SYSTEM_PROMPT,
            "messages": [
                {"role": "user", "content": build_prompt(reviews, aggregate, question)}
            ],
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

        if self._client is not None:
            data = await self._post(self._client, payload, headers)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                data = await self._post(client, payload, headers)

        summary = extract_text(data)
        usage = data.get("usage") or {}
        logger.info(
            "analysis: summary generated (%d chars, input_tokens=%s, output_tokens=%s)",
            len(summary),
            usage.get("input_tokens"),
            usage.get("output_tokens"),
        )
        return summary

    async def _post(
        self,
        client: httpx.AsyncClient,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> dict[str, Any]:
        try:
            response = await client.post(self.api_url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            if code == 429:
                raise AnalysisError("analysis: HTTP 429, rate limited", status_code=code) from exc
            if code in (401, 403):
                raise AnalysisError(
                    f"analysis: HTTP {code}, invalid API key", status_code=code
                ) from exc
            raise AnalysisError(
                f"analysis: HTTP {code}: {exc.response.text[:200]}", status_code=code
            ) from exc
        except httpx.RequestError as exc:
            raise AnalysisError(f"analysis: network error: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise AnalysisError(f"analysis: JSON parse error: {exc}") from exc
        if not isinstance(data, dict):
            raise AnalysisError("analysis: unexpected response shape")
        return data
