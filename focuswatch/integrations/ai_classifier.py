"""
FocusWatch — AI domain classifier and daily insight.

Implements DomainClassifierPort on top of the provider-agnostic `complete()`.
The model is asked for one JSON object per domain; anything it gets wrong
is reported as MalformedResponseError so the caller can fall back.
"""

from __future__ import annotations

import json
import logging

from pydantic import BaseModel, ValidationError

from focuswatch.core.clock import format_duration
from focuswatch.core.llm import complete
from focuswatch.data.models import DailySnapshot
from focuswatch.ports.fetch_port import FetchError, MalformedResponseError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# JSON contract
# ---------------------------------------------------------------------------


class DomainVerdict(BaseModel):
    """One classified domain.

    JSON example:
    {
        "domain": "github.com",
        "classification": "productive",
        "confidence": 0.95,
        "reason": "Code hosting"
    }
    """
    domain: str
    classification: str
    confidence: float = 0.0
    reason: str = ""


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_CLASSIFY_PROMPT = """\
You classify website domains for a focus tracker used by a knowledge worker.

For each domain, decide:
- "productive": work tools, documentation, code, learning, professional communication
- "distraction": social media, entertainment, news feeds, shopping, games
- "neutral": search engines, utilities, anything ambiguous

Respond with ONLY a JSON object, no markdown:
{"classifications": [{"domain": "string", "classification": "productive|distraction|neutral", "confidence": 0.0-1.0, "reason": "short reason"}]}
"""

_INSIGHT_PROMPT = """\
You are a friendly, concise productivity coach.
Given one day of browsing statistics, reply with:
1. A one-sentence summary of the day
2. One pattern you notice
3. One specific, actionable suggestion for tomorrow

Keep it encouraging and under 100 words. Plain text, no markdown headers.
"""


def _clean_llm_response(raw_text: str) -> str:
    """Remove markdown code block delimiters from LLM's raw response."""
    cleaned_text = raw_text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text.removeprefix("```json")
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text.removeprefix("```")
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text.removesuffix("```")
    return cleaned_text.strip()


def parse_classifications(raw_text: str) -> list[dict]:
    """Parse the model's answer into plain verdict dicts.

    Raises MalformedResponseError when the answer is not the expected JSON.
    """
    cleaned = _clean_llm_response(raw_text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse LLM response as JSON: %s — raw: '%s'", exc, raw_text[:200])
        raise MalformedResponseError("Classifier returned invalid JSON") from exc

    # Some models return the bare array
    if isinstance(data, list):
        data = {"classifications": data}
    if not isinstance(data, dict):
        raise MalformedResponseError(f"Classifier returned {type(data).__name__}, expected object")

    items = data.get("classifications", [])
    if not isinstance(items, list):
        raise MalformedResponseError(
            f"Classifier returned {type(items).__name__} for classifications, expected list"
        )

    verdicts = []
    for item in items:
        try:
            verdicts.append(DomainVerdict.model_validate(item).model_dump())
        except ValidationError as exc:
            logger.warning("Skipping invalid classification item %r: %s", item, exc)
    return verdicts


class AIDomainClassifier:
    """LLM implementation of DomainClassifierPort."""

    def __init__(self, max_tokens: int = 1024) -> None:
        self._max_tokens = max_tokens

    async def classify_domains(self, domains: list[str]) -> list[dict]:
        if not domains:
            return []
        try:
            raw = await complete(
                system=_CLASSIFY_PROMPT,
                user_message="Classify these domains:\n" + "\n".join(domains),
                max_tokens=self._max_tokens,
                temperature=0.0,
                json_output=True,
            )
        except Exception as exc:
            raise FetchError(f"LLM request failed: {exc}") from exc

        logger.debug("LLM classification response: %s", raw)
        return parse_classifications(raw)


async def generate_daily_insight(snapshot: DailySnapshot, goal_minutes: int) -> str:
    """Short coaching text for a day's snapshot. Raises FetchError on failure."""
    top = ", ".join(
        f"{d.domain} ({format_duration(d.duration)}, {d.classification})"
        for d in snapshot.top_domains[:5]
    ) or "none"
    summary = (
        f"Date: {snapshot.day}\n"
        f"Total tracked: {format_duration(snapshot.total_time)}\n"
        f"Focused: {format_duration(snapshot.productive_time)}\n"
        f"Distracted: {format_duration(snapshot.distraction_time)}\n"
        f"Goal: {format_duration(goal_minutes * 60_000)} ({snapshot.goal_progress}% reached)\n"
        f"Top sites: {top}"
    )
    try:
        text = await complete(
            system=_INSIGHT_PROMPT, user_message=summary, max_tokens=256, temperature=0.7,
        )
    except Exception as exc:
        raise FetchError(f"LLM request failed: {exc}") from exc
    return text.strip()
