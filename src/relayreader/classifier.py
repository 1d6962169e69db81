"""Transport to the external post classifier.

The classifier is an OpenAI-compatible chat-completions endpoint that scores
posts for "zen" (calm, constructive) versus rage bait. This module only
minimises the batch, ships it and validates what comes back; it never
interprets scores. Fallback behaviour on failure is the caller's decision
(see ``fallback_scores``).

Requests go directly to the classifier endpoint, not through relays.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from relayreader.errors import ClassifierError, ErrorCode
from relayreader.models.scoring import PostDigest, PostScore

if TYPE_CHECKING:
    from collections.abc import Sequence

    from relayreader.config import ClassifierSettings
    from relayreader.models.reddit import PostData

log = structlog.get_logger()

NEUTRAL_SCORE = 50

_SYSTEM_PROMPT = """\
Analyze the following Reddit posts to curate a calm feed.
Filter out rage bait, intentionally divisive politics, aggressive arguments,
and content designed to induce anxiety or anger.
{custom}
Return a JSON object with a single key "results" containing an array of objects.
Each object must have:
- "id": string (matching the input post id)
- "zenScore": number (0 to 100. 100 = calm and constructive, 0 = pure rage bait)
- "isRageBait": boolean (true if zenScore is below {threshold})
- "reason": string (very short explanation, max 10 words)
"""


def digest_posts(posts: Sequence[PostData], snippet_length: int) -> list[PostDigest]:
    return [
        PostDigest(
            id=p.id,
            title=p.title,
            subreddit=p.subreddit,
            body_snippet=p.selftext[:snippet_length] if p.selftext else "No text",
        )
        for p in posts
    ]


def parse_scores(content: str, threshold: int) -> list[PostScore]:
    """Validate the classifier's message content into PostScore models.

    Accepts ``{"results": [...]}``, ``{"data": [...]}`` or a bare array.
    """
    try:
        parsed = json.loads(content)
    except ValueError as exc:
        raise ClassifierError(
            ErrorCode.CLASSIFIER_FAILED, "Classifier response was not valid JSON"
        ) from exc

    if isinstance(parsed, dict):
        results = parsed.get("results", parsed.get("data"))
    else:
        results = parsed
    if not isinstance(results, list):
        raise ClassifierError(
            ErrorCode.CLASSIFIER_FAILED, "Classifier response did not contain a result array"
        )

    scores: list[PostScore] = []
    for item in results:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        scores.append(_score_from_item(item, threshold))
    return scores


def _score_from_item(item: dict[str, Any], threshold: int) -> PostScore:
    raw_score = item.get("zenScore")
    if isinstance(raw_score, bool) or not isinstance(raw_score, int | float):
        zen_score = NEUTRAL_SCORE
    else:
        zen_score = max(0, min(100, round(raw_score)))

    is_rage_bait = item.get("isRageBait")
    if not isinstance(is_rage_bait, bool):
        is_rage_bait = zen_score < threshold

    return PostScore(
        id=str(item["id"]),
        zen_score=zen_score,
        reason=str(item.get("reason") or "AI analysis"),
        is_rage_bait=is_rage_bait,
    )


def fallback_scores(posts: Sequence[PostData]) -> list[PostScore]:
    """Neutral verdicts for callers that prefer degraded output over an error."""
    return [
        PostScore(
            id=p.id,
            zen_score=NEUTRAL_SCORE,
            reason="Analysis unavailable",
            is_rage_bait=False,
        )
        for p in posts
    ]


class ClassifierClient:
    """Ships minimised post batches to the configured classifier endpoint."""

    def __init__(self, client: httpx.AsyncClient, settings: ClassifierSettings) -> None:
        self._client = client
        self._settings = settings

    @property
    def configured(self) -> bool:
        return self._settings.api_key is not None

    async def classify(self, posts: Sequence[PostData]) -> list[PostScore]:
        if not posts:
            return []
        if self._settings.api_key is None:
            raise ClassifierError(
                ErrorCode.CLASSIFIER_UNAVAILABLE,
                "Classifier API key is not configured",
                recoverable=False,
            )

        digests = digest_posts(posts, self._settings.snippet_length)
        custom = (
            f'User preferences (important): "{self._settings.custom_instructions}"\n'
            if self._settings.custom_instructions
            else ""
        )
        body = {
            "model": self._settings.model,
            "messages": [
                {
                    "role": "system",
                    "content": _SYSTEM_PROMPT.format(
                        custom=custom, threshold=self._settings.min_zen_score
                    ),
                },
                {
                    "role": "user",
                    "content": json.dumps([d.model_dump() for d in digests]),
                },
            ],
            "response_format": {"type": "json_object"},
        }

        try:
            response = await self._client.post(
                self._settings.endpoint,
                json=body,
                headers={
                    "Authorization": f"Bearer {self._settings.api_key.get_secret_value()}",
                    "X-Title": "relayreader",
                },
                timeout=self._settings.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise ClassifierError(
                ErrorCode.CLASSIFIER_FAILED, f"Network error calling classifier: {exc}"
            ) from exc

        if not response.is_success:
            raise ClassifierError(
                ErrorCode.CLASSIFIER_FAILED,
                f"Classifier returned HTTP {response.status_code}",
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ClassifierError(
                ErrorCode.CLASSIFIER_FAILED, "Classifier response had no message content"
            ) from exc
        if not content:
            raise ClassifierError(ErrorCode.CLASSIFIER_FAILED, "Classifier returned empty content")

        scores = parse_scores(content, self._settings.min_zen_score)
        log.info("classifier_complete", posts=len(posts), scores=len(scores))
        return scores
