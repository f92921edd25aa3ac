"""
Spam classifier backed by an OpenAI-compatible chat-completion endpoint.

Messages are sent in chunks of CHUNK_SIZE, one chunk at a time. A
malformed or incomplete model answer never blocks the pipeline: affected
messages get a header-based heuristic label. Rate limiting (HTTP 429) and
exhausted credits (HTTP 402) stop the remaining chunks but keep the
results already obtained. No retries: the next scheduled run is the retry.
"""

import json
from dataclasses import dataclass, field

import openai
from openai import AsyncOpenAI

from app.config import settings
from app.features.cleanup.domain import SPAM_CONFIDENCE_TIERS, ClassificationResult, MessageSummary
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 20
FEEDBACK_SPAM_REASONING = "previously marked as spam by you"
HEURISTIC_REASONING = "Classification based on email headers"

SYSTEM_PROMPT = """You are an email spam classifier. Analyze emails and classify each as:
- "definitely_spam": Obvious spam, scams, phishing, or aggressive marketing
- "likely_spam": Marketing newsletters or promotional emails the user probably doesn't want
- "might_be_important": Could be legitimate, needs user review

For each email, provide a brief reasoning (max 15 words) explaining your classification.

Respond with a JSON array where each item has:
- id: the email id
- spamConfidence: one of the three categories above
- reasoning: brief explanation"""


class ClassifierError(Exception):
    """Base exception for classifier failures."""

    def __init__(self, message: str, status_code: int | None = None, recoverable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.recoverable = recoverable


class ClassifierRateLimitedError(ClassifierError):
    """The model endpoint answered HTTP 429."""

    stop_reason = "rate_limited"


class ClassifierQuotaExhaustedError(ClassifierError):
    """The model endpoint answered HTTP 402 (credits exhausted)."""

    stop_reason = "quota_exhausted"


@dataclass(slots=True)
class ClassificationBatch:
    """Classifications for the chunks that completed, plus why the rest were skipped."""

    results: list[ClassificationResult] = field(default_factory=list)
    stopped_reason: str | None = None
    unclassified_ids: list[str] = field(default_factory=list)

    def by_id(self) -> dict[str, ClassificationResult]:
        return {result.message_id: result for result in self.results}


def heuristic_classification(message: MessageSummary) -> ClassificationResult:
    confidence = "likely_spam" if message.has_list_unsubscribe else "might_be_important"
    return ClassificationResult(
        message_id=message.id, spam_confidence=confidence, reasoning=HEURISTIC_REASONING
    )


def feedback_classification(message: MessageSummary) -> ClassificationResult:
    return ClassificationResult(
        message_id=message.id,
        spam_confidence="definitely_spam",
        reasoning=FEEDBACK_SPAM_REASONING,
    )


def extract_json_array(text: str) -> list | None:
    """Return the first JSON array embedded in `text`, or None."""
    if not text:
        return None

    decoder = json.JSONDecoder()
    index = text.find("[")
    while index != -1:
        try:
            value, _ = decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, list):
            return value
        index = text.find("[", index + 1)
    return None


def parse_classifications(
    text: str, messages: list[MessageSummary]
) -> tuple[list[ClassificationResult], bool]:
    """
    Join a model answer back to the chunk's messages.

    Items with unknown ids, unknown tiers, or missing fields are ignored;
    messages without a valid item get the heuristic label.

    Returns:
        (one result per message in input order, whether the answer parsed)
    """
    items = extract_json_array(text)
    parsed: dict[str, ClassificationResult] = {}

    for item in items or []:
        if not isinstance(item, dict):
            continue
        message_id = item.get("id")
        confidence = item.get("spamConfidence")
        if not isinstance(message_id, str) or confidence not in SPAM_CONFIDENCE_TIERS:
            continue
        reasoning = item.get("reasoning")
        parsed.setdefault(
            message_id,
            ClassificationResult(
                message_id=message_id,
                spam_confidence=confidence,
                reasoning=reasoning.strip() if isinstance(reasoning, str) else "",
            ),
        )

    results = [parsed.get(message.id) or heuristic_classification(message) for message in messages]
    return results, items is not None


def build_user_message(messages: list[MessageSummary]) -> str:
    summaries = [
        {
            "id": message.id,
            "sender": message.sender,
            "senderEmail": message.sender_email,
            "subject": message.subject,
            "snippet": message.snippet,
            "hasListUnsubscribe": message.has_list_unsubscribe,
        }
        for message in messages
    ]
    return f"Analyze these emails:\n{json.dumps(summaries, indent=2)}"


class SpamClassifier:
    """
    Classifies message summaries into the three confidence tiers.
    """

    def __init__(self, client: AsyncOpenAI | None = None):
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.AI_API_KEY:
                raise ClassifierError("AI_API_KEY not configured in settings", recoverable=False)

            self._client = AsyncOpenAI(
                api_key=settings.AI_API_KEY,
                base_url=settings.AI_BASE_URL or None,
                timeout=settings.AI_TIMEOUT_SECONDS,
                max_retries=0,
            )
        return self._client

    async def _complete(self, user_message: str) -> str:
        """
        One chat-completion call.

        Raises:
            ClassifierRateLimitedError: HTTP 429
            ClassifierQuotaExhaustedError: HTTP 402
            ClassifierError: any other API or network failure
        """
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=settings.AI_MODEL,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_message},
                ],
                temperature=settings.AI_TEMPERATURE,
            )
        except openai.RateLimitError as e:
            raise ClassifierRateLimitedError(
                "Rate limits exceeded, please try again later.", status_code=429
            ) from e
        except openai.APIStatusError as e:
            if e.status_code == 402:
                raise ClassifierQuotaExhaustedError(
                    "AI credits exhausted.", status_code=402, recoverable=False
                ) from e
            raise ClassifierError(
                f"AI gateway error: {e.status_code}", status_code=e.status_code
            ) from e
        except openai.APIError as e:
            raise ClassifierError(f"AI gateway request failed: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            return ""
        return response.choices[0].message.content

    async def classify_chunk(self, messages: list[MessageSummary]) -> list[ClassificationResult]:
        """
        Classify at most CHUNK_SIZE messages with one model call.

        Raises:
            ClassifierRateLimitedError, ClassifierQuotaExhaustedError
        """
        try:
            text = await self._complete(build_user_message(messages))
        except (ClassifierRateLimitedError, ClassifierQuotaExhaustedError):
            raise
        except ClassifierError as e:
            logger.warning(
                "Classifier call failed, using heuristic labels",
                chunk_size=len(messages),
                status_code=e.status_code,
                error=str(e),
            )
            return [heuristic_classification(message) for message in messages]

        results, parsed = parse_classifications(text, messages)
        if not parsed:
            logger.warning(
                "Could not parse classifier response as JSON, using heuristic labels",
                chunk_size=len(messages),
                response_length=len(text),
            )
        return results

    async def classify(
        self,
        messages: list[MessageSummary],
        known_spam: list[MessageSummary] | None = None,
        stopped_reason: str | None = None,
    ) -> ClassificationBatch:
        """
        Classify messages chunk by chunk.

        Args:
            messages: Messages that need a model decision
            known_spam: Messages whose sender the user marked as spam; these
                are labelled directly without a model call
            stopped_reason: Set when an earlier call in the same run hit a
                rate or quota limit; no model call is made and every message
                in `messages` is returned as unclassified

        Returns:
            ClassificationBatch with results for every message handled
        """
        batch = ClassificationBatch(
            results=[feedback_classification(message) for message in known_spam or []]
        )
        if stopped_reason:
            batch.stopped_reason = stopped_reason
            batch.unclassified_ids = [message.id for message in messages]
            return batch

        for start in range(0, len(messages), CHUNK_SIZE):
            chunk = messages[start : start + CHUNK_SIZE]
            try:
                batch.results.extend(await self.classify_chunk(chunk))
            except (ClassifierRateLimitedError, ClassifierQuotaExhaustedError) as e:
                batch.stopped_reason = e.stop_reason
                batch.unclassified_ids = [message.id for message in messages[start:]]
                logger.warning(
                    "Classification stopped early",
                    reason=e.stop_reason,
                    classified=len(batch.results),
                    skipped=len(batch.unclassified_ids),
                )
                break

        return batch


spam_classifier = SpamClassifier()
