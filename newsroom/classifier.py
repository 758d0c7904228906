"""IT news categorization via an OpenAI-compatible chat model with JSON output."""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError

from newsroom.config import settings
from newsroom.db.models import Category
from newsroom.errors import ClassifierError, ClassifierErrorKind
from newsroom.metadata import SecondaryCategory

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an IT news classifier. Analyze the provided title and content, then rank the categories below. Always respond with JSON only.

Categories:
1. CYBERSECURITY - Security breaches, vulnerabilities, privacy, encryption, hacking, data protection
2. AI_EMERGING_TECH - Artificial Intelligence, Machine Learning, quantum computing, blockchain, AR/VR, emerging technologies
3. SOFTWARE_DEVELOPMENT - Programming languages, frameworks, DevOps, open source, software engineering, development tools
4. HARDWARE_DEVICES - CPUs, GPUs, smartphones, IoT devices, consumer electronics, computer hardware
5. TECH_INDUSTRY_BUSINESS - Company news, acquisitions, stock market, regulations, tech industry business
6. OTHER - General tech news that doesn't fit the above categories

REQUIRED JSON FORMAT:
{"categories": [{"category": "CYBERSECURITY", "confidence": 0.95, "reasoning": "..."}]}

Return the best-fitting category as the first entry along with optional secondary candidates. Confidence is a number between 0 and 1."""

USER_PROMPT = """Classify the following IT news article:

Title: {title}

Content: {content}{hints}

Use the source categories only as a hint if they are helpful and consistent with the content. Provide your classification in JSON format."""


class _CategoryScore(BaseModel):
    category: Category
    confidence: float = Field(..., ge=0, le=1)
    reasoning: Optional[str] = None


@dataclass
class ClassificationResult:
    """Primary category plus confident secondary candidates."""

    category: Category
    confidence: float
    reasoning: str
    secondary_categories: list[SecondaryCategory] = field(default_factory=list)


def _parse_json_response(response: str) -> Optional[dict]:
    """Parse JSON from the model reply, tolerating markdown code fences."""
    text = response.strip()

    fenced = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", text, re.DOTALL)
    if fenced:
        text = fenced.group(1)

    start = text.find("{")
    end = text.rfind("}") + 1
    if start != -1 and end > start:
        text = text[start:end]

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse classification JSON: {e}")
        logger.debug(f"Raw response: {response[:500]}")
        return None


def _is_rate_limit(error: openai.APIError) -> bool:
    if isinstance(error, openai.RateLimitError):
        return True
    if getattr(error, "status_code", None) == 429:
        return True
    message = str(error).lower()
    return "quota" in message or "rate limit" in message


class LLMClassifier:
    """Classifies articles into Category members.

    All provider failures surface as ClassifierError with a kind the caller
    can branch on; nothing is retried here.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: Optional[str] = None,
        secondary_threshold: Optional[float] = None,
        content_chars: Optional[int] = None,
        default_retry_delay: Optional[int] = None,
    ):
        self.client = client
        self.model = model or settings.CLASSIFIER_MODEL
        self.secondary_threshold = (
            settings.SECONDARY_CATEGORY_THRESHOLD if secondary_threshold is None else secondary_threshold
        )
        self.content_chars = content_chars or settings.CLASSIFIER_CONTENT_CHARS
        self.default_retry_delay = default_retry_delay or settings.RATE_LIMIT_DEFAULT_DELAY

    def build_prompt(self, title: str, content: str, hints: Optional[Sequence[str]] = None) -> str:
        trimmed = [h.strip() for h in (hints or []) if h and h.strip()]
        hints_line = f"\n\nSource categories (from RSS): {', '.join(trimmed)}" if trimmed else ""
        return USER_PROMPT.format(
            title=title,
            content=(content or "")[: self.content_chars],
            hints=hints_line,
        )

    async def classify(
        self,
        title: str,
        content: str,
        hints: Optional[Sequence[str]] = None,
    ) -> ClassificationResult:
        logger.debug(f"Classifying article: {title[:50]}...")

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": self.build_prompt(title, content, hints)},
                ],
                response_format={"type": "json_object"},
                temperature=0,
            )
        except openai.APIError as e:
            if _is_rate_limit(e):
                error = ClassifierError.rate_limited(str(e), self.default_retry_delay)
                logger.warning(f"Rate limit exceeded. Retry after {error.retry_after}s")
                raise error from e
            raise ClassifierError(ClassifierErrorKind.PROVIDER, f"Classifier request failed: {e}") from e

        if not response.choices:
            raise ClassifierError(
                ClassifierErrorKind.SAFETY_BLOCKED, "Classifier returned no candidates"
            )

        choice = response.choices[0]
        refusal = getattr(choice.message, "refusal", None)
        if choice.finish_reason == "content_filter" or refusal:
            raise ClassifierError(
                ClassifierErrorKind.SAFETY_BLOCKED,
                f"Classifier declined to answer: {refusal or choice.finish_reason}",
            )

        text = choice.message.content
        if not text:
            raise ClassifierError(
                ClassifierErrorKind.INVALID_RESPONSE, "Empty response from classifier"
            )

        return self.parse_result(text)

    def parse_result(self, text: str) -> ClassificationResult:
        """Turn the model's JSON reply into a ClassificationResult."""
        payload = _parse_json_response(text)
        if not payload or not isinstance(payload.get("categories"), list):
            raise ClassifierError(
                ClassifierErrorKind.INVALID_RESPONSE,
                "Unable to parse structured classification response",
            )

        entries = []
        for raw in payload["categories"]:
            try:
                entries.append(_CategoryScore.model_validate(raw))
            except ValidationError:
                logger.debug(f"Skipping invalid category entry: {raw}")

        entries.sort(key=lambda e: e.confidence, reverse=True)
        if not entries:
            logger.warning("Classifier returned no usable categories, defaulting to OTHER")
            return ClassificationResult(
                category=Category.OTHER,
                confidence=0.5,
                reasoning="No reasoning provided",
            )

        primary = entries[0]
        secondary = [
            SecondaryCategory(category=e.category, confidence=e.confidence)
            for e in entries[1:]
            if e.confidence >= self.secondary_threshold
        ]

        logger.debug(
            f"Classification result: {primary.category.value} ({primary.confidence}) "
            f"with {len(secondary)} secondary matches"
        )
        return ClassificationResult(
            category=primary.category,
            confidence=primary.confidence,
            reasoning=primary.reasoning or "No reasoning provided",
            secondary_categories=secondary,
        )
