"""Tests for newsroom.classifier."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from newsroom.classifier import LLMClassifier
from newsroom.db.models import Category
from newsroom.errors import ClassifierError, ClassifierErrorKind


def _client(create: AsyncMock) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = create
    return client


def _reply(content, finish_reason="stop", refusal=None):
    message = SimpleNamespace(content=content, refusal=refusal)
    return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason=finish_reason)])


def _status_error(cls, status: int, message: str):
    request = httpx.Request("POST", "https://llm.example/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return cls(message, response=response, body=None)


@pytest.fixture
def classifier():
    return LLMClassifier(MagicMock(), model="test-model", secondary_threshold=0.6, default_retry_delay=60)


class TestParseResult:
    def test_primary_is_highest_confidence(self, classifier) -> None:
        text = json.dumps({"categories": [
            {"category": "SOFTWARE_DEVELOPMENT", "confidence": 0.4},
            {"category": "CYBERSECURITY", "confidence": 0.92, "reasoning": "CVE fix"},
        ]})
        result = classifier.parse_result(text)
        assert result.category == Category.CYBERSECURITY
        assert result.confidence == 0.92
        assert result.reasoning == "CVE fix"

    def test_secondary_requires_threshold(self, classifier) -> None:
        text = json.dumps({"categories": [
            {"category": "CYBERSECURITY", "confidence": 0.9},
            {"category": "SOFTWARE_DEVELOPMENT", "confidence": 0.6},
            {"category": "HARDWARE_DEVICES", "confidence": 0.59},
        ]})
        result = classifier.parse_result(text)
        assert [s.category for s in result.secondary_categories] == [Category.SOFTWARE_DEVELOPMENT]

    def test_empty_list_defaults_to_other(self, classifier) -> None:
        result = classifier.parse_result('{"categories": []}')
        assert result.category == Category.OTHER
        assert result.confidence == 0.5
        assert result.reasoning == "No reasoning provided"
        assert result.secondary_categories == []

    def test_unknown_categories_are_skipped(self, classifier) -> None:
        text = json.dumps({"categories": [
            {"category": "GARDENING", "confidence": 0.99},
            {"category": "AI_EMERGING_TECH", "confidence": 0.7},
        ]})
        assert classifier.parse_result(text).category == Category.AI_EMERGING_TECH

    def test_code_fenced_json(self, classifier) -> None:
        text = '```json\n{"categories": [{"category": "OTHER", "confidence": 0.8}]}\n```'
        assert classifier.parse_result(text).category == Category.OTHER

    def test_invalid_json_is_invalid_response(self, classifier) -> None:
        with pytest.raises(ClassifierError) as exc:
            classifier.parse_result("I think it is about security")
        assert exc.value.kind == ClassifierErrorKind.INVALID_RESPONSE

    def test_missing_categories_key(self, classifier) -> None:
        with pytest.raises(ClassifierError) as exc:
            classifier.parse_result('{"category": "OTHER"}')
        assert exc.value.kind == ClassifierErrorKind.INVALID_RESPONSE


class TestBuildPrompt:
    def test_truncates_content(self) -> None:
        classifier = LLMClassifier(MagicMock(), content_chars=10)
        prompt = classifier.build_prompt("Title", "x" * 50)
        assert "x" * 10 in prompt
        assert "x" * 11 not in prompt

    def test_includes_hints(self, classifier) -> None:
        prompt = classifier.build_prompt("Title", "Body", [" Security ", ""])
        assert "Source categories (from RSS): Security" in prompt

    def test_no_hint_line_without_hints(self, classifier) -> None:
        assert "Source categories" not in classifier.build_prompt("Title", "Body")


class TestClassify:
    @pytest.mark.asyncio
    async def test_success(self) -> None:
        create = AsyncMock(return_value=_reply('{"categories": [{"category": "HARDWARE_DEVICES", "confidence": 0.81}]}'))
        classifier = LLMClassifier(_client(create), model="test-model")
        result = await classifier.classify("New GPU", "Benchmarks inside", ["Gaming"])
        assert result.category == Category.HARDWARE_DEVICES
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_rate_limit_error_carries_retry_hint(self) -> None:
        error = _status_error(openai.RateLimitError, 429, "Resource exhausted. Please retry in 37.2s.")
        classifier = LLMClassifier(_client(AsyncMock(side_effect=error)))
        with pytest.raises(ClassifierError) as exc:
            await classifier.classify("t", "c")
        assert exc.value.kind == ClassifierErrorKind.RATE_LIMITED
        assert exc.value.retry_after == 38

    @pytest.mark.asyncio
    async def test_quota_message_is_rate_limit(self) -> None:
        error = _status_error(openai.APIStatusError, 400, "You exceeded your current quota")
        classifier = LLMClassifier(_client(AsyncMock(side_effect=error)), default_retry_delay=60)
        with pytest.raises(ClassifierError) as exc:
            await classifier.classify("t", "c")
        assert exc.value.kind == ClassifierErrorKind.RATE_LIMITED
        assert exc.value.retry_after == 60

    @pytest.mark.asyncio
    async def test_server_error_is_provider(self) -> None:
        error = _status_error(openai.InternalServerError, 500, "backend unavailable")
        classifier = LLMClassifier(_client(AsyncMock(side_effect=error)))
        with pytest.raises(ClassifierError) as exc:
            await classifier.classify("t", "c")
        assert exc.value.kind == ClassifierErrorKind.PROVIDER

    @pytest.mark.asyncio
    async def test_content_filter_is_safety_block(self) -> None:
        create = AsyncMock(return_value=_reply(None, finish_reason="content_filter"))
        classifier = LLMClassifier(_client(create))
        with pytest.raises(ClassifierError) as exc:
            await classifier.classify("t", "c")
        assert exc.value.kind == ClassifierErrorKind.SAFETY_BLOCKED

    @pytest.mark.asyncio
    async def test_no_choices_is_safety_block(self) -> None:
        create = AsyncMock(return_value=SimpleNamespace(choices=[]))
        classifier = LLMClassifier(_client(create))
        with pytest.raises(ClassifierError) as exc:
            await classifier.classify("t", "c")
        assert exc.value.kind == ClassifierErrorKind.SAFETY_BLOCKED

    @pytest.mark.asyncio
    async def test_empty_content_is_invalid_response(self) -> None:
        create = AsyncMock(return_value=_reply(""))
        classifier = LLMClassifier(_client(create))
        with pytest.raises(ClassifierError) as exc:
            await classifier.classify("t", "c")
        assert exc.value.kind == ClassifierErrorKind.INVALID_RESPONSE
