"""Shared fixtures and fake collaborators for the filter pipeline tests."""

from typing import Optional

import pytest

from src.mail_llm_filter.config import FilterConfiguration, Settings
from src.mail_llm_filter.models import (
    AnalysisResult,
    FilterRule,
    GenerationOptions,
    LlmFilterTemplate,
    Message,
)


class FakeMail:
    """In-memory mail backend recording every call."""

    provider_name = "Fake"

    def __init__(self, messages: Optional[list[Message]] = None, authenticated: bool = True) -> None:
        self.messages = messages or []
        self.is_authenticated = authenticated
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    async def initialize(self) -> None:
        self.is_authenticated = True

    async def get_unread_messages(self, max_results: int = 50) -> list[Message]:
        self._record("get_unread_messages", max_results)
        return self.messages[:max_results]

    async def move_to_folder(self, message_id: str, folder_name: str) -> None:
        self._record("move_to_folder", message_id, folder_name)

    async def delete_message(self, message_id: str) -> None:
        self._record("delete_message", message_id)

    async def mark_as_read(self, message_id: str) -> None:
        self._record("mark_as_read", message_id)

    async def archive_message(self, message_id: str) -> None:
        self._record("archive_message", message_id)

    async def mark_as_spam(self, message_id: str) -> None:
        self._record("mark_as_spam", message_id)

    async def send_reply(self, message_id: str, subject: str, body: str) -> None:
        self._record("send_reply", message_id, subject, body)


class ScriptedLlm:
    """LLM stub returning a fixed confidence per rule name."""

    def __init__(self, confidences: Optional[dict[str, float]] = None, default: float = 0.0) -> None:
        self.confidences = confidences or {}
        self.default = default
        self.calls: list[tuple[Message, FilterRule]] = []

    async def analyze(self, message: Message, rule: FilterRule) -> AnalysisResult:
        self.calls.append((message, rule))
        confidence = self.confidences.get(rule.name, self.default)
        return AnalysisResult(
            is_match=confidence >= 0.5,
            confidence=confidence,
            reason=f"scripted {confidence}",
            full_response=f'{{"confidence": {confidence}}}',
        )

    async def is_available(self) -> bool:
        return True

    async def test_template(
        self, message: Message, template: LlmFilterTemplate, rule: FilterRule
    ) -> AnalysisResult:
        return await self.analyze(message, rule)


class FakeGenerator:
    """Text generator stub for the summarizer."""

    def __init__(self, response: str = "", error: Optional[Exception] = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[tuple[str, GenerationOptions]] = []

    async def generate(self, prompt: str, options: GenerationOptions) -> str:
        self.calls.append((prompt, options))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def settings() -> Settings:
    """Settings with deterministic defaults (no .env lookup)."""
    return Settings(
        _env_file=None,
        groq_api_key="test-key",
        llm_model="test-model",
        llm_temperature=0.3,
        llm_max_tokens=500,
        inter_message_delay_seconds=0,
    )


@pytest.fixture
def message() -> Message:
    return Message(
        id="msg-1",
        from_address="promo@lottery.example",
        from_name="Lottery Desk",
        subject="Winner notification",
        body="URGENT: CLAIM YOUR PRIZE",
    )


@pytest.fixture
def urgent_rule() -> FilterRule:
    return FilterRule(
        name="urgent",
        keywords=["urgent"],
        mentions=[],
        confidence_threshold=0.5,
        target_folder="Scams",
    )


@pytest.fixture
def filter_config(urgent_rule) -> FilterConfiguration:
    return FilterConfiguration(filter_rules=[urgent_rule])


@pytest.fixture
def make_mail():
    """Factory for :class:`FakeMail` instances."""
    return FakeMail


@pytest.fixture
def make_llm():
    """Factory for :class:`ScriptedLlm` instances."""
    return ScriptedLlm


@pytest.fixture
def make_generator():
    """Factory for :class:`FakeGenerator` instances."""
    return FakeGenerator
