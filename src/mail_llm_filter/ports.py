"""Ports (interfaces) consumed by the filter pipeline.

Ports define the minimal contracts for the mail backend and the LLM so that
the pipeline can be reused with different providers (Microsoft Graph, IMAP,
Gmail, local or hosted models).

Message ids are opaque strings: backends receive back exactly what they
produced in :meth:`MailService.get_unread_messages`.

Cancellation is asyncio task cancellation; implementations must let
``asyncio.CancelledError`` propagate.
"""

from __future__ import annotations

from typing import Protocol

from .models import (
    AnalysisResult,
    FilterRule,
    GenerationOptions,
    LlmFilterTemplate,
    Message,
)


class MailService(Protocol):
    """Mail operations required by the filter pipeline."""

    @property
    def is_authenticated(self) -> bool:
        ...

    @property
    def provider_name(self) -> str:
        ...

    async def initialize(self) -> None:
        ...

    async def get_unread_messages(self, max_results: int = 50) -> list[Message]:
        ...

    async def move_to_folder(self, message_id: str, folder_name: str) -> None:
        ...

    async def delete_message(self, message_id: str) -> None:
        ...

    async def mark_as_read(self, message_id: str) -> None:
        ...

    async def archive_message(self, message_id: str) -> None:
        ...

    async def mark_as_spam(self, message_id: str) -> None:
        ...

    async def send_reply(self, message_id: str, subject: str, body: str) -> None:
        ...


class TextGenerator(Protocol):
    """Raw text generation used by the summarizer."""

    async def generate(self, prompt: str, options: GenerationOptions) -> str:
        ...


class LlmService(Protocol):
    """Semantic analysis operations required by the filter pipeline."""

    async def analyze(self, message: Message, rule: FilterRule) -> AnalysisResult:
        ...

    async def is_available(self) -> bool:
        ...

    async def test_template(
        self, message: Message, template: LlmFilterTemplate, rule: FilterRule
    ) -> AnalysisResult:
        ...
