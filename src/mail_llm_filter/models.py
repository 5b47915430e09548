"""Pydantic data models used across the application.

Objective:
    Centralize all strongly-typed data structures representing:
    - Email messages handed to the filter pipeline by a mail backend
    - Filter rules, LLM prompt templates and auto-reply templates (long-lived
      configuration)
    - Per-invocation outputs: LLM analysis, summaries and filter outcomes

Design notes:
    - Configuration models accept both pythonic field names and the camelCase
      aliases used in JSON configuration files
      (``model_config = ConfigDict(populate_by_name=True)``).
    - :class:`Message` is frozen. Pipeline stages that need a different body
      (e.g. the summarizer) work on a copy made with ``model_copy``.

High-level structure:
    - Mail primitives:
        - :class:`Message`
    - Configuration primitives:
        - :class:`FilterAction`
        - :class:`FilterRule`
        - :class:`TemplateExample`
        - :class:`LlmFilterTemplate`
        - :class:`AutoReplyTemplate`
        - :class:`GenerationOptions`
    - Pipeline outputs:
        - :class:`AnalysisResult`
        - :class:`EmailSummary`
        - :class:`FilterOutcome`

Call tree usage:
    - :class:`src.mail_llm_filter.graph_mail.GraphMailService`:
        - builds :class:`Message` from Graph payloads
    - :class:`src.mail_llm_filter.llm.GroqLlmService`:
        - returns :class:`AnalysisResult`
    - :class:`src.mail_llm_filter.summarizer.EmailSummarizer`:
        - returns :class:`EmailSummary`
    - :class:`src.mail_llm_filter.filter_engine.FilterEngine`:
        - returns :class:`FilterOutcome`
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    """
    Email message as seen by the filter pipeline.

    The ``id`` is an opaque provider key: it is passed back verbatim to the
    mail backend and never interpreted by the pipeline.

    Attributes:
        id: Provider message key.
        thread_id: Provider conversation/thread key, if any.
        from_address: Sender email address.
        from_name: Sender display name, if known.
        to: Recipient addresses.
        subject: Subject line.
        body: Plain-text body.
        received_at: When the message was received.
        is_unread: Whether the message is unread.
        labels: Provider labels/categories.
        snippet: Short preview text.
    """

    id: str
    thread_id: str = Field(default="", alias="threadId")
    from_address: str = Field(default="", alias="from")
    from_name: Optional[str] = Field(default=None, alias="fromName")
    to: list[str] = Field(default_factory=list)
    subject: str = ""
    body: str = ""
    received_at: Optional[datetime] = Field(default=None, alias="receivedAt")
    is_unread: bool = Field(default=True, alias="isUnread")
    labels: list[str] = Field(default_factory=list)
    snippet: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def sender_display(self) -> str:
        """Sender display name, falling back to the address.

        Returns:
            str: Name used in prompts and auto-replies.
        """
        return self.from_name or self.from_address


class FilterAction(str, Enum):
    """Side-effecting action applied to a message when a rule matches."""

    MOVE_TO_FOLDER = "MoveToFolder"
    DELETE = "Delete"
    MARK_AS_READ = "MarkAsRead"
    ARCHIVE = "Archive"
    MARK_AS_SPAM = "MarkAsSpam"


class FilterRule(BaseModel):
    """
    A filter rule combining match criteria, a threshold and an action.

    Rules are evaluated in list order; the first rule whose fused confidence
    reaches ``confidence_threshold`` wins.

    Attributes:
        name: Rule name for identification and logs.
        enabled: Disabled rules are skipped entirely (no LLM call).
        keywords: Case-insensitive substrings scored deterministically.
        topics: Advisory topics, only passed to the LLM.
        mentions: Case-insensitive substrings scored deterministically.
        confidence_threshold: Inclusive match threshold in [0, 1].
        action: Action to dispatch on match.
        target_folder: Destination for ``MoveToFolder``.
        auto_reply_template_id: Optional auto-reply template reference.
        llm_filter_template_id: Optional prompt template reference.
        custom_prompt: Deprecated free-text instructions (default prompt only).
    """

    name: str = ""
    enabled: bool = True
    keywords: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    mentions: list[str] = Field(default_factory=list)
    confidence_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0, alias="confidenceThreshold"
    )
    action: FilterAction = FilterAction.MOVE_TO_FOLDER
    target_folder: Optional[str] = Field(default=None, alias="targetFolder")
    auto_reply_template_id: Optional[str] = Field(
        default=None, alias="autoReplyTemplateId"
    )
    llm_filter_template_id: Optional[str] = Field(
        default=None, alias="llmFilterTemplateId"
    )
    custom_prompt: Optional[str] = Field(default=None, alias="customPrompt")

    model_config = ConfigDict(populate_by_name=True)


class TemplateExample(BaseModel):
    """Few-shot example embedded in a template prompt."""

    subject: str = ""
    body: str = ""
    expected_result: str = Field(default="", alias="expectedResult")
    explanation: str = ""

    model_config = ConfigDict(populate_by_name=True)


class LlmFilterTemplate(BaseModel):
    """
    Reusable prompt-construction strategy referenced by id from a rule.

    ``model``, ``temperature`` and ``max_tokens`` are optional overrides. They
    are kept as ``None`` when unset and resolved against the global defaults at
    call time (see :meth:`src.mail_llm_filter.prompts.TemplateResolver.resolve_options`).

    Attributes:
        id: Template identifier.
        name: Human-friendly name.
        description: Free-text description.
        system_prompt: Text placed first in the prompt.
        prompt_template: Body with ``{from}``, ``{subject}``, ``{body}``,
            ``{keywords}``, ``{topics}``, ``{mentions}`` placeholders.
        output_format: Response format description appended verbatim.
        examples: Few-shot examples.
        model: Model override.
        temperature: Temperature override.
        max_tokens: Output token budget override.
        requires_keywords: Substitute rule keywords (else "None").
        requires_topics: Substitute rule topics (else "None").
        requires_mentions: Substitute rule mentions (else "None").
    """

    id: str
    name: str = ""
    description: str = ""
    system_prompt: str = Field(default="", alias="systemPrompt")
    prompt_template: str = Field(default="", alias="promptTemplate")
    output_format: str = Field(default="", alias="outputFormat")
    examples: list[TemplateExample] = Field(default_factory=list)
    model: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1, alias="maxTokens")
    requires_keywords: bool = Field(default=False, alias="requiresKeywords")
    requires_topics: bool = Field(default=False, alias="requiresTopics")
    requires_mentions: bool = Field(default=False, alias="requiresMentions")

    model_config = ConfigDict(populate_by_name=True)


class AutoReplyTemplate(BaseModel):
    """Auto-reply sent after a matched rule's action.

    ``subject`` may use ``{originalSubject}``; ``body`` may use ``{sender}``
    and ``{originalSubject}``.
    """

    id: str
    name: str = ""
    subject: str = ""
    body: str = ""
    include_original: bool = Field(default=False, alias="includeOriginal")

    model_config = ConfigDict(populate_by_name=True)


class GenerationOptions(BaseModel):
    """Resolved model parameters for a single LLM call."""

    model: str
    temperature: float = 0.3
    max_tokens: int = 500


class AnalysisResult(BaseModel):
    """
    Structured result of analyzing one message against one rule.

    Always produced by the LLM gateway; errors are reported through
    ``reason`` with ``confidence=0``.

    Attributes:
        is_match: Whether the LLM considers the message a match.
        confidence: LLM confidence in [0, 1].
        reason: Explanation (or ``"Error: ..."``).
        full_response: Raw LLM response text.
        detected_topics: Topics reported by the LLM.
        detected_mentions: Mentions reported by the LLM.
    """

    is_match: bool = False
    confidence: float = 0.0
    reason: str = ""
    full_response: str = ""
    detected_topics: list[str] = Field(default_factory=list)
    detected_mentions: list[str] = Field(default_factory=list)


class EmailSummary(BaseModel):
    """
    Possibly-summarized body of a message.

    Attributes:
        original_message: The untouched input message.
        body: Summarized body, or the original body.
        was_summarized: Whether the body was shortened.
        summary_metadata: Human string such as ``"5000 → 1000 chars (extractive)"``.
        estimated_tokens: Rough token count of ``body`` (diagnostic only).
    """

    original_message: Message
    body: str = ""
    was_summarized: bool = False
    summary_metadata: str = ""
    estimated_tokens: int = 0


class FilterOutcome(BaseModel):
    """
    Result of filtering a single message.

    This is the primary output type returned to the CLI and web API.

    Attributes:
        message_id: Provider message key.
        subject: Message subject.
        sender: Sender address.
        received_at: When the message was received.
        is_match: Whether any rule matched.
        confidence: Fused confidence of the matching rule (0 when unmatched).
        matched_rule: The first matching rule, if any.
        reason: Human-readable explanation.
        llm_analysis: Raw LLM response for the matching rule.
        action_taken: Whether the primary action succeeded.
        action_description: What was done.
        summary_metadata: Summarization note, when the body was shortened.
        error: Error message, if anything failed.
        filtered_at: Timestamp of the evaluation.
    """

    message_id: str
    subject: str = ""
    sender: str = ""
    received_at: Optional[datetime] = None
    is_match: bool = False
    confidence: float = 0.0
    matched_rule: Optional[FilterRule] = None
    reason: str = ""
    llm_analysis: Optional[str] = None
    action_taken: bool = False
    action_description: Optional[str] = None
    summary_metadata: Optional[str] = None
    error: Optional[str] = None
    filtered_at: datetime = Field(default_factory=_utcnow)
