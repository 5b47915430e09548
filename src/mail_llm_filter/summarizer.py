"""Bounding long email bodies before they reach the LLM.

Objective:
    Shorten a message body that exceeds ``max_length`` characters while
    keeping the parts most likely to matter for filtering.

Core strategy (three stages, first acceptable result wins):
    1. Extractive: score sentences with cheap heuristics and keep the best
       ones, in their original order, within the length budget.
    2. Abstractive: ask the LLM for a summary with an explicit word target.
    3. Truncation: cut at a paragraph, sentence or word boundary and append a
       marker. This is also the catch-all for any error in stages 1-2 and is
       the only stage that cannot fail.

High-level call tree:
    - :class:`EmailSummarizer`
        - :meth:`EmailSummarizer.summarize_if_needed`
            - :func:`perform_extractive_summarization`
                - :func:`split_into_sentences`
                - :func:`score_sentence_importance`
            - :meth:`EmailSummarizer.perform_abstractive_summarization`
            - :func:`truncate_intelligently`
            - :func:`estimate_token_count`

Operational notes:
    - The original message is never modified; callers receive an
      :class:`src.mail_llm_filter.models.EmailSummary`.
    - Token estimates are diagnostic only (~4 characters per token).
"""

import logging
import re
from typing import Optional

from .config import Settings
from .models import EmailSummary, GenerationOptions, Message
from .ports import TextGenerator

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 3000
CHARS_PER_TOKEN = 4
CHARS_PER_WORD = 5
ABSTRACTIVE_INPUT_LIMIT = 8000
ABSTRACTIVE_TEMPERATURE = 0.3
TRUNCATION_MARKER = "... [truncated]"

IMPORTANT_KEYWORDS = (
    "urgent",
    "important",
    "deadline",
    "please",
    "request",
    "question",
    "help",
    "issue",
    "problem",
    "thank you",
    "meeting",
    "call",
    "appointment",
    "action",
    "required",
)

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")

ABSTRACTIVE_PROMPT = """Summarize the following email content in approximately {target_words} words or less.
Focus on the key points, main message, and any action items or important details.
Be concise but preserve the essential meaning.

EMAIL CONTENT:
{content}

SUMMARY:"""


def estimate_token_count(text: str) -> int:
    """Rough token count: one token per four characters."""
    if not text:
        return 0
    return len(text) // CHARS_PER_TOKEN


def split_into_sentences(text: str) -> list[str]:
    """Split on whitespace following ``.``, ``!`` or ``?``.

    Args:
        text: Body text.

    Returns:
        list[str]: Non-empty, stripped sentences.
    """
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]


def score_sentence_importance(sentence: str, index: int, total: int) -> float:
    """
    Score a sentence for extractive selection.

    Heuristics:
        - +2.0 first sentence, +1.5 last sentence
        - +1.0 contains a question mark
        - +0.5 per important keyword it contains
        - +0.3 between 5 and 30 words
        - +0.2 starts with an uppercase letter

    Args:
        sentence: Sentence text (non-empty).
        index: Position in the body.
        total: Number of sentences in the body.

    Returns:
        float: Importance score.
    """
    score = 0.0

    if index == 0:
        score += 2.0
    if index == total - 1:
        score += 1.5

    if "?" in sentence:
        score += 1.0

    lowered = sentence.lower()
    for keyword in IMPORTANT_KEYWORDS:
        if keyword in lowered:
            score += 0.5

    word_count = len(sentence.split())
    if 5 <= word_count <= 30:
        score += 0.3

    if sentence[0].isupper():
        score += 0.2

    return score


def perform_extractive_summarization(text: str, max_length: int) -> str:
    """
    Keep the highest-scoring sentences that fit in ``max_length``.

    Sentences are taken in descending score order (ties keep body order) until
    the next one would push the space-joined result over the limit; the kept
    sentences are then rendered in their original order.

    Args:
        text: Body text.
        max_length: Character budget.

    Returns:
        str: Extract (empty when not even the best sentence fits).
    """
    sentences = split_into_sentences(text)
    if not sentences:
        return ""

    total = len(sentences)
    ranked = sorted(
        range(total),
        key=lambda i: score_sentence_importance(sentences[i], i, total),
        reverse=True,
    )

    selected: set[int] = set()
    length = 0
    for index in ranked:
        added = len(sentences[index]) + (1 if selected else 0)
        if length + added > max_length:
            break
        selected.add(index)
        length += added

    return " ".join(sentences[i] for i in range(total) if i in selected)


def truncate_intelligently(text: str, max_length: int) -> str:
    """
    Cut ``text`` to at most ``max_length`` characters at a natural boundary.

    The marker is counted inside ``max_length``. Boundaries are tried in
    order: last paragraph break, last sentence-ending punctuation (kept),
    last space, then a hard cut. When ``max_length`` cannot even hold the
    marker, the text is hard-cut without one.

    Args:
        text: Text to shorten.
        max_length: Maximum output length.

    Returns:
        str: Text of length ``<= max_length``.
    """
    if not text or len(text) <= max_length:
        return text

    budget = max_length - len(TRUNCATION_MARKER)
    if budget <= 0:
        return text[: max(max_length, 0)]

    cut = text.rfind("\n\n", 0, budget + 2)

    if cut <= 0:
        head = text[:budget]
        last_punct = max(head.rfind("."), head.rfind("!"), head.rfind("?"))
        cut = last_punct + 1 if last_punct > 0 else -1

    if cut <= 0:
        cut = text.rfind(" ", 0, budget)

    if cut <= 0:
        cut = budget

    return text[:cut].rstrip() + TRUNCATION_MARKER


class EmailSummarizer:
    """
    Summarizes oversized message bodies.

    Attributes:
        settings: Application settings (model used for abstractive summaries).
        generator: Text generator used for the abstractive stage, if any.
    """

    def __init__(
        self, settings: Settings, generator: Optional[TextGenerator] = None
    ) -> None:
        """
        Initialize the summarizer.

        Args:
            settings: Application settings.
            generator: LLM text generator; without one the abstractive stage
                is skipped and truncation is used instead.
        """
        self.settings = settings
        self.generator = generator

    async def perform_abstractive_summarization(self, text: str, max_length: int) -> str:
        """Ask the LLM for a summary of roughly ``max_length / 5`` words.

        Args:
            text: Body text (clipped to 8000 characters for the prompt).
            max_length: Character budget.

        Returns:
            str: Stripped LLM summary (may still exceed ``max_length``).

        Raises:
            RuntimeError: If no generator is configured.
        """
        if self.generator is None:
            raise RuntimeError("No LLM configured for abstractive summarization")

        prompt = ABSTRACTIVE_PROMPT.format(
            target_words=max_length // CHARS_PER_WORD,
            content=text[:ABSTRACTIVE_INPUT_LIMIT],
        )
        options = GenerationOptions(
            model=self.settings.llm_model,
            temperature=ABSTRACTIVE_TEMPERATURE,
            max_tokens=max(1, max_length // CHARS_PER_TOKEN),
        )
        summary = await self.generator.generate(prompt, options)
        return (summary or "").strip()

    async def summarize_if_needed(
        self, message: Message, max_length: int = DEFAULT_MAX_LENGTH
    ) -> EmailSummary:
        """
        Return a body of at most ``max_length`` characters for ``message``.

        Args:
            message: Message whose body may be summarized (not modified).
            max_length: Character budget.

        Returns:
            EmailSummary: Summary; ``was_summarized`` is False when the body
            already fits.
        """
        body = message.body or ""
        if not body or len(body) <= max_length:
            return EmailSummary(
                original_message=message,
                body=body,
                was_summarized=False,
                estimated_tokens=estimate_token_count(body),
            )

        logger.info(
            "Email body length (%s chars) exceeds max (%s). Summarizing...",
            len(body),
            max_length,
        )

        try:
            summary_body = perform_extractive_summarization(body, max_length)
            method = "extractive"

            if not summary_body or len(summary_body) > max_length:
                summary_body = await self.perform_abstractive_summarization(body, max_length)
                if not summary_body:
                    raise ValueError("LLM returned an empty summary")
                method = "abstractive"
                if len(summary_body) > max_length:
                    summary_body = truncate_intelligently(summary_body, max_length)
                    method = "abstractive, truncated"
        except Exception as e:
            logger.warning("Failed to summarize email %s, truncating instead: %s", message.id, e)
            summary_body = truncate_intelligently(body, max_length)
            method = "truncated"

        metadata = f"{len(body)} → {len(summary_body)} chars ({method})"
        logger.debug("Summarized email %s: %s", message.id, metadata)

        return EmailSummary(
            original_message=message,
            body=summary_body,
            was_summarized=True,
            summary_metadata=metadata,
            estimated_tokens=estimate_token_count(summary_body),
        )
