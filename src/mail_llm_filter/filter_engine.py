"""Hybrid rule evaluation for incoming messages.

Objective:
    Decide, for each message, which configured rule (if any) applies, and
    dispatch that rule's action.

Core strategy (per message):
    1. Summarize the body when it exceeds the configured limit; only the LLM
       sees the summarized copy.
    2. For each enabled rule, in configuration order:
        - score keywords/mentions deterministically;
        - ask the LLM (always, even when the keyword score is 0);
        - fuse both confidences (30/70);
        - stop at the first rule whose fused confidence reaches its threshold.
    3. Dispatch the matched rule's action and optional auto-reply.

High-level call tree:
    - :class:`FilterEngine`
        - :meth:`FilterEngine.process_unread_messages`
            - :meth:`MailService.get_unread_messages`
            - :meth:`FilterEngine.filter_message` (one message at a time)
                - :meth:`EmailSummarizer.summarize_if_needed`
                - :func:`src.mail_llm_filter.scoring.score_keywords`
                - :meth:`LlmService.analyze`
                - :func:`src.mail_llm_filter.scoring.combine_confidence`
                - :meth:`ActionDispatcher.execute`

Operational notes:
    - Rules are never reordered or evaluated in parallel: later rules (and
      their LLM calls) only run when earlier ones fail to match.
    - A per-message outcome is always returned. Only a failure to enumerate
      messages ends a batch early, and it still returns (an empty list).
    - Cancelling the task running :meth:`FilterEngine.filter_message` aborts
      the rule loop before any action is taken.
"""

import asyncio
import logging
from typing import Optional

from .actions import ActionDispatcher
from .config import FilterConfiguration
from .models import FilterOutcome, FilterRule, Message
from .ports import LlmService, MailService
from .scoring import combine_confidence, meets_threshold, score_keywords
from .summarizer import DEFAULT_MAX_LENGTH, EmailSummarizer

logger = logging.getLogger(__name__)

DEFAULT_INTER_MESSAGE_DELAY = 0.1
NO_RULE_MATCHED_REASON = "No enabled rule reached its confidence threshold"


class FilterEngine:
    """
    Evaluates ordered rules against messages and dispatches actions.

    This class only depends on ports, so any mail backend or LLM provider can
    be plugged in.

    Attributes:
        filter_config: Filter configuration snapshot.
        llm: LLM analysis service.
        mail: Mail backend.
        dispatcher: Action dispatcher.
        summarizer: Optional body summarizer.
        summarize_max_length: Body length limit for the LLM.
        max_messages_per_check: Batch size for unread messages.
        inter_message_delay: Seconds to wait between messages of a batch.
    """

    def __init__(
        self,
        filter_config: FilterConfiguration,
        llm: LlmService,
        mail: MailService,
        dispatcher: ActionDispatcher,
        summarizer: Optional[EmailSummarizer] = None,
        summarize_max_length: int = DEFAULT_MAX_LENGTH,
        max_messages_per_check: int = 50,
        inter_message_delay: float = DEFAULT_INTER_MESSAGE_DELAY,
    ) -> None:
        self.filter_config = filter_config
        self.llm = llm
        self.mail = mail
        self.dispatcher = dispatcher
        self.summarizer = summarizer
        self.summarize_max_length = summarize_max_length
        self.max_messages_per_check = max_messages_per_check
        self.inter_message_delay = inter_message_delay

    @property
    def enabled_rules(self) -> list[FilterRule]:
        """Enabled rules in configuration order."""
        return [rule for rule in self.filter_config.filter_rules if rule.enabled]

    async def _prepare_for_llm(
        self, message: Message, outcome: FilterOutcome
    ) -> Message:
        if self.summarizer is None:
            return message

        summary = await self.summarizer.summarize_if_needed(
            message, self.summarize_max_length
        )
        if not summary.was_summarized:
            return message

        outcome.summary_metadata = summary.summary_metadata
        logger.info("Message %s body summarized: %s", message.id, summary.summary_metadata)
        return message.model_copy(update={"body": summary.body})

    async def filter_message(self, message: Message) -> FilterOutcome:
        """
        Evaluate enabled rules against ``message`` until one matches.

        Args:
            message: Message to filter (not modified).

        Returns:
            FilterOutcome: Outcome; errors are recorded, not raised.
        """
        outcome = FilterOutcome(
            message_id=message.id,
            subject=message.subject,
            sender=message.from_address,
            received_at=message.received_at,
        )

        try:
            logger.info("Filtering message %s from %s", message.id, message.from_address)
            llm_message = await self._prepare_for_llm(message, outcome)

            for rule in self.enabled_rules:
                logger.debug("Checking rule: %s", rule.name)

                keyword_score = score_keywords(message, rule)
                analysis = await self.llm.analyze(llm_message, rule)
                combined = combine_confidence(keyword_score.confidence, analysis.confidence)

                logger.debug(
                    "Rule %s: keyword=%.2f llm=%.2f combined=%.2f threshold=%.2f",
                    rule.name,
                    keyword_score.confidence,
                    analysis.confidence,
                    combined,
                    rule.confidence_threshold,
                )

                if not meets_threshold(combined, rule):
                    continue

                outcome.is_match = True
                outcome.confidence = combined
                outcome.matched_rule = rule
                outcome.llm_analysis = analysis.full_response
                outcome.reason = (
                    f"Keyword match: {keyword_score.reason}. LLM analysis: {analysis.reason}"
                )

                logger.info(
                    "Message %s matched rule %s with confidence %.2f",
                    message.id,
                    rule.name,
                    combined,
                )

                await self.dispatcher.execute(message, rule, outcome)
                break

            if not outcome.is_match:
                outcome.reason = NO_RULE_MATCHED_REASON
                logger.info("Message %s did not match any rules", message.id)

        except Exception as e:
            logger.exception("Error filtering message %s", message.id)
            outcome.error = str(e)

        return outcome

    async def process_unread_messages(
        self, max_results: Optional[int] = None
    ) -> list[FilterOutcome]:
        """
        Filter one batch of unread messages, one message at a time.

        Args:
            max_results: Batch size (defaults to ``max_messages_per_check``).

        Returns:
            list[FilterOutcome]: One outcome per message; empty when the mail
            backend is unauthenticated or enumeration fails.
        """
        if not self.mail.is_authenticated:
            logger.warning("%s mail service not authenticated", self.mail.provider_name)
            return []

        try:
            messages = await self.mail.get_unread_messages(
                max_results or self.max_messages_per_check
            )
        except Exception:
            logger.exception("Error fetching unread messages")
            return []

        logger.info("Processing %s unread messages", len(messages))

        results: list[FilterOutcome] = []
        for i, message in enumerate(messages):
            if i > 0 and self.inter_message_delay > 0:
                await asyncio.sleep(self.inter_message_delay)
            results.append(await self.filter_message(message))

        matched = sum(1 for r in results if r.is_match)
        logger.info(
            "Processed %s messages: %s matched, %s unmatched",
            len(results),
            matched,
            len(results) - matched,
        )
        return results
