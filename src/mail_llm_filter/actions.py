"""Action dispatch for matched rules.

Objective:
    Apply the side effect configured on a matched rule (move, delete, mark as
    read, archive, mark as spam) through the mail backend, then send the
    optional auto-reply.

Error handling:
    - The primary action and the auto-reply are attempted independently; a
      failure of one does not prevent the other.
    - Failures are recorded on the :class:`FilterOutcome` (``error``) and are
      never retried or rolled back.
    - A rule pointing at an unknown auto-reply template is logged and skipped
      without recording an error.

High-level call tree:
    - :class:`ActionDispatcher`
        - :meth:`ActionDispatcher.execute`
            - :meth:`ActionDispatcher._apply_action`
            - :meth:`ActionDispatcher.send_auto_reply`
                - :func:`render_auto_reply`
"""

import logging
from typing import Awaitable, Callable, Optional

from .config import DEFAULT_FILTERED_LABEL, FilterConfiguration
from .models import AutoReplyTemplate, FilterAction, FilterOutcome, FilterRule, Message
from .ports import MailService

logger = logging.getLogger(__name__)

ORIGINAL_MESSAGE_SEPARATOR = "\n\n--- Original Message ---\n"


def render_auto_reply(template: AutoReplyTemplate, message: Message) -> tuple[str, str]:
    """Fill an auto-reply template for ``message``.

    Args:
        template: Auto-reply template.
        message: Message being answered.

    Returns:
        tuple[str, str]: Rendered subject and body.
    """
    subject = template.subject.replace("{originalSubject}", message.subject)
    body = template.body.replace("{sender}", message.sender_display).replace(
        "{originalSubject}", message.subject
    )
    if template.include_original:
        body += ORIGINAL_MESSAGE_SEPARATOR + message.body
    return subject, body


def _join_errors(existing: Optional[str], new: str) -> str:
    return f"{existing}; {new}" if existing else new


class ActionDispatcher:
    """
    Maps a rule's action to one mail backend call.

    Attributes:
        mail: Mail backend.
        filter_config: Filter configuration (auto-reply templates).
        filtered_label: Default folder for ``MoveToFolder`` rules.
        dry_run: Describe actions without calling the backend.
    """

    def __init__(
        self,
        mail: MailService,
        filter_config: FilterConfiguration,
        filtered_label: Optional[str] = DEFAULT_FILTERED_LABEL,
        dry_run: bool = False,
    ) -> None:
        self.mail = mail
        self.filter_config = filter_config
        self.filtered_label = filtered_label or DEFAULT_FILTERED_LABEL
        self.dry_run = dry_run

    def _plan(
        self, message: Message, rule: FilterRule
    ) -> tuple[Callable[[], Awaitable[None]], str]:
        """Return the backend call and its description for ``rule.action``."""
        if rule.action == FilterAction.MOVE_TO_FOLDER:
            folder = rule.target_folder or self.filtered_label
            return (
                lambda: self.mail.move_to_folder(message.id, folder),
                f"Moved to folder: {folder}",
            )

        table: dict[FilterAction, tuple[Callable[[str], Awaitable[None]], str]] = {
            FilterAction.DELETE: (self.mail.delete_message, "Deleted message"),
            FilterAction.MARK_AS_READ: (self.mail.mark_as_read, "Marked as read"),
            FilterAction.ARCHIVE: (self.mail.archive_message, "Archived"),
            FilterAction.MARK_AS_SPAM: (self.mail.mark_as_spam, "Marked as spam"),
        }
        call, description = table[rule.action]
        return (lambda: call(message.id)), description

    async def _apply_action(
        self, message: Message, rule: FilterRule, outcome: FilterOutcome
    ) -> None:
        try:
            call, description = self._plan(message, rule)
            if self.dry_run:
                outcome.action_description = f"DRY RUN - would have: {description}"
                return
            await call()
            outcome.action_taken = True
            outcome.action_description = description
            logger.info("Action taken on message %s: %s", message.id, description)
        except Exception as e:
            logger.exception("Error taking action on message %s", message.id)
            outcome.error = _join_errors(outcome.error, f"Action error: {e}")

    async def send_auto_reply(self, message: Message, template_id: str) -> bool:
        """
        Send the auto-reply ``template_id`` for ``message``.

        Args:
            message: Message being answered.
            template_id: Auto-reply template id.

        Returns:
            bool: True if a reply was sent, False if the template is unknown
            (or in dry-run mode).

        Raises:
            Exception: Whatever the mail backend raises while sending.
        """
        template = self.filter_config.find_auto_reply_template(template_id)
        if template is None:
            logger.warning("Auto-reply template %s not found", template_id)
            return False

        subject, body = render_auto_reply(template, message)
        if self.dry_run:
            logger.info("DRY RUN - would send auto-reply %s to %s", template_id, message.from_address)
            return False

        await self.mail.send_reply(message.id, subject, body)
        logger.info(
            "Sent auto-reply to %s using template %s", message.from_address, template_id
        )
        return True

    async def execute(
        self, message: Message, rule: FilterRule, outcome: FilterOutcome
    ) -> FilterOutcome:
        """
        Apply ``rule``'s action to ``message`` and record it on ``outcome``.

        Args:
            message: The original (unsummarized) message.
            rule: The matched rule.
            outcome: Outcome updated in place.

        Returns:
            FilterOutcome: The same outcome, for chaining.
        """
        await self._apply_action(message, rule, outcome)

        if rule.auto_reply_template_id and rule.auto_reply_template_id.strip():
            try:
                if await self.send_auto_reply(message, rule.auto_reply_template_id):
                    outcome.action_description = (
                        outcome.action_description or ""
                    ) + " + Auto-reply sent"
            except Exception as e:
                logger.exception("Error sending auto-reply for message %s", message.id)
                outcome.error = _join_errors(outcome.error, f"Auto-reply error: {e}")

        return outcome
