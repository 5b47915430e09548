"""
Tests for action dispatch and auto-replies.
"""

import asyncio

import pytest

from src.mail_llm_filter.actions import ActionDispatcher, render_auto_reply
from src.mail_llm_filter.config import FilterConfiguration
from src.mail_llm_filter.models import (
    AutoReplyTemplate,
    FilterAction,
    FilterOutcome,
    FilterRule,
)


@pytest.fixture
def reply_template():
    return AutoReplyTemplate(
        id="ack",
        subject="Re: {originalSubject}",
        body="Hi {sender}, thanks for '{originalSubject}'.",
        include_original=True,
    )


@pytest.fixture
def config(reply_template):
    return FilterConfiguration(auto_reply_templates=[reply_template])


def _outcome(message):
    return FilterOutcome(message_id=message.id, subject=message.subject)


def _run(dispatcher, message, rule):
    outcome = _outcome(message)
    asyncio.run(dispatcher.execute(message, rule, outcome))
    return outcome


@pytest.mark.parametrize(
    "action, call, description",
    [
        (FilterAction.DELETE, "delete_message", "Deleted message"),
        (FilterAction.MARK_AS_READ, "mark_as_read", "Marked as read"),
        (FilterAction.ARCHIVE, "archive_message", "Archived"),
        (FilterAction.MARK_AS_SPAM, "mark_as_spam", "Marked as spam"),
    ],
)
def test_single_backend_call_per_action(make_mail, config, message, action, call, description):
    mail = make_mail()
    dispatcher = ActionDispatcher(mail, config)

    outcome = _run(dispatcher, message, FilterRule(name="r", action=action))

    assert mail.calls == [(call, "msg-1")]
    assert outcome.action_taken is True
    assert outcome.action_description == description
    assert outcome.error is None


def test_move_to_target_folder(make_mail, config, message):
    mail = make_mail()
    rule = FilterRule(name="r", action=FilterAction.MOVE_TO_FOLDER, target_folder="Newsletters/Galloway")

    outcome = _run(ActionDispatcher(mail, config), message, rule)

    assert mail.calls == [("move_to_folder", "msg-1", "Newsletters/Galloway")]
    assert outcome.action_description == "Moved to folder: Newsletters/Galloway"


def test_move_without_target_uses_filtered_label(make_mail, config, message):
    mail = make_mail()
    rule = FilterRule(name="r", action=FilterAction.MOVE_TO_FOLDER)

    _run(ActionDispatcher(mail, config, filtered_label="Auto"), message, rule)
    _run(ActionDispatcher(mail, config, filtered_label=None), message, rule)

    assert mail.calls == [
        ("move_to_folder", "msg-1", "Auto"),
        ("move_to_folder", "msg-1", "Filtered"),
    ]


def test_render_auto_reply(reply_template, message):
    subject, body = render_auto_reply(reply_template, message)

    assert subject == "Re: Winner notification"
    assert body == (
        "Hi Lottery Desk, thanks for 'Winner notification'."
        "\n\n--- Original Message ---\nURGENT: CLAIM YOUR PRIZE"
    )


def test_render_auto_reply_without_original(message):
    template = AutoReplyTemplate(id="t", subject="Thanks", body="Hi {sender}")
    assert render_auto_reply(template, message) == ("Thanks", "Hi Lottery Desk")


def test_auto_reply_sent_after_action(make_mail, config, message):
    mail = make_mail()
    rule = FilterRule(name="r", action=FilterAction.ARCHIVE, auto_reply_template_id="ack")

    outcome = _run(ActionDispatcher(mail, config), message, rule)

    assert [c[0] for c in mail.calls] == ["archive_message", "send_reply"]
    assert mail.calls[1][2] == "Re: Winner notification"
    assert outcome.action_description == "Archived + Auto-reply sent"


def test_unknown_auto_reply_template_is_skipped(make_mail, config, message):
    mail = make_mail()
    rule = FilterRule(name="r", action=FilterAction.ARCHIVE, auto_reply_template_id="missing")

    outcome = _run(ActionDispatcher(mail, config), message, rule)

    assert [c[0] for c in mail.calls] == ["archive_message"]
    assert outcome.error is None
    assert outcome.action_description == "Archived"


def test_action_failure_does_not_block_auto_reply(make_mail, config, message):
    mail = make_mail()
    mail.fail_on = {"archive_message"}
    rule = FilterRule(name="r", action=FilterAction.ARCHIVE, auto_reply_template_id="ack")

    outcome = _run(ActionDispatcher(mail, config), message, rule)

    assert outcome.action_taken is False
    assert outcome.error == "Action error: archive_message failed"
    assert [c[0] for c in mail.calls] == ["archive_message", "send_reply"]


def test_auto_reply_failure_keeps_action(make_mail, config, message):
    mail = make_mail()
    mail.fail_on = {"send_reply"}
    rule = FilterRule(name="r", action=FilterAction.DELETE, auto_reply_template_id="ack")

    outcome = _run(ActionDispatcher(mail, config), message, rule)

    assert outcome.action_taken is True
    assert outcome.action_description == "Deleted message"
    assert outcome.error == "Auto-reply error: send_reply failed"


def test_both_failures_are_joined(make_mail, config, message):
    mail = make_mail()
    mail.fail_on = {"delete_message", "send_reply"}
    rule = FilterRule(name="r", action=FilterAction.DELETE, auto_reply_template_id="ack")

    outcome = _run(ActionDispatcher(mail, config), message, rule)

    assert outcome.error == (
        "Action error: delete_message failed; Auto-reply error: send_reply failed"
    )


def test_dry_run_makes_no_backend_calls(make_mail, config, message):
    mail = make_mail()
    rule = FilterRule(name="r", action=FilterAction.DELETE, auto_reply_template_id="ack")

    outcome = _run(ActionDispatcher(mail, config, dry_run=True), message, rule)

    assert mail.calls == []
    assert outcome.action_taken is False
    assert outcome.action_description == "DRY RUN - would have: Deleted message"
