import logging
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.mail_llm_filter import cli
from src.mail_llm_filter.cli import _HttpxRequestInfoToDebugFilter, main, print_outcomes
from src.mail_llm_filter.models import AnalysisResult, FilterOutcome, FilterRule


def test_httpx_request_info_is_downgraded_to_debug() -> None:
    """Ensure httpx request logs are suppressed unless running at DEBUG."""

    record = logging.LogRecord(
        name="httpx",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="HTTP Request: POST https://api.groq.com \"HTTP/1.1 200 OK\"",
        args=(),
        exc_info=None,
    )

    root_logger = logging.getLogger()
    previous_level = root_logger.level

    try:
        root_logger.setLevel(logging.INFO)
        f = _HttpxRequestInfoToDebugFilter()
        assert f.filter(record) is False

        root_logger.setLevel(logging.DEBUG)
        assert f.filter(record) is True
    finally:
        root_logger.setLevel(previous_level)


def test_print_outcomes_groups_by_rule_with_date_and_sender(capsys) -> None:
    """CLI output groups outcomes by rule and includes date, sender and action."""

    outcomes = [
        FilterOutcome(
            message_id="m1",
            subject="You are a winner",
            sender="promo@lottery.example",
            received_at=datetime(2025, 12, 15, 10, 30, 0),
            is_match=True,
            confidence=0.91,
            matched_rule=FilterRule(name="Prize scams"),
            reason="Keyword match: Found keyword 'winner'. LLM analysis: scam",
            action_taken=True,
            action_description="Marked as spam",
            summary_metadata="5000 → 2900 chars (extractive)",
        ),
        FilterOutcome(message_id="m2", subject="Lunch?", sender="bob@example.com"),
        FilterOutcome(message_id="m3", subject="Broken", error="Action error: boom"),
    ]

    print_outcomes(outcomes, verbose=True)

    out = capsys.readouterr().out
    assert "FILTER RESULTS: 3 messages" in out
    assert "Prize scams (1 messages)" in out
    assert "(no match) (2 messages)" in out
    assert "OK  [12-15] promo@lottery.example You are a winner (0.91) -> Marked as spam" in out
    assert "Reason: Keyword match" in out
    assert "Summarized: 5000 → 2900 chars (extractive)" in out
    assert "ERR Broken" in out
    assert "Error: Action error: boom" in out
    assert "SUMMARY: 1 matched, 2 unmatched, 1 errors" in out


def test_print_outcomes_empty(capsys) -> None:
    print_outcomes([])
    assert "No messages processed." in capsys.readouterr().out


@pytest.fixture
def patched_cli(settings):
    orchestrator = MagicMock()
    orchestrator.run = AsyncMock(return_value=[])
    orchestrator.check_llm = AsyncMock(return_value=True)
    orchestrator.test_template = AsyncMock(
        return_value=AnalysisResult(is_match=True, confidence=0.8, reason="looks like spam")
    )

    with patch.object(cli, "get_settings", return_value=settings), patch.object(
        cli, "setup_logging"
    ), patch.object(cli, "MailFilterOrchestrator", return_value=orchestrator) as factory:
        yield factory, orchestrator


def test_main_defaults_to_run(patched_cli) -> None:
    _, orchestrator = patched_cli

    assert main([]) == 0
    orchestrator.run.assert_awaited_once_with(limit=None, dry_run=False)


def test_main_run_options_and_config_override(patched_cli, settings) -> None:
    factory, orchestrator = patched_cli

    assert main(["--config", "other.json", "run", "--limit", "5", "--dry-run"]) == 0

    orchestrator.run.assert_awaited_once_with(limit=5, dry_run=True)
    assert factory.call_args.kwargs["settings"].filter_config_path == "other.json"


def test_main_run_returns_1_when_any_outcome_failed(patched_cli) -> None:
    _, orchestrator = patched_cli
    orchestrator.run.return_value = [FilterOutcome(message_id="m1", error="boom")]

    assert main(["run"]) == 1


def test_main_check(patched_cli, capsys) -> None:
    _, orchestrator = patched_cli

    assert main(["check"]) == 0
    assert "available" in capsys.readouterr().out

    orchestrator.check_llm.return_value = False
    assert main(["check"]) == 1


def test_main_test_template(patched_cli, capsys) -> None:
    _, orchestrator = patched_cli

    code = main(["test-template", "scam-detector", "--subject", "WIN", "--body", "Claim now"])

    assert code == 0
    template_id, sample = orchestrator.test_template.call_args.args
    assert template_id == "scam-detector"
    assert sample.subject == "WIN"
    assert sample.body == "Claim now"
    out = capsys.readouterr().out
    assert "Confidence: 0.80" in out
    assert "looks like spam" in out


def test_main_returns_1_on_fatal_error(patched_cli, capsys) -> None:
    factory, _ = patched_cli
    factory.side_effect = RuntimeError("no config")

    assert main(["run"]) == 1
    assert "Error: no config" in capsys.readouterr().out
