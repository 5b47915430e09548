"""Command-line interface (CLI) entrypoint.

Objective:
    Provide a human-friendly CLI wrapper around
    :class:`src.mail_llm_filter.orchestrator.MailFilterOrchestrator`.

Responsibilities:
    - Parse arguments (command, limit, dry-run, verbosity).
    - Configure logging (including suppressing noisy HTTP request logs).
    - Invoke the orchestrator and print a readable summary of results.

Commands:
    - ``run`` (default): filter one batch of unread messages.
    - ``check``: verify the configured LLM model is available.
    - ``test-template``: run an LLM template against a sample subject/body.

High-level call tree:
    - :func:`main`
        - :func:`setup_logging`
            - installs :class:`_HttpxRequestInfoToDebugFilter`
        - instantiate :class:`MailFilterOrchestrator`
        - ``asyncio.run`` of :meth:`MailFilterOrchestrator.run` /
          :meth:`~MailFilterOrchestrator.check_llm` /
          :meth:`~MailFilterOrchestrator.test_template`
        - :func:`print_outcomes` / :func:`print_analysis`
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from .config import get_settings
from .models import AnalysisResult, FilterOutcome, Message
from .orchestrator import MailFilterOrchestrator


class _HttpxRequestInfoToDebugFilter(logging.Filter):
    """Filter to suppress noisy httpx "HTTP Request:" INFO logs.

    The Groq SDK logs each HTTP request at INFO level through httpx. This
    filter hides those messages unless the root logger is in DEBUG mode.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        if record.name.startswith("httpx") and msg.startswith("HTTP Request:"):
            return logging.getLogger().isEnabledFor(logging.DEBUG)
        return True


def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    root_logger = logging.getLogger()
    downgrade_filter = _HttpxRequestInfoToDebugFilter()
    for handler in root_logger.handlers:
        handler.addFilter(downgrade_filter)


def print_outcomes(outcomes: list[FilterOutcome], verbose: bool = False) -> None:
    """
    Print filter outcomes to console, grouped by matched rule.

    Args:
        outcomes: List of FilterOutcome objects.
        verbose: If True, print reasons and summarization notes.
    """
    if not outcomes:
        print("\nNo messages processed.")
        return

    print(f"\n{'='*60}")
    print(f"FILTER RESULTS: {len(outcomes)} messages")
    print(f"{'='*60}\n")

    by_rule: dict[str, list[FilterOutcome]] = {}
    for outcome in outcomes:
        key = outcome.matched_rule.name if outcome.matched_rule else "(no match)"
        by_rule.setdefault(key, []).append(outcome)

    for rule_name, items in sorted(by_rule.items()):
        print(f"\n{rule_name} ({len(items)} messages)")
        print("-" * 40)

        for item in items:
            status = "ERR" if item.error else ("OK " if item.is_match else "-- ")
            subject = item.subject[:50] + "..." if len(item.subject) > 50 else item.subject

            prefix = ""
            if item.received_at:
                prefix += f"[{item.received_at.strftime('%m-%d')}] "
            if item.sender:
                prefix += f"{item.sender} "

            action = f" -> {item.action_description}" if item.action_description else ""
            confidence = f" ({item.confidence:.2f})" if item.is_match else ""

            print(f"  {status} {prefix}{subject}{confidence}{action}")

            if verbose and item.reason:
                print(f"      Reason: {item.reason}")
            if verbose and item.summary_metadata:
                print(f"      Summarized: {item.summary_metadata}")
            if item.error:
                print(f"      Error: {item.error}")

    matched = sum(1 for o in outcomes if o.is_match)
    failed = sum(1 for o in outcomes if o.error)

    print(f"\n{'='*60}")
    print(f"SUMMARY: {matched} matched, {len(outcomes) - matched} unmatched, {failed} errors")
    print(f"{'='*60}\n")


def print_analysis(result: AnalysisResult) -> None:
    """Print an LLM analysis result (template testing)."""
    print(f"\nMatch:      {result.is_match}")
    print(f"Confidence: {result.confidence:.2f}")
    print(f"Reason:     {result.reason}")
    if result.detected_topics:
        print(f"Topics:     {', '.join(result.detected_topics)}")
    if result.detected_mentions:
        print(f"Mentions:   {', '.join(result.detected_mentions)}")
    print("\nRaw response:")
    print(result.full_response or "(empty)")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Mail LLM Filter - hybrid keyword/LLM email filtering",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                 Filter unread messages
  %(prog)s run --limit 5 --dry-run         Evaluate 5 messages without acting
  %(prog)s check                           Check the LLM model is available
  %(prog)s test-template spam --subject "WIN" --body "Claim your prize"
        """,
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (defaults to LOG_LEVEL)",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to the filter configuration JSON (overrides FILTER_CONFIG_PATH)",
    )

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Filter one batch of unread messages")
    run_parser.add_argument(
        "--limit",
        "-l",
        type=int,
        default=None,
        help="Maximum number of messages to process",
    )
    run_parser.add_argument(
        "--dry-run",
        "-d",
        action="store_true",
        help="Evaluate rules without applying actions",
    )

    subparsers.add_parser("check", help="Check that the configured LLM model is available")

    test_parser = subparsers.add_parser(
        "test-template", help="Run an LLM template against a sample message"
    )
    test_parser.add_argument("template_id", help="LLM filter template id")
    test_parser.add_argument("--subject", default="", help="Sample subject")
    test_parser.add_argument("--body", default="", help="Sample body")
    test_parser.add_argument("--sender", default="sample@example.com", help="Sample sender")

    return parser


def main(args: Optional[list[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        args: Command line arguments (uses sys.argv if None).

    Returns:
        int: Exit code (0 for success, 1 for error).
    """
    parsed_args = build_parser().parse_args(args)
    command = parsed_args.command or "run"

    settings = get_settings()
    if parsed_args.config:
        settings.filter_config_path = parsed_args.config

    log_level = "DEBUG" if parsed_args.verbose else (parsed_args.log_level or settings.log_level)
    setup_logging(log_level)

    logger = logging.getLogger(__name__)

    try:
        orchestrator = MailFilterOrchestrator(settings=settings)

        if command == "check":
            available = asyncio.run(orchestrator.check_llm())
            print(f"LLM model {settings.llm_model}: {'available' if available else 'NOT available'}")
            return 0 if available else 1

        if command == "test-template":
            sample = Message(
                id="template-test",
                from_address=parsed_args.sender,
                subject=parsed_args.subject,
                body=parsed_args.body,
            )
            result = asyncio.run(orchestrator.test_template(parsed_args.template_id, sample))
            print_analysis(result)
            return 0

        limit = getattr(parsed_args, "limit", None)
        dry_run = getattr(parsed_args, "dry_run", False)

        print("\nStarting Mail LLM Filter...\n")
        if dry_run:
            print("DRY RUN MODE - no actions will be applied\n")

        outcomes = asyncio.run(orchestrator.run(limit=limit, dry_run=dry_run))
        print_outcomes(outcomes, verbose=parsed_args.verbose)

        return 1 if any(o.error for o in outcomes) else 0

    except Exception as e:
        logger.exception("Fatal error")
        print(f"\nError: {e}\n")
        return 1


if __name__ == "__main__":
    sys.exit(main())
