"""Workflow orchestrator.

Objective:
    Compose the filter pipeline from settings and expose the operations used
    by the CLI and the web API:
    1) Authenticate the mail backend
    2) Process one batch of unread messages
    3) Probe LLM availability
    4) Test an LLM template against a sample message (no side effects)

Responsibilities:
    - Load the filter configuration file.
    - Build the concrete collaborators (Graph mail backend, Groq LLM service,
      summarizer, action dispatcher) and the :class:`FilterEngine`.

High-level call tree:
    - :class:`MailFilterOrchestrator`
        - :meth:`MailFilterOrchestrator.run`
            - :meth:`GraphMailService.initialize`
            - :meth:`FilterEngine.process_unread_messages`
        - :meth:`MailFilterOrchestrator.check_llm`
            - :meth:`GroqLlmService.is_available`
        - :meth:`MailFilterOrchestrator.test_template`
            - :meth:`GroqLlmService.test_template`
    - :func:`run_filter` convenience wrapper

Operational notes:
    - The orchestrator does not persist state between runs and does not
      schedule itself; any scheduler can call :meth:`run`.
"""

import logging
from typing import Optional

from .actions import ActionDispatcher
from .auth import GraphAuthenticator
from .config import FilterConfiguration, Settings, get_settings, load_filter_configuration
from .filter_engine import FilterEngine
from .graph_mail import GraphMailService
from .llm import GroqLlmService
from .models import AnalysisResult, FilterOutcome, FilterRule, Message
from .prompts import TemplateResolver
from .summarizer import EmailSummarizer

logger = logging.getLogger(__name__)


class TemplateNotFoundError(LookupError):
    """Raised when a requested LLM filter template id does not exist."""


class MailFilterOrchestrator:
    """
    Wires the filter pipeline together.

    Attributes:
        settings: Application settings.
        filter_config: Filter configuration snapshot.
        auth: Graph API authenticator.
        mail: Outlook mail backend.
        resolver: Prompt resolver.
        llm: Groq LLM service.
        summarizer: Body summarizer.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        filter_config: Optional[FilterConfiguration] = None,
        interactive_auth: bool = True,
    ) -> None:
        """
        Initialize orchestrator with all components.

        Args:
            settings: Application settings (loads from env if None).
            filter_config: Filter configuration (loads
                ``settings.filter_config_path`` if None).
            interactive_auth: Whether device-code auth may prompt on stdout.
        """
        self.settings = settings or get_settings()
        self.filter_config = filter_config or load_filter_configuration(
            self.settings.filter_config_path
        )

        self.auth = GraphAuthenticator(self.settings, interactive=interactive_auth)
        self.mail = GraphMailService(self.settings, self.auth)
        self.resolver = TemplateResolver(self.settings, self.filter_config)
        self.llm = GroqLlmService(self.settings, self.resolver)
        self.summarizer = EmailSummarizer(self.settings, self.llm)

    def build_engine(self, dry_run: bool = False) -> FilterEngine:
        """Create a :class:`FilterEngine` bound to this orchestrator's collaborators.

        Args:
            dry_run: If True, matched actions are described but not applied.

        Returns:
            FilterEngine: Engine instance.
        """
        dispatcher = ActionDispatcher(
            self.mail,
            self.filter_config,
            filtered_label=self.settings.filtered_label,
            dry_run=dry_run,
        )
        return FilterEngine(
            filter_config=self.filter_config,
            llm=self.llm,
            mail=self.mail,
            dispatcher=dispatcher,
            summarizer=self.summarizer,
            summarize_max_length=self.settings.summarize_max_length,
            max_messages_per_check=self.settings.max_messages_per_check,
            inter_message_delay=self.settings.inter_message_delay_seconds,
        )

    async def run(
        self, limit: Optional[int] = None, dry_run: bool = False
    ) -> list[FilterOutcome]:
        """Authenticate and filter one batch of unread messages.

        Args:
            limit: Maximum messages (uses settings default if None).
            dry_run: If True, evaluate rules without applying actions.

        Returns:
            list[FilterOutcome]: One outcome per processed message.
        """
        logger.info(
            "Starting mail filter run (limit=%s, rules=%s, dry_run=%s)",
            limit or self.settings.max_messages_per_check,
            len(self.filter_config.filter_rules),
            dry_run,
        )

        if not self.mail.is_authenticated:
            await self.mail.initialize()

        engine = self.build_engine(dry_run=dry_run)
        return await engine.process_unread_messages(limit)

    async def check_llm(self) -> bool:
        """Return True when the configured model is available."""
        return await self.llm.is_available()

    async def test_template(
        self, template_id: str, message: Message, rule: Optional[FilterRule] = None
    ) -> AnalysisResult:
        """Run a configured LLM template against a sample message.

        Args:
            template_id: Template id from the filter configuration.
            message: Sample message.
            rule: Rule supplying keywords/topics/mentions (defaults to the
                first rule referencing the template, else an empty rule).

        Returns:
            AnalysisResult: Analysis of the sample.

        Raises:
            TemplateNotFoundError: If ``template_id`` is unknown.
        """
        template = self.filter_config.find_llm_template(template_id)
        if template is None:
            raise TemplateNotFoundError(f"LLM template not found: {template_id}")

        if rule is None:
            rule = next(
                (r for r in self.filter_config.filter_rules if r.llm_filter_template_id == template_id),
                FilterRule(name="template-test", llm_filter_template_id=template_id),
            )

        return await self.llm.test_template(message, template, rule)


async def run_filter(limit: Optional[int] = None, dry_run: bool = False) -> list[FilterOutcome]:
    """Convenience wrapper to run one filter batch with default settings.

    Args:
        limit: Maximum messages to process.
        dry_run: If True, evaluate rules without applying actions.

    Returns:
        list[FilterOutcome]: Results for all processed messages.
    """
    orchestrator = MailFilterOrchestrator()
    return await orchestrator.run(limit=limit, dry_run=dry_run)
