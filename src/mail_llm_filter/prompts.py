"""Prompt construction for LLM rule analysis.

Objective:
    Build the analysis prompt for a (message, rule) pair and resolve the model
    parameters used to send it.

Core strategy:
    1. If the rule references an LLM filter template that exists, build the
       prompt from the template (system prompt, few-shot examples, rendered
       prompt body, response format).
    2. Otherwise build the default structured prompt. The deprecated
       ``custom_prompt`` is only honored here.

High-level call tree:
    - :class:`TemplateResolver`
        - :meth:`TemplateResolver.build_prompt`
            - :meth:`TemplateResolver.find_template`
            - :meth:`TemplateResolver.build_prompt_from_template`
                - :func:`render_template_body`
            - :meth:`TemplateResolver.build_default_prompt`
        - :meth:`TemplateResolver.resolve_options`

Operational notes:
    - Placeholders are replaced with ``str.replace`` rather than
      ``str.format``: templates routinely contain JSON examples whose braces
      would be treated as format fields.
    - Template overrides are resolved on every call so that a change of the
      global default applies to every template that did not override it.
"""

import logging
from typing import Optional

from .config import FilterConfiguration, Settings
from .models import FilterRule, GenerationOptions, LlmFilterTemplate, Message

logger = logging.getLogger(__name__)

PROMPT_BODY_LIMIT = 1000
TRUNCATION_MARKER = "... [truncated]"
NONE_PLACEHOLDER = "None"

RESPONSE_SCHEMA = """{
  "match": true/false,
  "confidence": 0.0-1.0,
  "reason": "explanation of why it matched or didn't",
  "topics": ["detected", "topics"],
  "mentions": ["detected", "mentions"]
}"""


def truncate_body(body: str, max_length: int = PROMPT_BODY_LIMIT) -> str:
    """Clip a body to ``max_length`` characters and mark the cut.

    Args:
        body: Message body.
        max_length: Number of characters kept.

    Returns:
        str: Body, or its first ``max_length`` characters plus a marker.
    """
    if not body or len(body) <= max_length:
        return body
    return body[:max_length] + TRUNCATION_MARKER


def _criteria(values: list[str], enabled: bool) -> str:
    if enabled and values:
        return ", ".join(values)
    return NONE_PLACEHOLDER


def render_template_body(
    message: Message, rule: FilterRule, template: LlmFilterTemplate
) -> str:
    """Substitute the template placeholders for one message.

    Args:
        message: Message being analyzed.
        rule: Rule supplying keywords, topics and mentions.
        template: Template whose ``prompt_template`` is rendered.

    Returns:
        str: Rendered prompt body.
    """
    replacements = {
        "{from}": message.sender_display,
        "{subject}": message.subject,
        "{body}": truncate_body(message.body),
        "{keywords}": _criteria(rule.keywords, template.requires_keywords),
        "{topics}": _criteria(rule.topics, template.requires_topics),
        "{mentions}": _criteria(rule.mentions, template.requires_mentions),
    }

    rendered = template.prompt_template
    for key, value in replacements.items():
        rendered = rendered.replace(key, value)
    return rendered


class TemplateResolver:
    """
    Builds analysis prompts and resolves per-call model parameters.

    Attributes:
        settings: Application settings (global model defaults).
        filter_config: Filter configuration holding the templates.
    """

    def __init__(self, settings: Settings, filter_config: FilterConfiguration) -> None:
        """
        Initialize the resolver.

        Args:
            settings: Application settings.
            filter_config: Filter configuration snapshot.
        """
        self.settings = settings
        self.filter_config = filter_config

    def find_template(self, rule: FilterRule) -> Optional[LlmFilterTemplate]:
        """Return the template referenced by ``rule``, if it exists.

        A dangling reference is logged and treated as "no template".

        Args:
            rule: Rule to inspect.

        Returns:
            Optional[LlmFilterTemplate]: Template, or None.
        """
        if not rule.llm_filter_template_id:
            return None

        template = self.filter_config.find_llm_template(rule.llm_filter_template_id)
        if template is None:
            logger.warning(
                "LLM template %s referenced by rule %s not found; using default prompt",
                rule.llm_filter_template_id,
                rule.name,
            )
        else:
            logger.debug("Using LLM template %s for rule %s", template.id, rule.name)
        return template

    def build_prompt(self, message: Message, rule: FilterRule) -> str:
        """Build the prompt for ``message`` under ``rule``.

        Args:
            message: Message being analyzed.
            rule: Rule being evaluated.

        Returns:
            str: Prompt text.
        """
        template = self.find_template(rule)
        if template is not None:
            return self.build_prompt_from_template(message, rule, template)
        return self.build_default_prompt(message, rule)

    def build_prompt_from_template(
        self, message: Message, rule: FilterRule, template: LlmFilterTemplate
    ) -> str:
        """
        Build a prompt from a reusable template.

        Layout:
            - system prompt (if any)
            - ``EXAMPLES:`` block with each few-shot example (if any)
            - rendered prompt body
            - ``RESPONSE FORMAT:`` followed by the output format (if any)

        Args:
            message: Message being analyzed.
            rule: Rule supplying criteria lists.
            template: Template to render.

        Returns:
            str: Prompt text.
        """
        lines: list[str] = []

        if template.system_prompt.strip():
            lines.append(template.system_prompt)
            lines.append("")

        if template.examples:
            lines.append("EXAMPLES:")
            for example in template.examples:
                lines.append(f"Example Subject: {example.subject}")
                lines.append(f"Example Body: {example.body}")
                lines.append(f"Expected Result: {example.expected_result}")
                lines.append(f"Explanation: {example.explanation}")
                lines.append("")

        lines.append(render_template_body(message, rule, template))
        lines.append("")

        if template.output_format.strip():
            lines.append("RESPONSE FORMAT:")
            lines.append(template.output_format)

        return "\n".join(lines) + "\n"

    def build_default_prompt(self, message: Message, rule: FilterRule) -> str:
        """
        Build the default structured prompt.

        Only non-empty criteria sections are emitted. The deprecated
        ``custom_prompt`` is appended under ``ADDITIONAL INSTRUCTIONS:``.

        Args:
            message: Message being analyzed.
            rule: Rule being evaluated.

        Returns:
            str: Prompt text.
        """
        lines = [
            "You are an email filter assistant. Analyze the following email and "
            "determine if it matches the filter criteria.",
            "",
            "EMAIL DETAILS:",
            f"From: {message.sender_display}",
            f"Subject: {message.subject}",
            f"Body: {truncate_body(message.body)}",
            "",
            "FILTER CRITERIA:",
        ]

        if rule.keywords:
            lines.append(f"Keywords to match: {', '.join(rule.keywords)}")
        if rule.topics:
            lines.append(f"Topics to match: {', '.join(rule.topics)}")
        if rule.mentions:
            lines.append(f"Mentions to look for: {', '.join(rule.mentions)}")

        if rule.custom_prompt and rule.custom_prompt.strip():
            lines.append("")
            lines.append("ADDITIONAL INSTRUCTIONS:")
            lines.append(rule.custom_prompt)

        lines.append("")
        lines.append("Respond in the following JSON format:")
        lines.append(RESPONSE_SCHEMA)

        return "\n".join(lines) + "\n"

    def resolve_options(
        self, template: Optional[LlmFilterTemplate] = None
    ) -> GenerationOptions:
        """Resolve model parameters: template override, else global default.

        Args:
            template: Template whose overrides apply, if any.

        Returns:
            GenerationOptions: Parameters for this call.
        """
        model = self.settings.llm_model
        temperature = self.settings.llm_temperature
        max_tokens = self.settings.llm_max_tokens

        if template is not None:
            if template.model is not None:
                model = template.model
            if template.temperature is not None:
                temperature = template.temperature
            if template.max_tokens is not None:
                max_tokens = template.max_tokens

        return GenerationOptions(model=model, temperature=temperature, max_tokens=max_tokens)
