"""LLM-based semantic analysis of emails.

Objective:
    Convert a (message, rule) pair into a structured
    :class:`src.mail_llm_filter.models.AnalysisResult` by prompting a Groq
    hosted model and parsing its free-form answer.

Core strategy:
    1. Resolve the prompt and model parameters through
       :class:`src.mail_llm_filter.prompts.TemplateResolver`.
    2. Call Groq chat completions.
    3. Parse the response:
        - take the outermost ``{...}`` span and decode it as JSON;
        - on any failure use a keyword heuristic that cannot fail.

Responsibilities:
    - Never raise across :meth:`GroqLlmService.analyze` /
      :meth:`GroqLlmService.test_template`: transport and model errors become
      a zero-confidence, non-matching result.
    - Provide a readiness probe (:meth:`GroqLlmService.is_available`).
    - Provide raw text generation for the summarizer
      (:meth:`GroqLlmService.generate`).

High-level call tree:
    - :class:`GroqLlmService`
        - :meth:`GroqLlmService.analyze`
            - :meth:`TemplateResolver.find_template`
            - :meth:`TemplateResolver.build_prompt_from_template` /
              :meth:`TemplateResolver.build_default_prompt`
            - :meth:`TemplateResolver.resolve_options`
            - :meth:`GroqLlmService._complete`
                - :meth:`GroqLlmService.generate`
                - :func:`parse_llm_response`
                    - :func:`extract_json_span`
                    - :func:`parse_fallback`
        - :meth:`GroqLlmService.test_template`
        - :meth:`GroqLlmService.is_available`

Operational notes:
    - ``asyncio.CancelledError`` is not an ``Exception`` subclass and is never
      swallowed here; cancelling the caller aborts the in-flight request.
"""

import json
import logging
import math
import re
from typing import Any, Optional

from groq import AsyncGroq

from .config import Settings
from .models import (
    AnalysisResult,
    FilterRule,
    GenerationOptions,
    LlmFilterTemplate,
    Message,
)
from .prompts import TemplateResolver

logger = logging.getLogger(__name__)

# Greedy: first "{" through last "}" across lines.
JSON_SPAN_PATTERN = re.compile(r"\{[\s\S]*\}", re.MULTILINE)

FALLBACK_MATCH_MARKERS = ("match", "yes", "true")
FALLBACK_HIGH_MARKERS = ("high confidence", "definitely")
FALLBACK_LOW_MARKERS = ("low confidence", "maybe")


def extract_json_span(response_text: str) -> Optional[str]:
    """Return the outermost brace span of ``response_text``, if any.

    Args:
        response_text: Raw model response.

    Returns:
        Optional[str]: Candidate JSON text, or None.
    """
    match = JSON_SPAN_PATTERN.search(response_text or "")
    return match.group(0) if match else None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item.strip()]


def _clamp(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def parse_fallback(response_text: str) -> AnalysisResult:
    """Heuristic parse for responses without usable JSON.

    Rules (on the lowercased text):
        - match if it contains "match", "yes" or "true";
        - confidence 0.9 for "high confidence"/"definitely", 0.3 for
          "low confidence"/"maybe", else 0.5;
        - the reason is the raw text.

    Args:
        response_text: Raw model response.

    Returns:
        AnalysisResult: Heuristic result.
    """
    text = response_text or ""
    lowered = text.lower()

    is_match = any(marker in lowered for marker in FALLBACK_MATCH_MARKERS)

    confidence = 0.5
    if any(marker in lowered for marker in FALLBACK_HIGH_MARKERS):
        confidence = 0.9
    elif any(marker in lowered for marker in FALLBACK_LOW_MARKERS):
        confidence = 0.3

    return AnalysisResult(
        is_match=is_match,
        confidence=confidence,
        reason=text,
        full_response=text,
    )


def parse_llm_response(response_text: str) -> AnalysisResult:
    """
    Parse an LLM response into an :class:`AnalysisResult`.

    Parsing strategy:
        - Extract the outermost ``{...}`` span.
        - Decode it as JSON and read ``match``, ``confidence``, ``reason``,
          ``topics`` and ``mentions``; wrongly-typed fields fall back to
          their defaults and confidence is clamped to [0, 1].
        - Anything else (no span, invalid JSON, non-object) goes through
          :func:`parse_fallback`.

    Args:
        response_text: Raw LLM response.

    Returns:
        AnalysisResult: Parsed result.
    """
    span = extract_json_span(response_text)
    if span is None:
        logger.warning("LLM response had no JSON object; using fallback parser")
        return parse_fallback(response_text)

    try:
        data = json.loads(span)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")

        match = data.get("match")
        confidence = data.get("confidence")
        reason = data.get("reason")

        is_number = isinstance(confidence, (int, float)) and not isinstance(confidence, bool)

        return AnalysisResult(
            is_match=match if isinstance(match, bool) else False,
            confidence=_clamp(float(confidence)) if is_number else 0.0,
            reason=reason if isinstance(reason, str) else "",
            full_response=response_text,
            detected_topics=_string_list(data.get("topics")),
            detected_mentions=_string_list(data.get("mentions")),
        )
    except Exception as e:
        snippet = (response_text or "")[:300].replace("\n", "\\n")
        logger.warning(
            "Failed to parse JSON from LLM response, using fallback (error=%s, snippet=%s)",
            str(e),
            snippet,
        )
        return parse_fallback(response_text)


class GroqLlmService:
    """
    LLM analysis service backed by Groq chat completions.

    Attributes:
        settings: Application settings.
        resolver: Prompt and parameter resolver.
        client: Async Groq API client.
    """

    def __init__(
        self,
        settings: Settings,
        resolver: TemplateResolver,
        client: Optional[AsyncGroq] = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            settings: Application settings with the Groq API key.
            resolver: Prompt resolver bound to the filter configuration.
            client: Pre-built client (tests); created from settings otherwise.
        """
        self.settings = settings
        self.resolver = resolver
        self.client = client or AsyncGroq(api_key=settings.groq_api_key)

    async def generate(self, prompt: str, options: GenerationOptions) -> str:
        """Send a single-turn prompt and return the raw text answer.

        Errors propagate to the caller.

        Args:
            prompt: Prompt text.
            options: Model parameters.

        Returns:
            str: Response text (possibly empty).
        """
        response = await self.client.chat.completions.create(
            model=options.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=options.temperature,
            max_tokens=options.max_tokens,
        )
        return (response.choices[0].message.content or "").strip()

    async def _complete(self, prompt: str, options: GenerationOptions) -> AnalysisResult:
        try:
            response_text = await self.generate(prompt, options)
        except Exception as e:
            logger.exception("Error analyzing email with LLM (model=%s)", options.model)
            return AnalysisResult(
                is_match=False,
                confidence=0.0,
                reason=f"Error: {e}",
                full_response="",
            )

        logger.debug("LLM response: %s", response_text)
        return parse_llm_response(response_text)

    async def analyze(self, message: Message, rule: FilterRule) -> AnalysisResult:
        """
        Analyze ``message`` against ``rule``.

        Args:
            message: Message to analyze (body possibly summarized).
            rule: Rule being evaluated.

        Returns:
            AnalysisResult: Parsed result; never raises for model errors.
        """
        try:
            template = self.resolver.find_template(rule)
            if template is not None:
                prompt = self.resolver.build_prompt_from_template(message, rule, template)
            else:
                prompt = self.resolver.build_default_prompt(message, rule)
            options = self.resolver.resolve_options(template)
        except Exception as e:
            logger.exception("Failed to build prompt for rule %s", rule.name)
            return AnalysisResult(reason=f"Error: {e}")

        logger.debug("Analyzing email %s with rule %s", message.id, rule.name)
        return await self._complete(prompt, options)

    async def test_template(
        self, message: Message, template: LlmFilterTemplate, rule: FilterRule
    ) -> AnalysisResult:
        """
        Run ``template`` against a sample message without side effects.

        Args:
            message: Sample message.
            template: Template under test (need not be in the configuration).
            rule: Rule supplying criteria lists.

        Returns:
            AnalysisResult: Parsed result; never raises for model errors.
        """
        logger.info("Testing LLM template %s with sample email", template.id)
        try:
            prompt = self.resolver.build_prompt_from_template(message, rule, template)
            options = self.resolver.resolve_options(template)
        except Exception as e:
            logger.exception("Failed to build prompt for template %s", template.id)
            return AnalysisResult(reason=f"Error: {e}")

        return await self._complete(prompt, options)

    async def is_available(self) -> bool:
        """Check that the configured default model is listed by the provider.

        Returns:
            bool: True when the model is available.
        """
        try:
            models = await self.client.models.list()
        except Exception as e:
            logger.warning("LLM service not available: %s", e)
            return False

        model_ids = {m.id for m in (getattr(models, "data", None) or [])}
        available = self.settings.llm_model in model_ids
        if not available:
            logger.warning(
                "Configured model %s not offered by provider (%s models listed)",
                self.settings.llm_model,
                len(model_ids),
            )
        return available
