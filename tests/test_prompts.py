"""
Tests for prompt construction and parameter resolution.
"""

import pytest

from src.mail_llm_filter.config import FilterConfiguration
from src.mail_llm_filter.models import (
    FilterRule,
    LlmFilterTemplate,
    Message,
    TemplateExample,
)
from src.mail_llm_filter.prompts import (
    PROMPT_BODY_LIMIT,
    TRUNCATION_MARKER,
    TemplateResolver,
    render_template_body,
    truncate_body,
)


@pytest.fixture
def template():
    return LlmFilterTemplate(
        id="scam-detector",
        name="Scam detector",
        system_prompt="You detect scams.",
        prompt_template=(
            "From: {from}\nSubject: {subject}\nBody: {body}\n"
            "Keywords: {keywords}\nTopics: {topics}\nMentions: {mentions}\n"
            'Answer like {"match": true}'
        ),
        output_format='{"match": bool, "confidence": float}',
        examples=[
            TemplateExample(
                subject="You won!",
                body="Send fees",
                expected_result="match",
                explanation="Advance-fee scam",
            )
        ],
        requires_keywords=True,
        requires_topics=False,
        requires_mentions=True,
    )


@pytest.fixture
def rule():
    return FilterRule(
        name="scams",
        keywords=["prize", "winner"],
        topics=["lottery"],
        mentions=[],
        llm_filter_template_id="scam-detector",
        custom_prompt="Be strict.",
    )


@pytest.fixture
def resolver(settings, template, rule):
    config = FilterConfiguration(filter_rules=[rule], llm_filter_templates=[template])
    return TemplateResolver(settings, config)


def test_truncate_body_keeps_short_bodies():
    assert truncate_body("short") == "short"
    assert truncate_body("") == ""


def test_truncate_body_clips_at_limit():
    body = "x" * (PROMPT_BODY_LIMIT + 50)
    result = truncate_body(body)
    assert result == "x" * PROMPT_BODY_LIMIT + TRUNCATION_MARKER


def test_render_template_body_substitutes_placeholders(message, rule, template):
    rendered = render_template_body(message, rule, template)

    assert "From: Lottery Desk" in rendered
    assert "Subject: Winner notification" in rendered
    assert "Body: URGENT: CLAIM YOUR PRIZE" in rendered
    assert "Keywords: prize, winner" in rendered
    # topics not required by the template, mentions required but empty
    assert "Topics: None" in rendered
    assert "Mentions: None" in rendered
    assert '{"match": true}' in rendered


def test_render_template_body_uses_address_without_display_name(rule, template):
    message = Message(id="m", from_address="x@example.com", subject="s", body="b")
    assert "From: x@example.com" in render_template_body(message, rule, template)


def test_template_prompt_layout(resolver, message, rule, template):
    prompt = resolver.build_prompt(message, rule)

    assert prompt.startswith("You detect scams.\n\nEXAMPLES:\n")
    assert "Example Subject: You won!" in prompt
    assert "Example Body: Send fees" in prompt
    assert "Expected Result: match" in prompt
    assert "Explanation: Advance-fee scam" in prompt
    assert 'RESPONSE FORMAT:\n{"match": bool, "confidence": float}' in prompt
    assert prompt.index("EXAMPLES:") < prompt.index("From: Lottery Desk")
    assert prompt.index("From: Lottery Desk") < prompt.index("RESPONSE FORMAT:")


def test_template_prompt_ignores_custom_prompt(resolver, message, rule):
    assert "Be strict." not in resolver.build_prompt(message, rule)


def test_template_prompt_truncates_long_body(resolver, rule):
    message = Message(id="m", from_address="a@b.c", subject="s", body="y" * 1500)
    prompt = resolver.build_prompt(message, rule)
    assert "y" * PROMPT_BODY_LIMIT + TRUNCATION_MARKER in prompt
    assert "y" * (PROMPT_BODY_LIMIT + 1) not in prompt


def test_missing_template_falls_back_to_default_prompt(resolver, message):
    rule = FilterRule(
        name="dangling",
        keywords=["prize"],
        llm_filter_template_id="does-not-exist",
        custom_prompt="Be strict.",
    )
    prompt = resolver.build_prompt(message, rule)

    assert prompt.startswith("You are an email filter assistant.")
    assert "ADDITIONAL INSTRUCTIONS:\nBe strict." in prompt


def test_default_prompt_sections(resolver, message):
    rule = FilterRule(name="plain", keywords=["prize"], mentions=["Galloway"])
    prompt = resolver.build_default_prompt(message, rule)

    assert "EMAIL DETAILS:\nFrom: Lottery Desk\nSubject: Winner notification\n" in prompt
    assert "Body: URGENT: CLAIM YOUR PRIZE" in prompt
    assert "Keywords to match: prize" in prompt
    assert "Mentions to look for: Galloway" in prompt
    assert "Topics to match" not in prompt
    assert "ADDITIONAL INSTRUCTIONS" not in prompt
    assert "Respond in the following JSON format:" in prompt
    assert '"confidence": 0.0-1.0' in prompt


def test_resolve_options_uses_global_defaults(resolver):
    options = resolver.resolve_options(None)
    assert options.model == "test-model"
    assert options.temperature == 0.3
    assert options.max_tokens == 500


def test_resolve_options_applies_template_overrides(resolver):
    template = LlmFilterTemplate(id="t", model="big-model", max_tokens=50)
    options = resolver.resolve_options(template)
    assert options.model == "big-model"
    assert options.max_tokens == 50
    # not overridden, so it tracks the global default
    assert options.temperature == 0.3


def test_resolve_options_follows_changed_defaults(resolver, template):
    resolver.settings.llm_model = "new-default"
    assert resolver.resolve_options(template).model == "new-default"
