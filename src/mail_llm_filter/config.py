"""Application configuration and settings.

Objective:
    Provide a single source of truth for runtime configuration used across the
    application (Graph auth, Groq, filtering behavior) and for the filter
    configuration snapshot (rules, prompt templates, auto-reply templates).

Responsibilities:
    - Load environment-driven settings via :class:`Settings` (Pydantic
      BaseSettings).
    - Describe the filter configuration file via :class:`FilterConfiguration`.
    - Load and validate that file via :func:`load_filter_configuration`.

High-level call tree:
    - :func:`get_settings` -> returns :class:`Settings`
    - :func:`load_filter_configuration` -> returns :class:`FilterConfiguration`
        - :meth:`FilterConfiguration.find_llm_template`
        - :meth:`FilterConfiguration.find_auto_reply_template`

Operational notes:
    - ``Settings`` loads from ``.env`` by default via ``pydantic-settings``.
    - Rule order in the configuration file is significant and preserved.
    - Most modules accept a ``Settings`` object explicitly to enable testing;
      the orchestrator falls back to :func:`get_settings` when not provided.
"""

import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import AutoReplyTemplate, FilterRule, LlmFilterTemplate

logger = logging.getLogger(__name__)

DEFAULT_FILTERED_LABEL = "Filtered"


class MailConfigurationError(ValueError):
    """Raised when the filter configuration file is missing or invalid."""


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The settings model is intentionally flat and human-editable via `.env`.

    Attributes:
        groq_api_key: Groq API key for LLM access.
        llm_model: Default model for analysis and summarization.
        llm_temperature: Default sampling temperature.
        llm_max_tokens: Default output token budget.
        azure_client_id: Azure AD application client ID.
        azure_tenant_id: Azure AD tenant ID.
        outlook_account_username: Preferred cached MSAL account.
        filter_config_path: Path to the JSON filter configuration.
        filtered_label: Default folder for ``MoveToFolder`` rules.
        max_messages_per_check: Unread messages fetched per batch.
        summarize_max_length: Body length above which bodies are summarized.
        inter_message_delay_seconds: Pause between messages of a batch.
        log_level: Logging level.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Groq Configuration
    groq_api_key: str = Field(default="", description="Groq API key")
    llm_model: str = Field(
        default="llama-3.1-8b-instant", description="Default Groq model name"
    )
    llm_temperature: float = Field(
        default=0.3, ge=0.0, le=2.0, description="Default sampling temperature"
    )
    llm_max_tokens: int = Field(
        default=500, ge=1, description="Default output token budget"
    )

    # Azure AD Configuration
    azure_client_id: str = Field(
        default="", description="Azure AD application client ID"
    )
    azure_tenant_id: str = Field(
        default="consumers", description="Azure AD tenant ID (consumers for personal accounts)"
    )
    outlook_account_username: Optional[str] = Field(
        default=None,
        description=(
            "Preferred Outlook account username to select from the MSAL token cache. "
            "If omitted, the first cached account is used."
        ),
    )

    # Filtering Settings
    filter_config_path: str = Field(
        default="filters.json", description="Path to the JSON filter configuration"
    )
    filtered_label: str = Field(
        default=DEFAULT_FILTERED_LABEL,
        description="Folder used by MoveToFolder rules without a target folder",
    )
    max_messages_per_check: int = Field(
        default=50, ge=1, le=500, description="Unread messages per batch"
    )
    summarize_max_length: int = Field(
        default=3000, ge=1, description="Body length above which bodies are summarized"
    )
    inter_message_delay_seconds: float = Field(
        default=0.1, ge=0.0, description="Pause between messages of a batch"
    )
    log_level: str = Field(default="INFO", description="Logging level")


class FilterConfiguration(BaseModel):
    """
    Snapshot of the user-defined filter configuration.

    Attributes:
        filter_rules: Ordered rules; order decides which rule wins.
        llm_filter_templates: Prompt templates referenced by rules.
        auto_reply_templates: Auto-reply templates referenced by rules.
    """

    filter_rules: list[FilterRule] = Field(default_factory=list, alias="filterRules")
    llm_filter_templates: list[LlmFilterTemplate] = Field(
        default_factory=list, alias="llmFilterTemplates"
    )
    auto_reply_templates: list[AutoReplyTemplate] = Field(
        default_factory=list, alias="autoReplyTemplates"
    )

    model_config = ConfigDict(populate_by_name=True)

    def find_llm_template(self, template_id: Optional[str]) -> Optional[LlmFilterTemplate]:
        """Look up a prompt template by id.

        Args:
            template_id: Template id (may be None or blank).

        Returns:
            Optional[LlmFilterTemplate]: Matching template, or None.
        """
        if not template_id or not template_id.strip():
            return None
        return next((t for t in self.llm_filter_templates if t.id == template_id), None)

    def find_auto_reply_template(
        self, template_id: Optional[str]
    ) -> Optional[AutoReplyTemplate]:
        """Look up an auto-reply template by id.

        Args:
            template_id: Template id (may be None or blank).

        Returns:
            Optional[AutoReplyTemplate]: Matching template, or None.
        """
        if not template_id or not template_id.strip():
            return None
        return next((t for t in self.auto_reply_templates if t.id == template_id), None)


def load_filter_configuration(path: str | Path) -> FilterConfiguration:
    """
    Load the filter configuration from a JSON file.

    Args:
        path: Path to the JSON file.

    Returns:
        FilterConfiguration: Validated configuration.

    Raises:
        MailConfigurationError: If the file is missing or fails validation.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise MailConfigurationError(f"Filter configuration not found: {config_path}")

    try:
        config = FilterConfiguration.model_validate_json(
            config_path.read_text(encoding="utf-8")
        )
    except ValidationError as e:
        raise MailConfigurationError(
            f"Invalid filter configuration in {config_path}: {e}"
        ) from e

    logger.debug(
        "Loaded %s rules, %s LLM templates, %s auto-reply templates from %s",
        len(config.filter_rules),
        len(config.llm_filter_templates),
        len(config.auto_reply_templates),
        config_path,
    )
    return config


def get_settings() -> Settings:
    """
    Load and return application settings.

    This helper is a convenience for production code. For tests, you typically
    construct a :class:`Settings` instance directly or pass a mocked settings
    object.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
