"""Mail LLM Filter package.

Objective:
    Classify incoming email against an ordered list of user-defined rules and
    apply the first matching rule's action:
    - Deterministic keyword/mention scoring.
    - LLM semantic analysis (Groq) with a resilient response parser.
    - Fixed-weight confidence fusion and first-match-wins evaluation.
    - Action dispatch (move, delete, mark read, archive, spam) and auto-replies.

Key modules:
    - :mod:`src.mail_llm_filter.filter_engine`:
        Per-message rule loop and batch processing.
    - :mod:`src.mail_llm_filter.scoring`:
        Keyword scoring and confidence fusion.
    - :mod:`src.mail_llm_filter.prompts`:
        Default and template-based prompt construction.
    - :mod:`src.mail_llm_filter.llm`:
        Groq calls and response parsing.
    - :mod:`src.mail_llm_filter.actions`:
        Action dispatch and auto-reply templating.
    - :mod:`src.mail_llm_filter.summarizer`:
        Bounding long bodies before they reach the LLM.
    - :mod:`src.mail_llm_filter.graph_mail` / :mod:`src.mail_llm_filter.auth`:
        Microsoft Graph (Outlook) mail backend.
    - :mod:`src.mail_llm_filter.orchestrator`:
        Composition of the pipeline from settings.
    - :mod:`src.mail_llm_filter.cli` / :mod:`src.mail_llm_filter.webapp`:
        User-facing entrypoints.
"""

__version__ = "0.1.0"
