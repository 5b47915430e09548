"""FastAPI JSON API for Mail LLM Filter.

Objective:
    Expose the pipeline operations over HTTP so that an external scheduler or
    a UI can trigger a batch, probe the LLM, or debug templates. Business
    logic stays in :mod:`src.mail_llm_filter.orchestrator`.

High-level call tree:
    - :func:`create_app`:
        - defines routes:
            - ``GET /health`` -> :func:`health`
            - ``GET /api/llm/status`` -> :func:`llm_status`
            - ``POST /api/run`` -> :func:`run_api`
            - ``POST /api/test-template`` -> :func:`test_template_api`
    - :func:`get_orchestrator`:
        - returns a new :class:`MailFilterOrchestrator` instance.

Operational notes:
    - Device-code authentication cannot be completed from an HTTP request;
      when it is required the API answers 401 with the verification details.
    - For tests, :func:`get_orchestrator` is overridden via
      ``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .auth import DeviceCodeAuthRequired
from .config import get_settings
from .models import Message
from .orchestrator import MailFilterOrchestrator, TemplateNotFoundError


class RunRequest(BaseModel):
    """Body of ``POST /api/run``."""

    limit: Optional[int] = None
    dry_run: bool = False


class TemplateTestRequest(BaseModel):
    """Body of ``POST /api/test-template``."""

    template_id: str
    subject: str = ""
    body: str = ""
    sender: str = "sample@example.com"
    sender_name: Optional[str] = None


def get_orchestrator() -> MailFilterOrchestrator:
    """Create a non-interactive :class:`MailFilterOrchestrator`.

    Returns:
        MailFilterOrchestrator: A new orchestrator instance.
    """
    return MailFilterOrchestrator(settings=get_settings(), interactive_auth=False)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: FastAPI app.
    """

    app = FastAPI(title="Mail LLM Filter")

    @app.get("/health")
    def health() -> dict[str, str]:
        """Liveness check; performs no external calls."""
        return {"status": "ok"}

    @app.get("/api/llm/status")
    async def llm_status(
        orchestrator: MailFilterOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, Any]:
        """Report whether the configured LLM model is available."""
        available = await orchestrator.check_llm()
        return {"model": orchestrator.settings.llm_model, "available": available}

    @app.post("/api/run")
    async def run_api(
        payload: RunRequest,
        orchestrator: MailFilterOrchestrator = Depends(get_orchestrator),
    ) -> Any:
        """Filter one batch of unread messages and return the outcomes.

        Args:
            payload: Batch options.
            orchestrator: Orchestrator dependency.

        Returns:
            Any: Outcomes and a summary, or a 401 payload when authentication
            is required.
        """
        try:
            outcomes = await orchestrator.run(limit=payload.limit, dry_run=payload.dry_run)
        except DeviceCodeAuthRequired as e:
            return JSONResponse(
                {
                    "error": "authentication_required",
                    "verification_uri": e.verification_uri,
                    "user_code": e.user_code,
                    "message": str(e),
                },
                status_code=401,
            )

        return {
            "results": [o.model_dump(mode="json") for o in outcomes],
            "summary": {
                "total": len(outcomes),
                "matched": sum(1 for o in outcomes if o.is_match),
                "actions_taken": sum(1 for o in outcomes if o.action_taken),
                "errors": sum(1 for o in outcomes if o.error),
            },
        }

    @app.post("/api/test-template")
    async def test_template_api(
        payload: TemplateTestRequest,
        orchestrator: MailFilterOrchestrator = Depends(get_orchestrator),
    ) -> Any:
        """Run an LLM template against a sample message (no side effects)."""
        sample = Message(
            id="template-test",
            from_address=payload.sender,
            from_name=payload.sender_name,
            subject=payload.subject,
            body=payload.body,
        )
        try:
            result = await orchestrator.test_template(payload.template_id, sample)
        except TemplateNotFoundError as e:
            return JSONResponse({"error": str(e)}, status_code=404)

        return result.model_dump()

    return app


app = create_app()
