"""Web routes for the deployment engine.

api_router: JSON endpoints (health, categories, deploy).

Engine errors are not caught here; the exception handler registered in
app.py maps each typed error to its HTTP status.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from tradeflow import __version__
from tradeflow.engine.deployment import DeploymentEngine
from tradeflow.web.dependencies import get_engine

api_router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic models for API input validation
# ---------------------------------------------------------------------------


class DeployRequest(BaseModel):
    """Request body for building a deployment."""

    categories: list[str] = Field(description="Category ids, display names or aliases")
    context: dict[str, Any] = Field(description="Runtime context (business, team, folder_ids)")
    template: str | None = Field(default=None, description="Template file name")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@api_router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "version": __version__}


@api_router.get("/api/categories")
def list_categories(engine: DeploymentEngine = Depends(get_engine)) -> list[dict[str, Any]]:
    """Selectable categories with their versions and aliases."""
    return [
        {
            "id": entry.category,
            "display_name": entry.display_name,
            "version": entry.version,
            "aliases": list(entry.aliases),
        }
        for entry in engine.loader.available()
    ]


@api_router.post("/api/deploy")
def deploy(
    body: DeployRequest,
    engine: DeploymentEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Build the deployable document for one client.

    The context is validated by the engine so that a malformed context is
    reported like any other caller error.
    """
    deployable = engine.build(body.categories, body.context, template=body.template)
    return {
        "template": deployable.template_name,
        "document": deployable.document,
    }
