"""FastAPI dependency injection helpers.

Extracts shared dependencies from app.state for use in route handlers.
The engine is created during the FastAPI lifespan (or passed to
create_app) and shared by every request.

Usage:
    from tradeflow.web.dependencies import get_engine

    @router.get("/api/categories")
    def categories(engine: DeploymentEngine = Depends(get_engine)):
        return engine.loader.available()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import HTTPException, Request

if TYPE_CHECKING:
    from tradeflow.engine.deployment import DeploymentEngine


def get_engine(request: Request) -> DeploymentEngine:
    """Get the shared DeploymentEngine from app state."""
    engine = request.app.state.engine
    if engine is None:
        raise HTTPException(status_code=503, detail="Deployment engine not available")
    return engine

