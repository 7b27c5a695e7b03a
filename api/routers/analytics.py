from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.middleware.auth import require_role


router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/dashboard")
async def dashboard_metrics(request: Request, _role: str = Depends(require_role("SUPERVISOR", "ADMIN"))):
    orchestrator = request.app.state.orchestrator
    metrics = await orchestrator.analytics_tools.dashboard_metrics()
    return {
        **metrics,
        "summary_cache_size": len(orchestrator.summaries.cache),
        "llm": {"provider": orchestrator.llm.provider, "model": orchestrator.llm.model, "available": orchestrator.llm.available()},
    }
