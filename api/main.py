from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agents.orchestrator import ChatOrchestrator
from api.middleware.logging import RequestLoggingMiddleware
from api.middleware.rate_limiting import RateLimitMiddleware
from api.routers import analytics, chat, events
from tenants.registry import ClientRegistry


def create_app(
    orchestrator: ChatOrchestrator | None = None,
    client_registry: ClientRegistry | None = None,
    requests_per_minute: int | None = None,
) -> FastAPI:
    app = FastAPI(title="Site Chat Widget Backend", version="0.1.0")
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RateLimitMiddleware, requests_per_minute=requests_per_minute)
    # Origin enforcement happens per client in the routers; CORS only lets the widget's browser call through.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Role"],
    )
    app.state.orchestrator = orchestrator or ChatOrchestrator()
    app.state.client_registry = client_registry or ClientRegistry()

    api_prefix = "/api/v1"
    app.include_router(chat.router, prefix=api_prefix)
    app.include_router(events.router, prefix=api_prefix)
    app.include_router(analytics.router, prefix=api_prefix)

    @app.get("/health")
    async def health():
        orch: ChatOrchestrator = app.state.orchestrator
        return {
            "ok": True,
            "service": "site-chat-widget",
            "llm_provider": orch.llm.provider,
            "llm_model": orch.llm.model,
            "llm_runtime_available": orch.llm.available(),
            "jobs": sorted(job.value for job in orch.handlers),
        }

    return app


app = create_app()
