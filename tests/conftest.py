from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence

import pytest

from agents.llm_runtime import LLMCallError, LLMResult, LLMRuntime
from agents.orchestrator import ChatOrchestrator
from compliance.audit_logger import AuditLogger
from memory.summary_cache import SummaryCache
from models.schemas import (
    BusinessSummary,
    Cta,
    CtaType,
    Facts,
    JobId,
    Route,
    TurnContext,
)
from settings import Settings
from tenants.registry import ClientConfig, ClientRegistry
from tools.analytics_tools import AnalyticsTools
from tools.site_summary import SiteSummaryService


class ScriptedLLM(LLMRuntime):
    """Configured-looking runtime that replays canned replies; an exception entry is raised instead."""

    def __init__(self, replies: Sequence[Any] = ()) -> None:
        super().__init__(provider="scripted", model="scripted-test")
        self.replies: List[Any] = list(replies)
        self.calls: List[Dict[str, Any]] = []

    def available(self) -> bool:
        return True

    async def generate(self, system_prompt, messages, response_format="text", temperature=0.2) -> LLMResult:
        self.calls.append({"system_prompt": system_prompt, "messages": list(messages), "response_format": response_format})
        if not self.replies:
            raise LLMCallError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return LLMResult(text=reply, provider="scripted", model="scripted-test", raw={})


@pytest.fixture
def heuristic_llm() -> LLMRuntime:
    return LLMRuntime(provider="heuristic")


@pytest.fixture
def scripted_llm():
    return ScriptedLLM


@pytest.fixture
def audit_logger(tmp_path) -> AuditLogger:
    return AuditLogger(path=str(tmp_path / "audit.log.jsonl"))


@pytest.fixture
def analytics_tools(tmp_path) -> AnalyticsTools:
    return AnalyticsTools(path=str(tmp_path / "events.log.jsonl"))


@pytest.fixture
def demo_client() -> ClientConfig:
    return ClientConfig(
        client_id="demo",
        allowed_origins=("https://demo.example.com",),
        booking_url_override="https://demo.example.com/book",
    )


@pytest.fixture
def clients_file(tmp_path):
    path = tmp_path / "clients.json"
    path.write_text(
        json.dumps(
            {
                "demo": {
                    "allowedOrigins": ["https://demo.example.com"],
                    "bookingUrlOverride": "https://demo.example.com/book",
                    "contactUrlOverride": "https://demo.example.com/contact",
                    "escalateUrlOverride": "https://demo.example.com/help",
                },
                "no-origins": {"allowedOrigins": []},
                "no-booking": {
                    "allowedOrigins": ["https://nobook.example.com"],
                    "jobDisables": {"JOB_2_EXECUTE_BOOKING": True},
                },
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def client_registry(clients_file) -> ClientRegistry:
    return ClientRegistry(path=clients_file)


@pytest.fixture
def make_orchestrator(heuristic_llm, audit_logger, analytics_tools):
    def _make(llm: LLMRuntime | None = None, settings: Settings | None = None) -> ChatOrchestrator:
        return ChatOrchestrator(
            llm=llm or heuristic_llm,
            summaries=SiteSummaryService(llm=LLMRuntime(provider="heuristic"), cache=SummaryCache()),
            analytics_tools=analytics_tools,
            audit_logger=audit_logger,
            settings=settings or Settings(debug=True),
        )

    return _make


@pytest.fixture
def make_turn():
    def _make(
        message: str,
        facts: Facts | None = None,
        job: JobId = JobId.CONVERT_VISITOR,
        cta_type: CtaType = CtaType.BOOK_NOW,
        cta_url: str | None = None,
        summary: BusinessSummary | None = None,
    ) -> TurnContext:
        return TurnContext(
            message=message,
            route=Route(job=job, facts=facts or Facts(), cta=Cta(type=cta_type)),
            business_summary=summary or BusinessSummary(),
            cta_url=cta_url,
            client_id="demo",
            conversation_id="conv-test",
        )

    return _make
