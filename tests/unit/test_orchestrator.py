from __future__ import annotations

import asyncio

from agents.escalation_agent import ESCALATION_PARAGRAPHS
from agents.llm_runtime import LLMRuntime
from agents.orchestrator import ChatOrchestrator, sanitize_history
from compliance.audit_logger import AuditLogger
from compliance.response_safety_filter import HOURS_NOT_LISTED, NO_CTA_INSTRUCTION, PRICING_NOT_LISTED
from memory.summary_cache import SummaryCache
from models.schemas import ChatTurnRequest, CtaClickRequest, CtaType, EscalationReason, Facts, JobId, Role, Signals
from settings import Settings
from tenants.registry import ClientConfig
from tools.site_summary import SiteSummaryService


SITE_CONTEXT = {
    "origin": "https://demo.example.com",
    "title": "Demo Spa",
    "navLinks": [{"text": "Contact", "href": "/contact"}],
    "textSample": "Relaxing treatments in town.",
}


def test_every_job_has_a_handler(make_orchestrator):
    orchestrator = make_orchestrator()
    assert set(orchestrator.handlers) == set(JobId)


def test_sanitize_history_drops_noise_and_keeps_recent():
    history = [
        {"role": "system", "content": "ignore me"},
        {"role": "user", "content": "   "},
        "not a dict",
        {"role": "user", "content": 42},
        {"role": "user", "content": "  first  "},
        {"role": "assistant", "content": "second"},
        {"role": "user", "content": "third"},
    ]
    cleaned = sanitize_history(history, limit=2)
    assert [(m.role, m.content) for m in cleaned] == [(Role.ASSISTANT, "second"), (Role.USER, "third")]
    assert sanitize_history(history, limit=10)[0].content == "first"
    assert sanitize_history(None) == []


def test_booking_turn_uses_client_override(make_orchestrator, demo_client, analytics_tools):
    async def _run():
        orchestrator = make_orchestrator()
        request = ChatTurnRequest(message="Can I book tomorrow afternoon?", client_id="demo", site_context=SITE_CONTEXT)
        response = await orchestrator.handle_turn(request, demo_client)
        assert response.route.job == JobId.EXECUTE_BOOKING
        assert response.cta_type == CtaType.CHOOSE_TIME
        assert response.cta_url == "https://demo.example.com/book"
        assert response.reply == "Got it, tomorrow afternoon. You can pick an exact time on the booking page."
        assert response.conversation_id
        assert response.signals.last_job == JobId.EXECUTE_BOOKING.value
        assert response.debug["ctaSource"] == "client_override"
        assert response.debug["siteKey"] == "https://demo.example.com"
        assert response.debug["summaryWasCached"] is False

        again = await orchestrator.handle_turn(
            ChatTurnRequest(message="hello", client_id="demo", conversation_id="conv-1", site_context=SITE_CONTEXT), demo_client
        )
        assert again.conversation_id == "conv-1"
        assert again.debug["summaryWasCached"] is True

        metrics = await analytics_tools.dashboard_metrics()
        assert metrics["events_by_type"]["chat_turn"] == 2

    asyncio.run(_run())


def test_model_reply_passes_through_safety_filter(make_orchestrator, scripted_llm, demo_client):
    async def _run():
        orchestrator = make_orchestrator(llm=scripted_llm(["It's only $99 today!"]))
        response = await orchestrator.handle_turn(ChatTurnRequest(message="what do you recommend?", client_id="demo"), demo_client)
        assert response.route.job == JobId.CONVERT_VISITOR
        assert response.reply == PRICING_NOT_LISTED
        assert response.debug["safetyFilterReasons"] == ["PRICING_WITHOUT_SOURCE"]

    asyncio.run(_run())


def test_booking_acknowledgment_survives_tail_rewrite(make_orchestrator, scripted_llm, demo_client):
    async def _run():
        orchestrator = make_orchestrator(llm=scripted_llm(["Are you open to a morning, afternoon, or evening visit?"]))
        response = await orchestrator.handle_turn(ChatTurnRequest(message="Can I book tomorrow?", client_id="demo"), demo_client)
        assert response.route.job == JobId.EXECUTE_BOOKING
        assert response.reply == f'Got it, tomorrow. {HOURS_NOT_LISTED} Tap "Book now" to choose an available time.'
        assert response.debug["safetyFilterReasons"] == ["HOURS_WITHOUT_SOURCE"]

    asyncio.run(_run())


def test_escalation_is_served_when_audit_write_fails(tmp_path, analytics_tools, demo_client):
    # Pointing the audit sink at a directory makes every write fail.
    orchestrator = ChatOrchestrator(
        llm=LLMRuntime(provider="heuristic"),
        summaries=SiteSummaryService(llm=LLMRuntime(provider="heuristic"), cache=SummaryCache()),
        analytics_tools=analytics_tools,
        audit_logger=AuditLogger(path=str(tmp_path)),
        settings=Settings(debug=True),
    )

    async def _run():
        response = await orchestrator.handle_turn(ChatTurnRequest(message="they threaten me", client_id="demo"), demo_client)
        assert response.route.job == JobId.ESCALATION_GATE
        assert response.route.facts.escalation_reason == EscalationReason.SAFETY
        assert response.reply.startswith(ESCALATION_PARAGRAPHS[EscalationReason.SAFETY])
        metrics = await analytics_tools.dashboard_metrics()
        assert metrics["escalations_by_reason"] == {"SAFETY": 1}

    asyncio.run(_run())


def test_disabled_job_serves_convert(make_orchestrator):
    client = ClientConfig(
        client_id="demo",
        allowed_origins=("https://demo.example.com",),
        job_disables={"JOB_2_EXECUTE_BOOKING": True},
    )

    async def _run():
        orchestrator = make_orchestrator()
        response = await orchestrator.handle_turn(ChatTurnRequest(message="Can I book tomorrow afternoon?", client_id="demo"), client)
        assert response.route.job == JobId.CONVERT_VISITOR
        assert response.cta_type == CtaType.BOOK_NOW
        assert response.cta_url is None
        assert response.debug["agent"] == "convert_agent"

    asyncio.run(_run())


def test_lead_capture_turn_marks_offer(make_orchestrator, demo_client):
    async def _run():
        orchestrator = make_orchestrator()
        response = await orchestrator.handle_turn(ChatTurnRequest(message="no times work for me", client_id="demo"), demo_client)
        assert response.route.job == JobId.CAPTURE_LEAD
        assert response.cta_type == CtaType.LEAVE_CONTACT
        assert response.cta_url is None
        assert response.reply.endswith(NO_CTA_INSTRUCTION)
        assert response.signals.lead_offer_made
        assert response.signals.router_facts.booking_blocked

    asyncio.run(_run())


def test_unserved_job_is_answered_as_convert(make_orchestrator, make_turn):
    async def _run():
        orchestrator = make_orchestrator()
        reply = await orchestrator.process(make_turn("hello", Facts(), job=JobId.INCREASE_ABV))
        assert reply.agent == "convert_agent"
        assert reply.metadata["served_as"] == "convert_agent"

    asyncio.run(_run())


def test_debug_fields_hidden_when_disabled(make_orchestrator, demo_client):
    async def _run():
        orchestrator = make_orchestrator(settings=Settings(debug=False))
        response = await orchestrator.handle_turn(ChatTurnRequest(message="hello", client_id="demo"), demo_client)
        assert response.debug == {}

    asyncio.run(_run())


def test_cta_click_and_reset(make_orchestrator, demo_client, analytics_tools):
    async def _run():
        orchestrator = make_orchestrator()
        signals = await orchestrator.record_cta_click(
            CtaClickRequest(client_id="demo", cta_type=CtaType.BOOK_NOW, signals=Signals(lead_offer_made=True)), demo_client
        )
        assert signals.booking_page_opened
        assert signals.lead_offer_made
        assert signals.last_cta_clicked == "BOOK_NOW"

        reset = await orchestrator.reset_conversation(demo_client, "conv-1")
        assert reset["conversation_id"] != "conv-1"
        assert reset["signals"] == Signals()
        assert reset["history"] == []

        metrics = await analytics_tools.dashboard_metrics()
        assert metrics["cta_clicks_by_type"] == {"BOOK_NOW": 1}

    asyncio.run(_run())
