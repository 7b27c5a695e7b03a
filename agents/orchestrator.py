from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Iterable, List

from agents.base import BaseAgent
from agents.booking_agent import BookingAgent
from agents.convert_agent import ConvertAgent
from agents.escalation_agent import EscalationAgent
from agents.lead_capture_agent import LeadCaptureAgent
from agents.llm_runtime import LLMRuntime
from agents.router import (
    apply_channel_restrictions,
    apply_cta_click,
    apply_job_disables,
    apply_reminder_override,
    next_signals,
    route_message,
)
from compliance.audit_logger import AuditLogger
from compliance.response_safety_filter import apply_response_safety_filter
from models.schemas import (
    ChatTurnRequest,
    ChatTurnResponse,
    CtaClickRequest,
    JobId,
    JobReply,
    Message,
    Role,
    Signals,
    TurnContext,
)
from settings import SETTINGS, Settings
from tenants.registry import ClientConfig
from tools.analytics_tools import AnalyticsTools
from tools.cta_resolver import resolve_cta
from tools.site_summary import SiteSummaryService


logger = logging.getLogger(__name__)


def sanitize_history(history: Iterable[Any] | None, limit: int | None = None) -> List[Message]:
    """Keep user/assistant entries with non-blank content, stripped, most recent `limit` only."""
    limit = SETTINGS.history_limit if limit is None else limit
    cleaned: List[Message] = []
    for entry in history or []:
        if isinstance(entry, Message):
            role, content = entry.role.value, entry.content
        elif isinstance(entry, dict):
            role, content = entry.get("role"), entry.get("content")
        else:
            continue
        if role not in {Role.USER.value, Role.ASSISTANT.value} or not isinstance(content, str) or not content.strip():
            continue
        cleaned.append(Message(role=Role(role), content=content.strip()))
    return cleaned[-limit:] if limit > 0 else []


class UnservedJobAgent(BaseAgent):
    """Jobs without a widget reply of their own are answered as convert-visitor turns."""

    def __init__(self, job: JobId, delegate: BaseAgent, audit_logger: AuditLogger | None = None) -> None:
        super().__init__(name=f"unserved:{job.value}", audit_logger=audit_logger)
        self.job = job
        self.delegate = delegate

    async def process(self, turn: TurnContext) -> JobReply:
        logger.info("unserved_job_fallback", extra={"job": self.job.value, "conversation_id": turn.conversation_id})
        reply = await self.delegate.process(turn)
        return reply.model_copy(update={"metadata": {**reply.metadata, "served_as": self.delegate.name}})


class ChatOrchestrator(BaseAgent):
    def __init__(
        self,
        llm: LLMRuntime | None = None,
        summaries: SiteSummaryService | None = None,
        analytics_tools: AnalyticsTools | None = None,
        audit_logger: AuditLogger | None = None,
        settings: Settings = SETTINGS,
    ) -> None:
        super().__init__(name="orchestrator", audit_logger=audit_logger)
        self.settings = settings
        self.llm = llm or LLMRuntime()
        self.summaries = summaries or SiteSummaryService()
        self.analytics_tools = analytics_tools or AnalyticsTools()

        convert = ConvertAgent(self.llm, audit_logger=self.audit_logger)
        self.handlers: Dict[JobId, BaseAgent] = {
            JobId.CONVERT_VISITOR: convert,
            JobId.EXECUTE_BOOKING: BookingAgent(self.llm, audit_logger=self.audit_logger),
            JobId.INCREASE_ABV: UnservedJobAgent(JobId.INCREASE_ABV, convert, audit_logger=self.audit_logger),
            JobId.CAPTURE_LEAD: LeadCaptureAgent(audit_logger=self.audit_logger),
            JobId.REFILL_CANCELLATIONS: UnservedJobAgent(JobId.REFILL_CANCELLATIONS, convert, audit_logger=self.audit_logger),
            JobId.RETAIN_REBOOK: UnservedJobAgent(JobId.RETAIN_REBOOK, convert, audit_logger=self.audit_logger),
            JobId.ESCALATION_GATE: EscalationAgent(self.analytics_tools, audit_logger=self.audit_logger),
        }
        missing = [job.value for job in JobId if job not in self.handlers]
        if missing:
            raise RuntimeError(f"no reply handler for jobs: {', '.join(missing)}")

    async def process(self, turn: TurnContext) -> JobReply:
        return await self.handlers[turn.route.job].process(turn)

    async def handle_turn(self, request: ChatTurnRequest, client: ClientConfig) -> ChatTurnResponse:
        message = (request.message or "").strip()
        conversation_id = request.conversation_id or str(uuid.uuid4())
        history = sanitize_history(request.history, self.settings.history_limit)
        lookup = await self.summaries.get_summary(request.site_context, request.meta)

        route = route_message(message, history, request.signals, request.channel)
        route = apply_reminder_override(route, message)
        route = apply_channel_restrictions(route, request.channel)
        route = apply_job_disables(route, client)

        cta = resolve_cta(route.cta.type, client, lookup.summary, self.settings)
        turn = TurnContext(
            message=message,
            history=history,
            route=route,
            business_summary=lookup.summary,
            cta_url=cta.url,
            client_id=client.client_id,
            conversation_id=conversation_id,
            channel=request.channel,
        )
        job_reply, duration_ms = await self.timed(self.process(turn))

        text, filter_reasons, filter_changed = job_reply.text, [], False
        if job_reply.model_generated:
            # The deterministic preamble is kept as is; only the model-written part is filtered.
            filtered = apply_response_safety_filter(job_reply.model_text(), cta.type, cta.url, lookup.summary)
            text = " ".join(part for part in (job_reply.preamble, filtered.text) if part)
            filter_reasons, filter_changed = filtered.reasons, filtered.changed
            if filtered.changed:
                logger.info("safety_filter_rewrote_reply", extra={"conversation_id": conversation_id, "reasons": filtered.reasons})

        await self.analytics_tools.log_event(
            "chat_turn",
            {
                "client_id": client.client_id,
                "conversation_id": conversation_id,
                "job": route.job.value,
                "cta_type": cta.type.value,
                "cta_url": cta.url,
                "cta_source": cta.source,
                "agent": job_reply.agent,
                "safety_filter_changed": filter_changed,
                "duration_ms": duration_ms,
            },
        )

        debug: Dict[str, Any] = {}
        if self.settings.debug:
            debug = {
                "routerBuild": route.router_build,
                "agent": job_reply.agent,
                "ctaSource": cta.source,
                "safetyFilterReasons": filter_reasons,
                "siteKey": lookup.site_key,
                "contextHash": lookup.context_hash,
                "summaryWasCached": lookup.was_cached,
                "summaryConfidence": lookup.summary.confidence,
                "summarySource": lookup.summary.source,
                "contextChars": lookup.summary.context_chars,
                "durationMs": duration_ms,
            }
        return ChatTurnResponse(
            reply=text,
            route=route,
            cta_type=cta.type,
            cta_url=cta.url,
            conversation_id=conversation_id,
            signals=next_signals(request.signals, route),
            debug=debug,
        )

    async def record_cta_click(self, request: CtaClickRequest, client: ClientConfig) -> Signals:
        signals = apply_cta_click(request.signals, request.cta_type)
        await self.analytics_tools.log_event(
            "cta_click",
            {
                "client_id": client.client_id,
                "conversation_id": request.conversation_id,
                "cta_type": request.cta_type.value,
                "job": request.job,
                "page_url": request.page_url,
            },
        )
        return signals

    async def reset_conversation(self, client: ClientConfig, conversation_id: str | None = None) -> Dict[str, Any]:
        await self.analytics_tools.log_event(
            "conversation_reset",
            {"client_id": client.client_id, "conversation_id": conversation_id},
        )
        return {"conversation_id": str(uuid.uuid4()), "signals": Signals(), "history": []}
