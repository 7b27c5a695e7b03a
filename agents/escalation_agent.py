from __future__ import annotations

import logging
from typing import Dict

from agents.base import BaseAgent
from compliance.audit_logger import AuditLogger
from compliance.response_safety_filter import safe_cta_instruction
from models.schemas import CtaType, EscalationReason, JobReply, TurnContext
from tools.analytics_tools import AnalyticsTools


logger = logging.getLogger(__name__)

ESCALATION_PARAGRAPHS: Dict[EscalationReason, str] = {
    EscalationReason.SAFETY: (
        "I'm sorry you're dealing with this. If you or anyone else is in immediate danger, please contact local "
        "emergency services right away. A member of the team should handle the rest directly."
    ),
    EscalationReason.LEGAL_DISPUTE: (
        "I understand this is a billing or legal concern. I'm not able to resolve disputes in chat, so a member "
        "of the team needs to review it."
    ),
    EscalationReason.MEDICAL: (
        "I'm not able to give medical advice. Please check with a qualified healthcare provider, and the team can "
        "answer questions about the services themselves."
    ),
    EscalationReason.PRIVACY_REQUEST: (
        "Privacy and data requests are handled by the team directly so they can verify and process them properly."
    ),
    EscalationReason.STAFF_COMPLAINT: (
        "I'm sorry about your experience. This should go straight to the team so it gets the attention it deserves."
    ),
}


class EscalationAgent(BaseAgent):
    def __init__(self, analytics_tools: AnalyticsTools, audit_logger: AuditLogger | None = None) -> None:
        super().__init__(name="escalation_agent", audit_logger=audit_logger)
        self.analytics_tools = analytics_tools

    async def process(self, turn: TurnContext) -> JobReply:
        reason = turn.facts.escalation_reason or EscalationReason.STAFF_COMPLAINT
        record = self.audit_logger.log_escalation(
            reason=reason,
            message=turn.message,
            conversation_id=turn.conversation_id,
            client_id=turn.client_id,
        )
        await self.analytics_tools.log_event(
            "escalation",
            {
                "reason": reason.value,
                "conversation_id": turn.conversation_id,
                "client_id": turn.client_id,
                "message_fingerprint": record.message_fingerprint,
            },
        )
        logger.warning(
            "escalation_gate_triggered",
            extra={"reason": reason.value, "conversation_id": turn.conversation_id, "client_id": turn.client_id},
        )
        text = f"{ESCALATION_PARAGRAPHS[reason]} {safe_cta_instruction(CtaType.ESCALATE, turn.cta_url)}"
        return self.reply(text, escalation_reason=reason.value, message_fingerprint=record.message_fingerprint)
