from __future__ import annotations

from typing import Dict

from agents.base import BaseAgent
from compliance.audit_logger import AuditLogger
from compliance.response_safety_filter import safe_cta_instruction
from models.schemas import CtaType, Facts, JobReply, TurnContext


LEAD_PARAGRAPHS: Dict[str, str] = {
    "reminder_wanted": "No problem, there's no rush. The team can follow up with you when the timing suits you better.",
    "schedule_unknown": "That's okay, you don't need to have your schedule figured out yet. The team can reach out once you know what works for you.",
    "no_availability": "Sorry none of the open times work for you. The team may be able to find another option that fits.",
    "explicit_decline": "No worries, there's no pressure to book. If you'd like to hear from the team later, that's easy to set up.",
}


def lead_cause(facts: Facts) -> str:
    if facts.wants_reminder_later:
        return "reminder_wanted"
    if facts.cannot_book_now:
        return "schedule_unknown"
    if facts.no_availability:
        return "no_availability"
    return "explicit_decline"


class LeadCaptureAgent(BaseAgent):
    def __init__(self, audit_logger: AuditLogger | None = None) -> None:
        super().__init__(name="lead_capture_agent", audit_logger=audit_logger)

    async def process(self, turn: TurnContext) -> JobReply:
        cause = lead_cause(turn.facts)
        text = f"{LEAD_PARAGRAPHS[cause]} {safe_cta_instruction(CtaType.LEAVE_CONTACT, turn.cta_url)}"
        self.build_decision_log(turn, action="lead_offer", reasoning=cause)
        return self.reply(text, cause=cause)
