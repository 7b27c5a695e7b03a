from __future__ import annotations

import json
import logging
from typing import Dict, List

from agents.base import BaseAgent
from agents.llm_runtime import LLMCallError, LLMRuntime
from compliance.audit_logger import AuditLogger
from compliance.response_safety_filter import HOURS_NOT_LISTED, PRICING_NOT_LISTED
from models.schemas import BusinessSummary, JobReply, Role, TurnContext


logger = logging.getLogger(__name__)

CONVERT_RULES = (
    "You are a friendly assistant on a service business's website. Your job is to help visitors "
    "understand the services and move toward booking or leaving their details.\n"
    "Rules:\n"
    "- Keep replies short: at most three sentences.\n"
    "- Ask at most one clarifying question.\n"
    "- Never include URLs or links. The page shows a button for the next step.\n"
    "- Use the Business Summary as the only source of truth. Do not invent services, prices, hours, or policies.\n"
    "- If a detail is not in the Business Summary, say it is not listed.\n"
    "- Do not ask for a phone number or email address in chat.\n"
    "- Do not say you can text, email, call, remind, or book anything for the visitor."
)
APOLOGY = "Sorry, I'm having trouble answering right now. Please try again in a moment."


def pricing_reply(summary: BusinessSummary) -> str:
    if not summary.has_pricing:
        return PRICING_NOT_LISTED
    lines: List[str] = []
    for entry in summary.pricing:
        label = (entry.item or "").strip()
        price = (entry.price or "").strip()
        line = f"{label}: {price}" if label and price else (label or price)
        if entry.notes:
            line = f"{line} ({entry.notes.strip()})"
        lines.append(f"- {line}")
    return "Here's the pricing listed on this page:\n" + "\n".join(lines) + "\nWhich service are you interested in?"


def hours_reply(summary: BusinessSummary) -> str:
    if not summary.has_hours:
        return f"{HOURS_NOT_LISTED} What else can I help with: services, pricing, or booking?"
    return f"Here are the hours listed on this page: {summary.hours}. What day were you thinking of coming in?"


def summary_block(summary: BusinessSummary) -> str:
    payload = summary.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"error", "source", "context_chars"})
    return json.dumps(payload, ensure_ascii=True)


def model_messages(turn: TurnContext) -> List[Dict[str, str]]:
    messages = [{"role": m.role.value, "content": m.content} for m in turn.history]
    latest = turn.message.strip()
    # The widget may already include the latest user message in history.
    if not (messages and messages[-1]["role"] == Role.USER.value and messages[-1]["content"] == latest):
        messages.append({"role": Role.USER.value, "content": latest})
    return messages


class ConvertAgent(BaseAgent):
    def __init__(self, llm: LLMRuntime, audit_logger: AuditLogger | None = None) -> None:
        super().__init__(name="convert_agent", audit_logger=audit_logger)
        self.llm = llm

    async def process(self, turn: TurnContext) -> JobReply:
        facts = turn.facts
        # Prices and hours are only ever stated from the summary, never by the model.
        if facts.pricing_intent:
            return self.reply(pricing_reply(turn.business_summary), intercept="pricing")
        if facts.hours_intent:
            return self.reply(hours_reply(turn.business_summary), intercept="hours")

        system_prompt = (
            f"{CONVERT_RULES}\n\nBusiness Summary (from the website the widget is embedded on):\n"
            f"{summary_block(turn.business_summary)}"
        )
        try:
            result, duration_ms = await self.timed(self.llm.generate(system_prompt=system_prompt, messages=model_messages(turn)))
        except LLMCallError as exc:
            logger.warning("convert_reply_failed", extra={"conversation_id": turn.conversation_id, "error": str(exc)})
            self.build_decision_log(turn, action="apology", reasoning=str(exc), outcome="llm_error")
            return self.reply(APOLOGY, llm_error=True)
        text = result.text.strip() or APOLOGY
        return self.reply(text, model_generated=True, llm_provider=result.provider, llm_model=result.model, duration_ms=duration_ms)
