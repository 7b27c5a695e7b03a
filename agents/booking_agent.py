from __future__ import annotations

import logging
import re

from agents.base import BaseAgent
from agents.fact_extractor import detect, normalize_text
from agents.llm_runtime import LLMCallError, LLMRuntime
from compliance.audit_logger import AuditLogger
from models.schemas import Facts, JobReply, TurnContext


logger = logging.getLogger(__name__)

HANDOFF_SENTENCE = "You can pick an exact time on the booking page."
DAY_QUESTION = "What day works best for you?"
TIME_WINDOW_QUESTION = "Do you prefer morning, afternoon, or evening?"
MAX_TAIL_CHARS = 160

_HEDGE = re.compile(r"\b(never\s*mind|nevermind|not sure|maybe|later|not yet|actually|hold on|wait)\b")
_LINK = re.compile(r"https?://|www\.|\b[\w-]+\.(com|ca|net|org|io|co)\b", re.I)
_SENTENCE_END = re.compile(r"[.!?]")


def build_acknowledgment(text: str, facts: Facts) -> str:
    current = normalize_text(text)
    in_turn_booking = detect("day-hint", current) or detect("time-window-hint", current)
    if _HEDGE.search(current) and not in_turn_booking:
        return "No problem."
    day, window = facts.desired_day, facts.desired_time_window
    if day and window:
        return f"Got it, {day} {window}."
    if day or window:
        return f"Got it, {day or window}."
    return "Sounds good."


def missing_field(facts: Facts) -> str | None:
    if not facts.desired_day:
        return "day"
    if not facts.desired_time_window:
        return "time_window"
    return None


def fallback_tail(facts: Facts) -> str:
    field = missing_field(facts)
    if field == "day":
        return DAY_QUESTION
    if field == "time_window":
        return TIME_WINDOW_QUESTION
    return HANDOFF_SENTENCE


def validate_tail(candidate: str, facts: Facts) -> bool:
    """Accept the exact handoff sentence, or one short linkless question when a field is still missing."""
    tail = (candidate or "").strip()
    if tail == HANDOFF_SENTENCE:
        return True
    if missing_field(facts) is None:
        return False
    if not tail or len(tail) > MAX_TAIL_CHARS or "\n" in tail:
        return False
    if _LINK.search(tail):
        return False
    if tail.count("?") != 1 or not tail.endswith("?"):
        return False
    return not _SENTENCE_END.search(tail[:-1])


class BookingAgent(BaseAgent):
    def __init__(self, llm: LLMRuntime, audit_logger: AuditLogger | None = None) -> None:
        super().__init__(name="booking_agent", audit_logger=audit_logger)
        self.llm = llm

    async def process(self, turn: TurnContext) -> JobReply:
        facts = turn.facts
        ack = build_acknowledgment(turn.message, facts)
        fallback = fallback_tail(facts)
        tail, source = fallback, "fallback"

        if self.llm.available():
            candidate = await self._generate_tail(turn, facts)
            if candidate is not None and validate_tail(candidate, facts):
                tail, source = candidate.strip(), "model"
            elif candidate is not None:
                logger.info("booking_tail_rejected", extra={"conversation_id": turn.conversation_id, "candidate": candidate[:200]})

        return self.reply(
            f"{ack} {tail}", model_generated=source == "model", preamble=ack, tail_source=source, missing_field=missing_field(facts)
        )

    async def _generate_tail(self, turn: TurnContext, facts: Facts) -> str | None:
        field = missing_field(facts)
        if field is None:
            instruction = f'Reply with exactly this sentence and nothing else: "{HANDOFF_SENTENCE}"'
        else:
            label = "which day works for them" if field == "day" else "whether they prefer morning, afternoon, or evening"
            instruction = (
                f"Ask the visitor {label}. Reply with exactly one short question ending in a question mark. "
                f"One sentence only, at most {MAX_TAIL_CHARS} characters, no links, no other text."
            )
        try:
            result = await self.llm.generate(
                system_prompt=f"You help a website visitor pick an appointment time. {instruction}",
                messages=[{"role": "user", "content": turn.message}],
            )
        except LLMCallError as exc:
            logger.warning("booking_tail_failed", extra={"conversation_id": turn.conversation_id, "error": str(exc)})
            return None
        return result.text
