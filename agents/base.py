from __future__ import annotations

import time
from abc import ABC, abstractmethod

from compliance.audit_logger import AuditLogger
from models.schemas import AgentDecisionLog, JobReply, TurnContext


class BaseAgent(ABC):
    def __init__(self, name: str, audit_logger: AuditLogger | None = None) -> None:
        self.name = name
        self.audit_logger = audit_logger or AuditLogger()

    @abstractmethod
    async def process(self, turn: TurnContext) -> JobReply:
        raise NotImplementedError

    def reply(self, text: str, model_generated: bool = False, preamble: str = "", **metadata) -> JobReply:
        return JobReply(text=text, agent=self.name, model_generated=model_generated, preamble=preamble, metadata=metadata)

    def build_decision_log(
        self,
        turn: TurnContext,
        action: str,
        reasoning: str,
        duration_ms: int = 0,
        outcome: str = "ok",
    ) -> AgentDecisionLog:
        record = AgentDecisionLog(
            conversation_id=turn.conversation_id,
            client_id=turn.client_id,
            agent=self.name,
            action=action,
            reasoning=reasoning,
            duration_ms=duration_ms,
            outcome=outcome,
        )
        self.audit_logger.log_decision(record)
        return record

    async def timed(self, coro):
        start = time.perf_counter()
        result = await coro
        return result, int((time.perf_counter() - start) * 1000)
