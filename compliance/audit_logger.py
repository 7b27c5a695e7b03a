from __future__ import annotations

import hashlib
import json
import logging
import os
from threading import Lock
from typing import Any, Dict, List

from models.schemas import AgentDecisionLog, EscalationAuditRecord, EscalationReason
from settings import SETTINGS


logger = logging.getLogger(__name__)


def message_fingerprint(text: str) -> str:
    normalized = " ".join((text or "").split()).lower()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


class AuditLogger:
    def __init__(self, path: str | None = None) -> None:
        self.path = path or SETTINGS.audit_log_path
        self._lock = Lock()
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)

    def log_decision(self, record: AgentDecisionLog) -> None:
        self.log_json({"event_type": "decision", **record.model_dump(mode="json")})

    def log_escalation(
        self,
        reason: EscalationReason,
        message: str,
        conversation_id: str | None = None,
        client_id: str | None = None,
    ) -> EscalationAuditRecord:
        # Only the fingerprint is persisted, never the raw message.
        record = EscalationAuditRecord(
            reason=reason,
            message_fingerprint=message_fingerprint(message),
            conversation_id=conversation_id,
            client_id=client_id,
        )
        self.log_json(record.model_dump(mode="json"))
        return record

    def log_json(self, payload: Dict[str, Any]) -> None:
        line = json.dumps(payload, ensure_ascii=True)
        try:
            with self._lock:
                with open(self.path, "a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
        except OSError:
            logger.exception("audit_write_failed", extra={"event_type": payload.get("event_type")})

    def read_all(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        with self._lock:
            with open(self.path, "r", encoding="utf-8") as fh:
                return [json.loads(line) for line in fh if line.strip()]
