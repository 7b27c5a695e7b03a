from __future__ import annotations

import json
import logging
import os
from collections import Counter
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List

from settings import SETTINGS


logger = logging.getLogger(__name__)


class AnalyticsTools:
    """Append-only JSON-lines event sink. Emitting is best effort; delivery is not guaranteed."""

    def __init__(self, path: str | None = None) -> None:
        self.path = path or SETTINGS.event_log_path
        self._lock = Lock()
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)

    async def log_event(self, event_type: str, payload: Dict[str, Any]) -> dict:
        record = {"ts": datetime.now(timezone.utc).isoformat(), "event_type": event_type, "payload": payload}
        try:
            with self._lock:
                with open(self.path, "a", encoding="utf-8") as fh:
                    fh.write(json.dumps(record, ensure_ascii=True, default=str) + "\n")
        except OSError:
            logger.exception("analytics_event_write_failed", extra={"event_type": event_type})
        return record

    def _rows(self) -> List[dict]:
        rows: List[dict] = []
        if not os.path.exists(self.path):
            return rows
        with self._lock:
            with open(self.path, "r", encoding="utf-8") as fh:
                for line in fh:
                    try:
                        rows.append(json.loads(line))
                    except json.JSONDecodeError:
                        continue
        return rows

    async def dashboard_metrics(self) -> Dict[str, object]:
        rows = self._rows()
        by_type = Counter(r.get("event_type", "unknown") for r in rows)
        turns = [r.get("payload", {}) for r in rows if r.get("event_type") == "chat_turn"]
        by_job = Counter(str(p.get("job", "unknown")) for p in turns)
        clicks = Counter(str(r.get("payload", {}).get("cta_type", "unknown")) for r in rows if r.get("event_type") == "cta_click")
        escalations = Counter(str(r.get("payload", {}).get("reason", "unknown")) for r in rows if r.get("event_type") == "escalation")
        filtered = sum(1 for p in turns if p.get("safety_filter_changed"))
        hidden = sum(1 for p in turns if not p.get("cta_url"))
        return {
            "total_events": len(rows),
            "events_by_type": dict(by_type.most_common()),
            "turns_by_job": dict(by_job.most_common()),
            "cta_clicks_by_type": dict(clicks.most_common()),
            "escalations_by_reason": dict(escalations.most_common()),
            "safety_filter_rewrites": filtered,
            "turns_with_hidden_cta": hidden,
        }
