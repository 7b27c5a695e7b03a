from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, List, Tuple

from models.schemas import JobId
from settings import SETTINGS


logger = logging.getLogger(__name__)


def _clean(value: Any) -> str:
    return str(value or "").strip()


@dataclass(frozen=True)
class ClientConfig:
    client_id: str
    allowed_origins: Tuple[str, ...] = ()
    booking_url_override: str = ""
    contact_url_override: str = ""
    escalate_url_override: str = ""
    job_disables: Dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, client_id: str, data: Dict[str, Any]) -> "ClientConfig":
        origins = data.get("allowedOrigins", data.get("allowed_origins", []))
        disables = data.get("jobDisables", data.get("job_disables", {}))
        return cls(
            client_id=_clean(client_id),
            allowed_origins=tuple(o for o in (_clean(x) for x in origins) if o) if isinstance(origins, list) else (),
            booking_url_override=_clean(data.get("bookingUrlOverride", data.get("booking_url_override"))),
            contact_url_override=_clean(data.get("contactUrlOverride", data.get("contact_url_override"))),
            escalate_url_override=_clean(data.get("escalateUrlOverride", data.get("escalate_url_override"))),
            job_disables={str(k): bool(v) for k, v in disables.items()} if isinstance(disables, dict) else {},
        )

    def is_job_disabled(self, job: JobId) -> bool:
        return bool(self.job_disables.get(job.value) or self.job_disables.get(job.name))

    def is_origin_allowed(self, origin: str | None) -> bool:
        # Exact match only, no wildcards.
        return bool(origin) and origin in self.allowed_origins


class ClientRegistry:
    def __init__(
        self,
        path: str | Path | None = None,
        cache_seconds: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.path = Path(path or SETTINGS.clients_config_path or (Path(__file__).resolve().parent / "clients.json"))
        self.cache_seconds = SETTINGS.clients_cache_seconds if cache_seconds is None else cache_seconds
        self._clock = clock
        self._lock = Lock()
        self._cache: Dict[str, Any] | None = None
        self._cached_at = 0.0

    def _raw_clients(self) -> Dict[str, Any]:
        with self._lock:
            now = self._clock()
            if self._cache is not None and (now - self._cached_at) < self.cache_seconds:
                return self._cache
            with self.path.open("r", encoding="utf-8") as fh:
                parsed = json.load(fh)
            self._cache = parsed if isinstance(parsed, dict) else {}
            self._cached_at = now
            return self._cache

    def list_client_ids(self) -> List[str]:
        return sorted(self._raw_clients().keys())

    def load(self, client_id: str) -> ClientConfig:
        client_id = _clean(client_id)
        if not client_id:
            raise KeyError("client id is required")
        data = self._raw_clients().get(client_id)
        if not isinstance(data, dict):
            raise KeyError(f"client not found: {client_id}")
        config = ClientConfig.from_dict(client_id, data)
        if not config.allowed_origins:
            raise KeyError(f"client has no allowed origins: {client_id}")
        return config

    def try_load(self, client_id: str | None) -> ClientConfig | None:
        try:
            return self.load(client_id or "")
        except KeyError:
            return None
        except (OSError, ValueError):
            logger.exception("client_registry_load_failed", extra={"path": str(self.path)})
            return None

    def is_origin_allowed(self, origin: str | None, client: ClientConfig | None) -> bool:
        return client is not None and client.is_origin_allowed(origin)
