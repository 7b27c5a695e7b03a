from __future__ import annotations

import os
from dataclasses import dataclass


def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    default_llm_provider: str = os.getenv("DEFAULT_LLM_PROVIDER", "openai")
    default_model: str = os.getenv("DEFAULT_MODEL", "gpt-4.1-mini")
    summary_model: str = os.getenv("SUMMARY_MODEL", "gpt-4.1-mini")
    anthropic_api_key: str = os.getenv("ANTHROPIC_API_KEY", "")
    xai_api_key: str = os.getenv("XAI_API_KEY", "")
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    anthropic_base_url: str = os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com/v1")
    xai_base_url: str = os.getenv("XAI_BASE_URL", "https://api.x.ai/v1")
    llm_timeout_seconds: int = _int("LLM_TIMEOUT_SECONDS", 25)

    clients_config_path: str = os.getenv("CLIENTS_CONFIG_PATH", "")
    clients_cache_seconds: int = _int("CLIENTS_CACHE_SECONDS", 10)
    audit_log_path: str = os.getenv("AUDIT_LOG_PATH", "./data/audit.log.jsonl")
    event_log_path: str = os.getenv("EVENT_LOG_PATH", "./data/events.log.jsonl")

    summary_cache_ttl_seconds: int = _int("SUMMARY_CACHE_TTL_SECONDS", 6 * 60 * 60)
    max_site_context_chars: int = _int("MAX_SITE_CONTEXT_CHARS", 45_000)
    history_limit: int = _int("HISTORY_LIMIT", 40)
    rate_limit_per_minute: int = _int("RATE_LIMIT_PER_MINUTE", 60)

    # Internal test client: the only client allowed to fall back to env-provided CTA urls.
    debug_client_id: str = os.getenv("DEBUG_CLIENT_ID", "internal-debug")
    debug_booking_url: str = os.getenv("DEBUG_BOOKING_URL", "")
    debug_contact_url: str = os.getenv("DEBUG_CONTACT_URL", "")
    debug_escalate_url: str = os.getenv("DEBUG_ESCALATE_URL", "")

    debug: bool = _bool("DEBUG", True)


SETTINGS = Settings()
