from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple
from urllib.parse import urlparse

from models.schemas import CTA_CATEGORY, BusinessSummary, CtaCategory, CtaType
from settings import SETTINGS, Settings
from tenants.registry import ClientConfig


# (client override attribute, summary attribute, debug env attribute) per category.
_SOURCES: Dict[CtaCategory, Tuple[str, str, str]] = {
    CtaCategory.BOOKING: ("booking_url_override", "booking_url", "debug_booking_url"),
    CtaCategory.CONTACT: ("contact_url_override", "contact_url", "debug_contact_url"),
    CtaCategory.ESCALATE: ("escalate_url_override", "escalate_url", "debug_escalate_url"),
}


@dataclass(frozen=True)
class CtaResolution:
    type: CtaType
    url: str | None
    source: str

    @property
    def visible(self) -> bool:
        return self.url is not None


def clean_url(value: object) -> str | None:
    """Return the value if it is an absolute http(s) URL, else None."""
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate:
        return None
    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return None
    return candidate


def resolve_cta(
    cta_type: CtaType,
    client: ClientConfig | None,
    business_summary: BusinessSummary | None,
    settings: Settings = SETTINGS,
) -> CtaResolution:
    override_attr, summary_attr, env_attr = _SOURCES[CTA_CATEGORY[cta_type]]

    url = clean_url(getattr(client, override_attr, None)) if client else None
    if url:
        return CtaResolution(cta_type, url, "client_override")

    url = clean_url(getattr(business_summary, summary_attr, None)) if business_summary else None
    if url:
        return CtaResolution(cta_type, url, "site_summary")

    if client is not None and client.client_id == settings.debug_client_id:
        url = clean_url(getattr(settings, env_attr, None))
        if url:
            return CtaResolution(cta_type, url, "debug_env")

    return CtaResolution(cta_type, None, "none")
