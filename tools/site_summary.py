from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List
from urllib.parse import urljoin, urlparse

from pydantic.alias_generators import to_camel

from agents.llm_runtime import LLMCallError, LLMRuntime, parse_json_object
from memory.summary_cache import SummaryCache
from models.schemas import BusinessSummary
from settings import SETTINGS
from tools.cta_resolver import clean_url


logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = """You extract business details from a website DOM snapshot for a customer support chat widget.
Return ONLY valid JSON with this exact shape:
{
  "businessName": string|null,
  "shortDescription": string|null,
  "services": [{"name": string, "description": string|null, "duration": string|null}],
  "pricing": [{"item": string, "price": string, "notes": string|null}],
  "hours": string|null,
  "bookingUrl": string|null,
  "contactUrl": string|null,
  "phone": string|null,
  "email": string|null,
  "confidence": "high"|"medium"|"low",
  "missingFields": [string]
}
Rules:
- Use exact text you can see. Do not guess.
- If pricing isn't visible, set pricing=[] and include "pricing" in missingFields.
- If hours aren't visible, set hours=null and include "hours" in missingFields.
- If a booking URL isn't visible, set bookingUrl=null and include "booking" in missingFields."""

_BOOKING_LINK = re.compile(r"\b(book|booking|schedule|appointment|reserve|reservation)s?\b", re.I)
_CONTACT_LINK = re.compile(r"\bcontact\b", re.I)
_PRICE = re.compile(r"(?P<item>[A-Za-z][A-Za-z &'/-]{2,40}?)\s*(?:[-:–]|from|at)?\s*(?P<price>\$\s?\d[\d,]*(?:\.\d{2})?)")
_DAY = r"(?:mon|tue|wed|thu|fri|sat|sun)[a-z]*\.?"
_CLOCK = r"\d{1,2}(?::\d{2})?\s*(?:am|pm)"
_HOURS = re.compile(rf"({_DAY}(?:\s*(?:-|–|to)\s*{_DAY})?\s*:?\s*{_CLOCK}\s*(?:-|–|to)\s*{_CLOCK})", re.I)
_EMAIL = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")


def get_site_key(value: Any) -> str | None:
    """URL origin (scheme://host[:port]) for a URL string or a mapping with origin/pageUrl."""
    if isinstance(value, dict):
        value = value.get("origin") or value.get("pageUrl") or value.get("page_url")
    if not isinstance(value, str) or not value.strip():
        return None
    parsed = urlparse(value.strip())
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def trim_site_context(site_context: Any, max_chars: int | None = None) -> str:
    limit = SETTINGS.max_site_context_chars if max_chars is None else max_chars
    if not site_context:
        return ""
    raw = site_context if isinstance(site_context, str) else json.dumps(site_context, ensure_ascii=False, default=str)
    return raw[:limit]


def hash_site_context(site_context: Any, max_chars: int | None = None) -> str:
    return hashlib.sha256(trim_site_context(site_context, max_chars).encode("utf-8")).hexdigest()


def summary_from_payload(data: Dict[str, Any], site_key: str | None = None) -> BusinessSummary:
    """Normalize a model payload, including the nested booking/contact shapes older prompts produced."""
    payload = dict(data)
    booking = payload.pop("booking", None)
    if isinstance(booking, dict) and not payload.get("bookingUrl"):
        payload["bookingUrl"] = booking.get("url")
    contact = payload.pop("contact", None)
    if isinstance(contact, dict):
        payload.setdefault("phone", contact.get("phone"))
        payload.setdefault("email", contact.get("email"))
    for field_name in ("bookingUrl", "contactUrl", "escalateUrl"):
        url = payload.get(field_name)
        payload[field_name] = clean_url(urljoin(site_key or "", url)) if isinstance(url, str) and url.strip() else None
    if payload.get("confidence") not in {"high", "medium", "low"}:
        payload["confidence"] = "low"
    allowed = set(BusinessSummary.model_fields) | {to_camel(name) for name in BusinessSummary.model_fields}
    return BusinessSummary.model_validate({k: v for k, v in payload.items() if k in allowed})


def _json_ld_nodes(blobs: Iterable[Any]) -> List[Dict[str, Any]]:
    nodes: List[Dict[str, Any]] = []
    for blob in blobs:
        try:
            parsed = json.loads(blob) if isinstance(blob, str) else blob
        except ValueError:
            continue
        stack = parsed if isinstance(parsed, list) else [parsed]
        for node in stack:
            if not isinstance(node, dict):
                continue
            nodes.append(node)
            graph = node.get("@graph")
            if isinstance(graph, list):
                nodes.extend(n for n in graph if isinstance(n, dict))
    return nodes


def _first_link(links: Iterable[Any], pattern: "re.Pattern[str]", base: str) -> str | None:
    for link in links:
        if not isinstance(link, dict):
            continue
        text = str(link.get("text") or "")
        href = str(link.get("href") or "").strip()
        if not href or href.startswith(("#", "mailto:", "tel:", "javascript:")):
            continue
        if pattern.search(text) or pattern.search(href):
            url = clean_url(urljoin(base, href))
            if url:
                return url
    return None


def heuristic_summary(site_context: Dict[str, Any], site_key: str | None = None) -> BusinessSummary:
    """Deterministic extraction from the widget's DOM snapshot: nav links, JSON-LD and the visible text sample."""
    base = str(site_context.get("url") or site_context.get("origin") or site_key or "")
    links = site_context.get("navLinks") if isinstance(site_context.get("navLinks"), list) else []
    text = str(site_context.get("textSample") or "")
    nodes = _json_ld_nodes(site_context.get("jsonLd") or [])

    name = next((str(n["name"]) for n in nodes if isinstance(n.get("name"), str)), None)
    if not name and site_context.get("title"):
        name = re.split(r"\s+[|\-–]\s+", str(site_context["title"]))[0].strip() or None

    hours_parts: List[str] = []
    pricing: List[Dict[str, str]] = []
    phone = email = None
    for node in nodes:
        opening = node.get("openingHours")
        if isinstance(opening, str):
            hours_parts.append(opening)
        elif isinstance(opening, list):
            hours_parts.extend(str(o) for o in opening if o)
        if isinstance(node.get("priceRange"), str) and node["priceRange"].strip():
            pricing.append({"item": "price range", "price": node["priceRange"].strip()})
        phone = phone or (str(node["telephone"]) if node.get("telephone") else None)
        email = email or (str(node["email"]) if node.get("email") else None)
    if not hours_parts:
        hours_parts = [m.group(1).strip() for m in _HOURS.finditer(text)][:3]
    if not pricing:
        pricing = [{"item": m.group("item").strip(), "price": m.group("price").replace(" ", "")} for m in _PRICE.finditer(text)][:10]
    for link in links:
        href = str(link.get("href") or "") if isinstance(link, dict) else ""
        if href.startswith("tel:") and not phone:
            phone = href[4:].strip() or None
        if href.startswith("mailto:") and not email:
            email = href[7:].split("?")[0].strip() or None
    if not email:
        match = _EMAIL.search(text)
        email = match.group(0) if match else None

    summary = BusinessSummary(
        business_name=name,
        short_description=str(site_context.get("metaDesc") or "").strip() or None,
        pricing=pricing,
        hours=hours_parts,
        booking_url=_first_link(links, _BOOKING_LINK, base),
        contact_url=_first_link(links, _CONTACT_LINK, base),
        phone=phone,
        email=email,
        source="heuristic",
        context_chars=len(trim_site_context(site_context)),
    )
    missing = [
        label
        for label, present in (("pricing", summary.has_pricing), ("hours", summary.has_hours), ("booking", bool(summary.booking_url)))
        if not present
    ]
    found = sum(bool(v) for v in (summary.business_name, summary.has_pricing, summary.has_hours, summary.booking_url, summary.contact_url))
    return summary.model_copy(update={"missing_fields": missing, "confidence": "medium" if found >= 3 else "low"})


@dataclass
class SummaryLookup:
    summary: BusinessSummary
    site_key: str | None
    was_cached: bool
    context_hash: str


class SiteSummaryService:
    def __init__(self, llm: LLMRuntime | None = None, cache: SummaryCache | None = None) -> None:
        self.llm = llm or LLMRuntime(model=SETTINGS.summary_model)
        self.cache = cache or SummaryCache()

    async def get_summary(self, site_context: Dict[str, Any] | None, meta: Dict[str, Any] | None = None) -> SummaryLookup:
        meta = meta or {}
        site_key = get_site_key((site_context or {}).get("origin") or meta.get("pageUrl"))
        context_hash = hash_site_context(site_context)
        cached = self.cache.get(site_key)
        if cached is not None:
            return SummaryLookup(cached, site_key, True, context_hash)

        summary = await self.summarize(site_key, site_context)
        if summary.error is None:
            self.cache.set(site_key, summary)
        else:
            logger.info("site_summary_not_cached", extra={"site_key": site_key, "error": summary.error})
        return SummaryLookup(summary, site_key, False, context_hash)

    async def summarize(self, site_key: str | None, site_context: Dict[str, Any] | None) -> BusinessSummary:
        if not site_context:
            return BusinessSummary(missing_fields=["site_context"], error="missing_site_context")
        trimmed = trim_site_context(site_context)
        if not self.llm.available():
            return heuristic_summary(site_context, site_key)
        try:
            result = await self.llm.generate(
                system_prompt=SUMMARY_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": f"SITE KEY: {site_key}\n\nDOM SNAPSHOT (trimmed):\n{trimmed}"}],
                response_format="json",
            )
            summary = summary_from_payload(parse_json_object(result.text), site_key)
        except (LLMCallError, ValueError) as exc:
            logger.warning("site_summary_llm_failed", extra={"site_key": site_key, "error": str(exc)})
            fallback = heuristic_summary(site_context, site_key)
            return fallback.model_copy(update={"error": f"llm_error: {exc}"})
        logger.info(
            "site_summary_done",
            extra={"site_key": site_key, "confidence": summary.confidence, "pricing": len(summary.pricing), "booking_url": summary.booking_url},
        )
        return summary.model_copy(update={"source": "llm", "context_chars": len(trimmed)})
