from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Pattern

from models.schemas import BusinessSummary, CtaType, SafetyFilterResult


NO_CTA_INSTRUCTION = "I can help with services, pricing, or how booking works. What do you want to know?"
HOURS_NOT_LISTED = "I don't see hours listed on this page."
PRICING_NOT_LISTED = "I don't see pricing listed on this page. What are you looking for: services, how it works, or booking?"

_CONTACT_COLLECTION = [
    re.compile(r"\b(leave|drop|share|send)\s+(your\s+)?(phone|number|email)\b"),
    re.compile(r"\bwhat('?s| is)\s+your\s+(phone|number|email)\b"),
    re.compile(r"\b(can you|please)\s+(give|share|send)\s+(me\s+)?(your\s+)?(phone|number|email)\b"),
    re.compile(r"\b(text|sms|email)\s+me\s+at\b"),
    re.compile(r"\b(contact\s*info|your\s*contact\s*info|leave\s*(your\s*)?contact\s*info)\b"),
]
_CANT_FIND = [
    re.compile(r"\b(can'?t|cannot|couldn'?t|unable to)\s+(find|see|locate)\b"),
    re.compile(r"\b(i don'?t see)\s+(a\s+)?(booking|contact)\b"),
    re.compile(r"\b(no\s+booking\s+link|no\s+contact\s+link)\b"),
]
_CAPABILITY_DRIFT = [
    re.compile(r"\b(i('| a)?ll|we('| a)?ll)\s+(text|sms|email|call)\b"),
    re.compile(r"\b(i|we)\s+can\s+(text|sms|email|call)\b"),
    re.compile(r"\b(i|we)\s+will\s+remind\b"),
    re.compile(r"\b(set up|schedule)\s+(a\s+)?reminder\b"),
    re.compile(r"\b(i|we)\s+(booked|scheduled)\s+(you|it)\b"),
    re.compile(r"\b(i|we)\s+confirmed\s+(your\s+)?appointment\b"),
]
_HOURS_WORD = re.compile(r"\b(hours?|open|opens|opening|close|closes|closing)\b")
_CLOCK_TIME = re.compile(r"\b\d{1,2}(:\d{2})?\s*(am|pm)\b")
_WEEKDAY = re.compile(r"\b(mon|tue|wed|thu|fri|sat|sun)(day)?\b")
_OPEN_CLOSE_TIME = re.compile(r"\b(open|close|am|pm)\b")
_PRICING_CLAIM = [
    re.compile(r"\$\s*\d"),
    re.compile(r"\b\d+\s*(dollars|cad|usd)\b"),
    # "from 9am" is an hours claim, not a price.
    re.compile(r"\b(from|starting at|only)\s*\$?\s*\d+(?![\d:])(?!\s*(am|pm)\b)"),
]
_BUTTON_MENTION = re.compile(r"\b(tap|click|press)\b|\bbutton\b")


def _normalize(text: str | None) -> str:
    return str(text or "").replace("\r\n", "\n").strip()


def _lower(text: str) -> str:
    return text.replace("’", "'").replace("‘", "'").lower()


def _any(patterns: List[Pattern[str]], text: str) -> bool:
    lowered = _lower(text)
    return any(p.search(lowered) for p in patterns)


def contains_contact_collection(text: str) -> bool:
    return _any(_CONTACT_COLLECTION, text)


def contains_cant_find_language(text: str) -> bool:
    return _any(_CANT_FIND, text)


def contains_capability_drift(text: str) -> bool:
    return _any(_CAPABILITY_DRIFT, text)


def contains_hours_claim(text: str) -> bool:
    lowered = _lower(text)
    if _HOURS_WORD.search(lowered) or _CLOCK_TIME.search(lowered):
        return True
    return bool(_WEEKDAY.search(lowered) and _OPEN_CLOSE_TIME.search(lowered))


def contains_pricing_claim(text: str) -> bool:
    return _any(_PRICING_CLAIM, text)


def _has_cta_url(cta_url: str | None) -> bool:
    return isinstance(cta_url, str) and bool(cta_url.strip())


def safe_cta_instruction(cta_type: CtaType | str | None, cta_url: str | None) -> str:
    if not _has_cta_url(cta_url):
        return NO_CTA_INSTRUCTION
    value = cta_type.value if isinstance(cta_type, CtaType) else str(cta_type or "")
    if value == CtaType.LEAVE_CONTACT.value:
        return 'Tap "Leave contact info" and the team will follow up.'
    if value == CtaType.ESCALATE.value:
        return "Please use the button below to contact the team."
    return 'Tap "Book now" to choose an available time.'


@dataclass(frozen=True)
class SafetyRule:
    reason: str
    applies: Callable[[str, BusinessSummary, str | None], bool]
    replacement: Callable[[CtaType | str | None, str | None], str]


SAFETY_RULES: List[SafetyRule] = [
    SafetyRule(
        "ASKS_FOR_CONTACT_IN_CHAT",
        lambda text, summary, url: contains_contact_collection(text),
        safe_cta_instruction,
    ),
    SafetyRule(
        "CANT_FIND_BOOKING_OR_CONTACT",
        lambda text, summary, url: contains_cant_find_language(text),
        safe_cta_instruction,
    ),
    SafetyRule(
        "CAPABILITY_DRIFT",
        lambda text, summary, url: contains_capability_drift(text),
        safe_cta_instruction,
    ),
    SafetyRule(
        "HOURS_WITHOUT_SOURCE",
        lambda text, summary, url: not summary.has_hours and contains_hours_claim(text),
        lambda cta_type, url: f"{HOURS_NOT_LISTED} {safe_cta_instruction(cta_type, url)}",
    ),
    SafetyRule(
        "PRICING_WITHOUT_SOURCE",
        lambda text, summary, url: not summary.has_pricing and contains_pricing_claim(text),
        lambda cta_type, url: PRICING_NOT_LISTED,
    ),
    SafetyRule(
        "BUTTON_WITHOUT_CTA",
        lambda text, summary, url: not _has_cta_url(url) and bool(_BUTTON_MENTION.search(_lower(text))),
        lambda cta_type, url: NO_CTA_INSTRUCTION,
    ),
]


def apply_response_safety_filter(
    reply: str | None,
    cta_type: CtaType | str | None = None,
    cta_url: str | None = None,
    business_summary: BusinessSummary | None = None,
) -> SafetyFilterResult:
    """Rewrite model-produced reply text. Never touches the CTA itself.

    Rules run in order and each sees the output of the previous one. A reason is recorded
    whenever a rule matches, even if its replacement equals the current text.
    """
    summary = business_summary or BusinessSummary()
    original = _normalize(reply)
    text = original
    reasons: List[str] = []
    for rule in SAFETY_RULES:
        if not rule.applies(text, summary, cta_url):
            continue
        replacement = _normalize(rule.replacement(cta_type, cta_url))
        if replacement:
            text = replacement
        reasons.append(rule.reason)
    return SafetyFilterResult(text=text, changed=text != original, reasons=reasons)
