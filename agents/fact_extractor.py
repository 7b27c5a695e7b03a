from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Pattern, Tuple

from models.schemas import BOOKING_CTA_TYPES, Facts, Message, Signals


# Ordered detector table. Every predicate is evaluated independently over normalized lowercase text.
DETECTORS: List[Tuple[str, Pattern[str]]] = [
    ("escalation-safety", re.compile(r"\b(threat(en)?|kill|hurt|attack|violence|weapon|stalk(ing)?|harass(ment)?|unsafe|danger)\b", re.I)),
    ("escalation-legal", re.compile(r"\b(chargeback|dispute|lawsuit|sue|attorney|lawyer|legal action|fraud|scam|report you)\b", re.I)),
    ("escalation-medical", re.compile(r"\b(diagnose|diagnosis|medical advice|treat(ment)? advice|is it safe|contraindication|pregnan(t|cy)|symptom(s)?)\b", re.I)),
    ("escalation-privacy", re.compile(r"\b(delete my data|remove my data|privacy request|pipeda|phipa|hipaa|gdpr)\b", re.I)),
    ("escalation-staff-complaint", re.compile(r"\b(complain(t)?|complaint|rude|unprofessional|assault|inappropriate|touched me|injured me|refund)\b", re.I)),
    ("booking-intent", re.compile(r"\b(book|booking|schedule|appointment|times?|today|tomorrow|this week|next week)\b", re.I)),
    (
        "booking-delay",
        re.compile(
            r"\b(not yet|maybe later|not now|another time|some other time|i[' ]?ll (book|schedule) (later|another time)|i[' ]?ll do it later|in a bit)\b",
            re.I,
        ),
    ),
    ("booking-decline", re.compile(r"\b(no thanks|no thank you|nah|nope|don'?t want to book|not booking|stop|leave me alone)\b", re.I)),
    ("no-availability", re.compile(r"\b(no times|nothing available|fully booked|no availability|sold out)\b", re.I)),
    ("reminder-intent", re.compile(r"\b(remind|reminder|notify|notification|follow\s*up|check\s*back|touch\s*back|touch\s*base|circle\s*back|reach\s*out|ping\s*me)\b", re.I)),
    (
        "cannot-book-now",
        re.compile(
            r"\b(i\s*(do\s*not|don'?t)\s*(know|have)\s*(my\s*)?(availability|schedule)"
            r"|i\s*(do\s*not|don'?t)\s*(know|have)\s*when\s*i'?m\s*free"
            r"|(not|n'?t)\s*sure(\s*yet)?(\s*when\s*i'?m\s*free)?"
            r"|need\s*to\s*check(\s*my)?\s*(availability|schedule)"
            r"|have\s*to\s*check(\s*my)?\s*(availability|schedule)"
            r"|let\s*me\s*check(\s*my)?\s*(availability|schedule)"
            r"|i\s*need\s*to\s*look\s*at\s*my\s*schedule"
            r"|i\s*have\s*to\s*look\s*at\s*my\s*schedule"
            r"|i\s*(do\s*not|don'?t)\s*know\s*yet"
            r"|not\s*sure\s*yet)\b",
            re.I,
        ),
    ),
    ("pricing-intent", re.compile(r"\b(prices?|pricing|costs?|rates?|fee|fees|how much|plans?)\b", re.I)),
    ("hours-intent", re.compile(r"\b(hours?|open|opening|close|closing|closed|what time do you)\b", re.I)),
    (
        "browse-intent",
        re.compile(
            r"\b(just browsing|just looking|browsing|looking around|curious|info|information|tell me about|what do you offer"
            r"|services|how does it work|website( link)?|site( link)?|url|link)\b",
            re.I,
        ),
    ),
    ("ready-confirm", re.compile(r"^\s*(yes|yeah|yep|ok(ay)?|let'?s do it|book it)\s*[.!]?\s*$", re.I)),
    ("duration", re.compile(r"\b(30|45|60|75|90)\s*(min|mins|minutes)\b", re.I)),
    ("service-hint", re.compile(r"\b(service|treatment|session|package|plan|membership|add-?on|upgrade)\b", re.I)),
    ("day-hint", re.compile(r"\b(today|tomorrow|monday|tuesday|wednesday|thursday|friday|saturday|sunday|this week|next week)\b", re.I)),
    ("time-window-hint", re.compile(r"\b(morning|afternoon|evening|tonight)\b", re.I)),
    (
        "time-selection-intent",
        re.compile(r"\b(choose a time|pick a time|select a time|what (day|time)|when (are you|is)|available times?|openings?|slots?)\b", re.I),
    ),
    (
        "service-interest",
        re.compile(r"\b(sms|text|email|re-?engagement|welcome|lead capture|reminders?|reviews?|consultation|massage|facial|cleaning|repair)\b", re.I),
    ),
    ("first-time-likely", re.compile(r"\b(first time|new (client|customer)|never been)\b", re.I)),
]

DETECTOR_INDEX: Dict[str, Pattern[str]] = dict(DETECTORS)

_HISTORY_BOOKING_RE = re.compile(r"\b(book|booking|consultation|schedule|appointment|call)\b", re.I)
_HISTORY_SCAN_LIMIT = 20


def normalize_text(text: Any) -> str:
    if not isinstance(text, str):
        return ""
    return text.replace("’", "'").replace("‘", "'").strip().lower()


def detect(label: str, text: str) -> bool:
    return bool(DETECTOR_INDEX[label].search(normalize_text(text)))


def run_detectors(text: str) -> Dict[str, bool]:
    normalized = normalize_text(text)
    return {label: bool(pattern.search(normalized)) for label, pattern in DETECTORS}


def first_match(label: str, *texts: str) -> str | None:
    pattern = DETECTOR_INDEX[label]
    for text in texts:
        match = pattern.search(normalize_text(text))
        if match:
            return match.group(0)
    return None


def _role_and_content(entry: Any) -> Tuple[str, str]:
    if isinstance(entry, Message):
        return entry.role.value, entry.content
    if isinstance(entry, dict):
        content = entry.get("content")
        if not isinstance(content, str):
            content = entry.get("text") if isinstance(entry.get("text"), str) else ""
        return str(entry.get("role") or "").lower(), content
    return "", ""


def last_user_message(history: Iterable[Any] | None) -> str:
    entries = list(history or [])
    for entry in reversed(entries):
        role, content = _role_and_content(entry)
        if role == "user" and content:
            return content
    return ""


def history_shows_booking_intent(history: Iterable[Any] | None) -> bool:
    recent = list(history or [])[-_HISTORY_SCAN_LIMIT:]
    for entry in recent:
        role, content = _role_and_content(entry)
        if role == "user" and _HISTORY_BOOKING_RE.search(normalize_text(content)):
            return True
    return False


def booking_cta_clicked(signals: Signals) -> bool:
    return (signals.last_cta_clicked or "") in BOOKING_CTA_TYPES


def has_booking_context(signals: Signals, history: Iterable[Any] | None) -> bool:
    prior = signals.router_facts or Facts()
    return (
        signals.booking_page_opened
        or booking_cta_clicked(signals)
        or prior.booking_intent
        or history_shows_booking_intent(history)
    )


def extract_facts(text: str, history: Iterable[Any] | None = None, signals: Signals | None = None) -> Facts:
    signals = signals or Signals()
    history = list(history or [])
    prior = signals.router_facts or Facts()
    current = normalize_text(text)
    last_user = normalize_text(last_user_message(history))
    hits = run_detectors(current)
    context = has_booking_context(signals, history)
    clicked = booking_cta_clicked(signals)

    blocked_by_other_exit = hits["cannot-book-now"] or hits["booking-decline"] or hits["no-availability"]
    return Facts(
        booking_intent=(
            hits["booking-intent"]
            or bool(DETECTOR_INDEX["booking-intent"].search(last_user))
            or clicked
            or signals.booking_page_opened
        ),
        reminder_intent=hits["reminder-intent"],
        wants_reminder_later=context and (hits["booking-delay"] or hits["reminder-intent"]) and not blocked_by_other_exit,
        booking_decline=context and hits["booking-decline"] and not hits["browse-intent"] and not hits["no-availability"],
        cannot_book_now=hits["cannot-book-now"],
        no_availability=hits["no-availability"],
        after_lead_capture=signals.lead_offer_made,
        browse_intent=hits["browse-intent"],
        pricing_intent=hits["pricing-intent"] and not hits["browse-intent"],
        hours_intent=hits["hours-intent"],
        has_service_selected=hits["duration"] or hits["service-hint"] or hits["service-interest"],
        desired_day=first_match("day-hint", current, last_user) or prior.desired_day,
        desired_time_window=first_match("time-window-hint", current, last_user) or prior.desired_time_window,
        service_interest=first_match("service-interest", current, last_user) or prior.service_interest,
        time_selection_intent=hits["day-hint"] or hits["time-window-hint"] or hits["time-selection-intent"],
        first_time_likely=hits["first-time-likely"],
        upgrade_eligible=False,
        booking_blocked=prior.booking_blocked,
    )


def merge_facts(prior: Facts | None, current: Facts) -> Facts:
    prior = prior or Facts()
    return current.model_copy(
        update={
            "desired_day": current.desired_day or prior.desired_day,
            "desired_time_window": current.desired_time_window or prior.desired_time_window,
            "service_interest": current.service_interest or prior.service_interest,
            # Latched until a fresh booking intent; always set by no-availability.
            "booking_blocked": (prior.booking_blocked and not current.booking_intent) or current.no_availability,
            "escalation_reason": None,
        }
    )
