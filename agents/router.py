from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable, List, Tuple

from agents.fact_extractor import (
    booking_cta_clicked,
    detect,
    extract_facts,
    has_booking_context,
    history_shows_booking_intent,
    merge_facts,
)
from models.schemas import (
    CTA_CATEGORY,
    ROUTER_BUILD,
    ChannelType,
    Cta,
    CtaCategory,
    CtaType,
    EscalationReason,
    Facts,
    JobId,
    Route,
    Signals,
)

if TYPE_CHECKING:
    from tenants.registry import ClientConfig


logger = logging.getLogger(__name__)

# Fixed priority: at most one reason is reported even when several detectors fire.
ESCALATION_PRIORITY: List[Tuple[str, EscalationReason]] = [
    ("escalation-safety", EscalationReason.SAFETY),
    ("escalation-legal", EscalationReason.LEGAL_DISPUTE),
    ("escalation-medical", EscalationReason.MEDICAL),
    ("escalation-privacy", EscalationReason.PRIVACY_REQUEST),
    ("escalation-staff-complaint", EscalationReason.STAFF_COMPLAINT),
]

WIDGET_RESTRICTED_JOBS = {JobId.REFILL_CANCELLATIONS, JobId.RETAIN_REBOOK}


def detect_escalation_reason(text: str) -> EscalationReason | None:
    for label, reason in ESCALATION_PRIORITY:
        if detect(label, text):
            return reason
    return None


def _route(job: JobId, facts: Facts, cta: CtaType) -> Route:
    return Route(job=job, facts=facts, cta=Cta(type=cta), router_build=ROUTER_BUILD)


def _blocking(facts: Facts, merged: Facts) -> bool:
    return (
        facts.no_availability
        or facts.booking_decline
        or facts.cannot_book_now
        or facts.wants_reminder_later
        or merged.booking_blocked
    )


def route_message(
    message: str,
    history: Iterable[Any] | None = None,
    signals: Signals | None = None,
    channel: str = ChannelType.WIDGET.value,
) -> Route:
    text = (message or "").strip()
    history = list(history or [])
    signals = signals or Signals()
    prior = signals.router_facts or Facts()

    facts = extract_facts(text, history, signals)
    merged = merge_facts(prior, facts)

    reason = detect_escalation_reason(text)
    if reason is not None:
        return _route(JobId.ESCALATION_GATE, merged.model_copy(update={"escalation_reason": reason}), CtaType.ESCALATE)

    # REFILL_CANCELLATIONS / RETAIN_REBOOK have no rule below; widget turns never reach them.

    clicked = booking_cta_clicked(signals)
    blocked = _blocking(facts, merged)
    if not blocked and (
        clicked
        or signals.booking_page_opened
        or (facts.booking_intent and facts.time_selection_intent)
        or (detect("ready-confirm", text) and facts.time_selection_intent)
    ):
        return _route(JobId.EXECUTE_BOOKING, merged, CtaType.CHOOSE_TIME)

    booking_in_progress = merged.booking_intent or history_shows_booking_intent(history)
    if booking_in_progress and not blocked and (clicked or signals.booking_page_opened or facts.time_selection_intent):
        return _route(JobId.EXECUTE_BOOKING, merged.model_copy(update={"booking_intent": True}), CtaType.CHOOSE_TIME)

    lead_trigger = (
        facts.no_availability
        or facts.booking_decline
        or facts.wants_reminder_later
        or (facts.cannot_book_now and has_booking_context(signals, history))
    )
    if lead_trigger and not signals.lead_offer_made:
        return _route(JobId.CAPTURE_LEAD, merged, CtaType.LEAVE_CONTACT)

    if facts.after_lead_capture or facts.browse_intent or detect("pricing-intent", text):
        return _route(JobId.CONVERT_VISITOR, merged, CtaType.LEAVE_CONTACT)
    return _route(JobId.CONVERT_VISITOR, merged, CtaType.BOOK_NOW)


def apply_reminder_override(route: Route, text: str) -> Route:
    """Reminder language forces lead capture, even mid-booking. Escalations are left alone."""
    if route.job == JobId.ESCALATION_GATE or not detect("reminder-intent", text):
        return route
    facts = route.facts.model_copy(update={"wants_reminder_later": True, "reminder_intent": True})
    if route.job == JobId.EXECUTE_BOOKING:
        logger.info("reminder_override_abandoned_booking", extra={"router_build": route.router_build})
    return _route(JobId.CAPTURE_LEAD, facts, CtaType.LEAVE_CONTACT)


def apply_job_disables(route: Route, client: "ClientConfig | None") -> Route:
    if client is None or not client.is_job_disabled(route.job):
        return route
    logger.info("job_disabled_fallback", extra={"client_id": client.client_id, "job": route.job.value})
    return _route(JobId.CONVERT_VISITOR, route.facts, CtaType.BOOK_NOW)


def apply_channel_restrictions(route: Route, channel: str) -> Route:
    if channel == ChannelType.WIDGET.value and route.job in WIDGET_RESTRICTED_JOBS:
        return _route(JobId.CONVERT_VISITOR, route.facts, CtaType.BOOK_NOW)
    return route


def next_signals(signals: Signals, route: Route) -> Signals:
    return signals.model_copy(
        update={
            "router_facts": route.facts,
            "last_job": route.job.value,
            "lead_offer_made": signals.lead_offer_made or route.job == JobId.CAPTURE_LEAD,
            "last_cta_clicked": None,
        }
    )


def apply_cta_click(signals: Signals, cta_type: CtaType) -> Signals:
    category = CTA_CATEGORY[cta_type]
    return signals.model_copy(
        update={
            "last_cta_clicked": cta_type.value,
            "booking_page_opened": signals.booking_page_opened or category == CtaCategory.BOOKING,
            "contact_page_opened": signals.contact_page_opened or category == CtaCategory.CONTACT,
        }
    )
