from __future__ import annotations

import pytest

from agents.router import (
    apply_channel_restrictions,
    apply_cta_click,
    apply_job_disables,
    apply_reminder_override,
    next_signals,
    route_message,
)
from models.schemas import ROUTER_BUILD, Cta, CtaType, EscalationReason, Facts, JobId, Route, Signals
from tenants.registry import ClientConfig


def test_no_times_work_captures_lead():
    route = route_message("no times work for me", [], Signals())
    assert route.job == JobId.CAPTURE_LEAD
    assert route.cta.type == CtaType.LEAVE_CONTACT
    assert route.router_build == ROUTER_BUILD
    assert route.facts.booking_blocked


def test_capture_lead_fires_once_per_conversation():
    context = Signals(router_facts=Facts(booking_intent=True))
    for text in ["no times work for me", "no thanks", "fully booked, huh", "maybe later"]:
        first = route_message(text, [], context)
        assert first.job == JobId.CAPTURE_LEAD, text
        again = route_message(text, [], next_signals(context, first))
        assert again.job != JobId.CAPTURE_LEAD, text
        assert again.cta.type == CtaType.LEAVE_CONTACT


@pytest.mark.parametrize(
    "text,reason",
    [
        ("I'm going to threaten to sue you", EscalationReason.SAFETY),
        ("I want to talk to my lawyer about this charge", EscalationReason.LEGAL_DISPUTE),
        ("Is it safe during pregnancy?", EscalationReason.MEDICAL),
        ("Please delete my data", EscalationReason.PRIVACY_REQUEST),
        ("Your receptionist was rude", EscalationReason.STAFF_COMPLAINT),
    ],
)
def test_escalation_reasons_follow_fixed_priority(text, reason):
    route = route_message(text)
    assert route.job == JobId.ESCALATION_GATE
    assert route.cta.type == CtaType.ESCALATE
    assert route.facts.escalation_reason == reason


def test_escalation_outranks_booking():
    signals = Signals(last_cta_clicked="CHOOSE_TIME", booking_page_opened=True)
    route = route_message("I want to book an appointment tomorrow morning or I will threaten legal action", [], signals)
    assert route.job == JobId.ESCALATION_GATE
    assert route.facts.escalation_reason == EscalationReason.SAFETY


def test_escalation_reason_is_not_carried_forward():
    signals = Signals(router_facts=Facts(escalation_reason=EscalationReason.SAFETY))
    route = route_message("what services do you offer", [], signals)
    assert route.job == JobId.CONVERT_VISITOR
    assert route.facts.escalation_reason is None


def test_fresh_booking_entry_needs_time_selection():
    route = route_message("Can I book for tomorrow afternoon?")
    assert route.job == JobId.EXECUTE_BOOKING
    assert route.cta.type == CtaType.CHOOSE_TIME
    assert route.facts.desired_day == "tomorrow"
    assert route.facts.desired_time_window == "afternoon"

    assert route_message("I'd like to book a massage").job == JobId.CONVERT_VISITOR


def test_booking_cta_click_enters_booking():
    route = route_message("hello", [], Signals(last_cta_clicked="BOOK_NOW"))
    assert route.job == JobId.EXECUTE_BOOKING


def test_sticky_booking_continues_from_history():
    history = [
        {"role": "user", "content": "I want to schedule a consultation"},
        {"role": "assistant", "content": "Sure, what day works?"},
        {"role": "user", "content": "what do you charge?"},
    ]
    route = route_message("evening please", history, Signals())
    assert route.job == JobId.EXECUTE_BOOKING
    assert route.facts.booking_intent is True


def test_booking_blocked_until_fresh_booking_intent():
    signals = Signals(router_facts=Facts(booking_blocked=True))
    blocked = route_message("what about friday evening", [], signals)
    assert blocked.job == JobId.CONVERT_VISITOR
    assert blocked.cta.type == CtaType.BOOK_NOW
    assert blocked.facts.booking_blocked

    reopened = route_message("can I book friday evening", [], signals)
    assert reopened.job == JobId.EXECUTE_BOOKING
    assert not reopened.facts.booking_blocked


def test_convert_cta_depends_on_browsing_and_pricing():
    assert route_message("hello there").cta.type == CtaType.BOOK_NOW
    assert route_message("how much is a facial").cta.type == CtaType.LEAVE_CONTACT
    assert route_message("just looking around").cta.type == CtaType.LEAVE_CONTACT


def test_cannot_book_now_needs_booking_context():
    assert route_message("not sure").job == JobId.CONVERT_VISITOR
    context = Signals(router_facts=Facts(booking_intent=True))
    assert route_message("not sure", [], context).job == JobId.CAPTURE_LEAD


def test_reminder_override_abandons_active_booking():
    booking = route_message("Can I book tomorrow morning?")
    assert booking.job == JobId.EXECUTE_BOOKING
    overridden = apply_reminder_override(booking, "can you remind me what time we said?")
    assert overridden.job == JobId.CAPTURE_LEAD
    assert overridden.cta.type == CtaType.LEAVE_CONTACT
    assert overridden.facts.wants_reminder_later
    assert overridden.facts.desired_day == "tomorrow"


def test_reminder_override_never_touches_escalation():
    escalation = route_message("I will sue you, remind me to call my lawyer")
    assert apply_reminder_override(escalation, "remind me") is escalation


def test_reminder_override_ignores_plain_text():
    route = route_message("hello")
    assert apply_reminder_override(route, "hello") is route


def test_disabled_job_fails_open_to_convert():
    client = ClientConfig(client_id="c", allowed_origins=("https://a.example.com",), job_disables={"JOB_2_EXECUTE_BOOKING": True})
    route = apply_job_disables(route_message("Can I book tomorrow morning?"), client)
    assert route.job == JobId.CONVERT_VISITOR
    assert route.cta.type == CtaType.BOOK_NOW

    by_name = ClientConfig(client_id="c", allowed_origins=("https://a.example.com",), job_disables={"CAPTURE_LEAD": True})
    assert apply_job_disables(route_message("no times work for me"), by_name).job == JobId.CONVERT_VISITOR
    assert apply_job_disables(route_message("no times work for me"), None).job == JobId.CAPTURE_LEAD


def test_widget_never_serves_refill_or_retain():
    for job in (JobId.REFILL_CANCELLATIONS, JobId.RETAIN_REBOOK):
        route = Route(job=job, facts=Facts(), cta=Cta(type=CtaType.BOOK_NOW))
        assert apply_channel_restrictions(route, "widget").job == JobId.CONVERT_VISITOR
        assert apply_channel_restrictions(route, "sms").job == job


def test_next_signals_patches_state():
    route = route_message("no times work for me")
    signals = next_signals(Signals(last_cta_clicked="BOOK_NOW", booking_page_opened=True), route)
    assert signals.lead_offer_made
    assert signals.last_job == JobId.CAPTURE_LEAD.value
    assert signals.last_cta_clicked is None
    assert signals.booking_page_opened
    assert signals.router_facts == route.facts


def test_cta_click_marks_page_by_category():
    contact = apply_cta_click(Signals(), CtaType.LEAVE_CONTACT)
    assert contact.contact_page_opened and not contact.booking_page_opened
    assert contact.last_cta_clicked == "LEAVE_CONTACT"
    booking = apply_cta_click(Signals(), CtaType.CONFIRM_BOOKING)
    assert booking.booking_page_opened and not booking.contact_page_opened


def test_malformed_carried_facts_reset_instead_of_failing():
    signals = Signals.model_validate({"routerFacts": {"desiredDay": 5}, "leadOfferMade": True})
    assert signals.router_facts is None
    assert signals.lead_offer_made
    kept = Signals.model_validate({"routerFacts": {"desiredDay": "friday", "bookingBlocked": True}})
    assert kept.router_facts == Facts(desired_day="friday", booking_blocked=True)

    route = route_message("what about the afternoon", [], signals)
    assert route.facts.desired_day is None
    assert route.facts.desired_time_window == "afternoon"
