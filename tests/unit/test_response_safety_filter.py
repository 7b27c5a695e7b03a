from __future__ import annotations

import pytest

from compliance.response_safety_filter import (
    HOURS_NOT_LISTED,
    NO_CTA_INSTRUCTION,
    PRICING_NOT_LISTED,
    apply_response_safety_filter,
    contains_hours_claim,
    contains_pricing_claim,
    safe_cta_instruction,
)
from models.schemas import BusinessSummary, CtaType


NO_FACTS = BusinessSummary()
WITH_HOURS = BusinessSummary(hours="Mon-Fri 9am-5pm")
WITH_PRICING = BusinessSummary(pricing=[{"item": "Massage", "price": "$120"}])


def test_blocks_contact_collection_in_chat():
    out = apply_response_safety_filter(
        "If you'd like, leave your contact info and we'll follow up.",
        CtaType.LEAVE_CONTACT,
        "https://x.com/contact",
        NO_FACTS,
    )
    assert out.text == 'Tap "Leave contact info" and the team will follow up.'
    assert out.changed
    assert out.reasons == ["ASKS_FOR_CONTACT_IN_CHAT"]


def test_blocks_cant_find_language():
    out = apply_response_safety_filter(
        "I can't reschedule directly in chat, and I don't see a booking or contact link on this page.",
        CtaType.BOOK_NOW,
        "https://x.com/book",
        NO_FACTS,
    )
    assert out.text == 'Tap "Book now" to choose an available time.'
    assert "CANT_FIND_BOOKING_OR_CONTACT" in out.reasons


def test_hours_claim_blocked_when_hours_missing():
    out = apply_response_safety_filter("We're open 9am to 5pm Mon-Fri.", CtaType.BOOK_NOW, "https://x.com/book", NO_FACTS)
    assert out.text.startswith(HOURS_NOT_LISTED)
    assert "9am" not in out.text
    assert out.reasons == ["HOURS_WITHOUT_SOURCE"]


def test_hours_claim_allowed_when_hours_present():
    out = apply_response_safety_filter("We're open 9am to 5pm Mon-Fri.", CtaType.BOOK_NOW, "https://x.com/book", WITH_HOURS)
    assert out.text == "We're open 9am to 5pm Mon-Fri."
    assert not out.changed
    assert out.reasons == []


def test_hours_claim_without_url_falls_back_to_no_cta_instruction():
    out = apply_response_safety_filter("We open at 9am on Saturdays.", CtaType.BOOK_NOW, None, NO_FACTS)
    assert out.text == f"{HOURS_NOT_LISTED} {NO_CTA_INSTRUCTION}"
    assert "Tap" not in out.text


def test_numeric_pricing_blocked_when_pricing_missing():
    out = apply_response_safety_filter("It's $120 for 60 minutes.", CtaType.LEAVE_CONTACT, "https://x.com/contact", NO_FACTS)
    assert out.text == PRICING_NOT_LISTED
    assert "$120" not in out.text


def test_numeric_pricing_allowed_when_pricing_exists():
    out = apply_response_safety_filter("It's $120 for 60 minutes.", CtaType.BOOK_NOW, "https://x.com/book", WITH_PRICING)
    assert out.text == "It's $120 for 60 minutes."
    assert not out.changed


def test_no_cta_url_means_no_button_talk():
    out = apply_response_safety_filter('Tap "Book now" to choose an available time.', CtaType.BOOK_NOW, None, NO_FACTS)
    assert out.text == NO_CTA_INSTRUCTION
    assert 'Tap "Book now"' not in out.text
    assert out.reasons == ["BUTTON_WITHOUT_CTA"]


def test_capability_drift_is_rewritten():
    out = apply_response_safety_filter(
        "Sure! I'll text you a reminder the day before.", CtaType.LEAVE_CONTACT, "https://x.com/contact", WITH_HOURS
    )
    assert out.text == 'Tap "Leave contact info" and the team will follow up.'
    assert out.reasons == ["CAPABILITY_DRIFT"]


@pytest.mark.parametrize(
    "reply,cta_type,cta_url,summary",
    [
        ("We're open 9am to 5pm Mon-Fri.", CtaType.BOOK_NOW, "https://x.com/book", NO_FACTS),
        ("It's $120 for 60 minutes.", CtaType.LEAVE_CONTACT, "https://x.com/contact", NO_FACTS),
        ("Leave your email and we'll call you.", CtaType.ESCALATE, "https://x.com/help", NO_FACTS),
        ('Click the button below.', CtaType.BOOK_NOW, None, NO_FACTS),
    ],
)
def test_filter_is_idempotent(reply, cta_type, cta_url, summary):
    once = apply_response_safety_filter(reply, cta_type, cta_url, summary)
    twice = apply_response_safety_filter(once.text, cta_type, cta_url, summary)
    assert twice.text == once.text
    assert not twice.changed


def test_clean_reply_passes_through():
    out = apply_response_safety_filter("We offer facials and massages.", CtaType.BOOK_NOW, "https://x.com/book", NO_FACTS)
    assert out.text == "We offer facials and massages."
    assert out.reasons == []


def test_safe_cta_instruction_by_type():
    assert safe_cta_instruction(CtaType.LEAVE_CONTACT, "https://x.com/c").startswith('Tap "Leave contact info"')
    assert safe_cta_instruction("ESCALATE", "https://x.com/h") == "Please use the button below to contact the team."
    assert safe_cta_instruction(CtaType.CHOOSE_TIME, "https://x.com/b") == 'Tap "Book now" to choose an available time.'
    assert safe_cta_instruction(CtaType.BOOK_NOW, "   ") == NO_CTA_INSTRUCTION


def test_claim_detectors():
    assert contains_hours_claim("we close at 6")
    assert contains_hours_claim("Saturdays until 4pm")
    assert not contains_hours_claim("We offer facials.")
    assert contains_pricing_claim("starting at 80")
    assert contains_pricing_claim("about 50 dollars")
    assert not contains_pricing_claim("from 9am onward")
