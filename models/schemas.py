from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel


ROUTER_BUILD = "router-build-2025-12-30-01"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    """Widget-facing model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChannelType(str, Enum):
    WIDGET = "widget"
    SMS = "sms"
    EMAIL = "email"
    VOICE = "voice"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class JobId(str, Enum):
    CONVERT_VISITOR = "JOB_1_CONVERT_VISITOR"
    EXECUTE_BOOKING = "JOB_2_EXECUTE_BOOKING"
    INCREASE_ABV = "JOB_3_INCREASE_ABV"
    CAPTURE_LEAD = "JOB_4_CAPTURE_LEAD"
    REFILL_CANCELLATIONS = "JOB_5_REFILL_CANCELLATIONS"
    RETAIN_REBOOK = "JOB_6_RETAIN_REBOOK"
    ESCALATION_GATE = "JOB_7_ESCALATION_GATE"


class CtaType(str, Enum):
    BOOK_NOW = "BOOK_NOW"
    CHOOSE_TIME = "CHOOSE_TIME"
    CONFIRM_BOOKING = "CONFIRM_BOOKING"
    LEAVE_CONTACT = "LEAVE_CONTACT"
    ESCALATE = "ESCALATE"


class CtaCategory(str, Enum):
    BOOKING = "booking"
    CONTACT = "contact"
    ESCALATE = "escalate"


CTA_CATEGORY: Dict[CtaType, CtaCategory] = {
    CtaType.BOOK_NOW: CtaCategory.BOOKING,
    CtaType.CHOOSE_TIME: CtaCategory.BOOKING,
    CtaType.CONFIRM_BOOKING: CtaCategory.BOOKING,
    CtaType.LEAVE_CONTACT: CtaCategory.CONTACT,
    CtaType.ESCALATE: CtaCategory.ESCALATE,
}

BOOKING_CTA_TYPES = {t.value for t, c in CTA_CATEGORY.items() if c == CtaCategory.BOOKING}


class EscalationReason(str, Enum):
    SAFETY = "SAFETY"
    LEGAL_DISPUTE = "LEGAL_DISPUTE"
    MEDICAL = "MEDICAL"
    PRIVACY_REQUEST = "PRIVACY_REQUEST"
    STAFF_COMPLAINT = "STAFF_COMPLAINT"


class Message(WireModel):
    role: Role
    content: str
    timestamp: Any = None


class Facts(WireModel):
    booking_intent: bool = False
    reminder_intent: bool = False
    wants_reminder_later: bool = False
    booking_decline: bool = False
    cannot_book_now: bool = False
    no_availability: bool = False
    after_lead_capture: bool = False
    browse_intent: bool = False
    pricing_intent: bool = False
    hours_intent: bool = False
    has_service_selected: bool = False
    desired_day: Optional[str] = None
    desired_time_window: Optional[str] = None
    service_interest: Optional[str] = None
    time_selection_intent: bool = False
    first_time_likely: bool = False
    upgrade_eligible: bool = False
    booking_blocked: bool = False
    escalation_reason: Optional[EscalationReason] = None


class Signals(WireModel):
    last_cta_clicked: Optional[str] = None
    booking_page_opened: bool = False
    contact_page_opened: bool = False
    lead_offer_made: bool = False
    router_facts: Optional[Facts] = None
    last_job: Optional[str] = None

    @field_validator("router_facts", mode="before")
    @classmethod
    def _facts_must_be_mapping(cls, value: Any) -> Any:
        if isinstance(value, Facts):
            return value
        if not isinstance(value, dict):
            return None
        try:
            return Facts.model_validate(value)
        except ValidationError:
            # Malformed carried facts reset to none instead of failing the turn.
            return None

    @field_validator("last_cta_clicked", "last_job", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()


class Cta(WireModel):
    type: CtaType


class Route(WireModel):
    job: JobId
    facts: Facts
    cta: Cta
    router_build: str = ROUTER_BUILD


class PricingItem(WireModel):
    item: Optional[str] = None
    price: Optional[str] = None
    notes: Optional[str] = None


class ServiceItem(WireModel):
    name: str
    description: Optional[str] = None
    duration: Optional[str] = None


class BusinessSummary(WireModel):
    business_name: Optional[str] = None
    short_description: Optional[str] = None
    services: List[ServiceItem] = Field(default_factory=list)
    pricing: List[PricingItem] = Field(default_factory=list)
    hours: Optional[str] = None
    booking_url: Optional[str] = None
    contact_url: Optional[str] = None
    escalate_url: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    confidence: str = "low"
    missing_fields: List[str] = Field(default_factory=list)
    source: str = "none"
    error: Optional[str] = None
    context_chars: int = 0

    @field_validator("pricing", mode="before")
    @classmethod
    def _normalize_pricing(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [{"item": "pricing", "price": value.strip()}] if value.strip() else []
        if isinstance(value, dict):
            if "price" in value or "item" in value:
                return [value]
            return [{"item": str(k), "price": str(v)} for k, v in value.items()]
        if isinstance(value, list):
            items: List[Any] = []
            for entry in value:
                if isinstance(entry, (dict, PricingItem)):
                    items.append(entry)
                elif isinstance(entry, str) and entry.strip():
                    items.append({"price": entry.strip()})
            return items
        return []

    @field_validator("services", mode="before")
    @classmethod
    def _normalize_services(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [{"name": v} if isinstance(v, str) else v for v in value if v]

    @field_validator("hours", mode="before")
    @classmethod
    def _normalize_hours(cls, value: Any) -> Any:
        if isinstance(value, list):
            value = "; ".join(str(v).strip() for v in value if str(v).strip())
        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()

    @property
    def has_hours(self) -> bool:
        return bool(self.hours)

    @property
    def has_pricing(self) -> bool:
        return any((p.price or p.item or "").strip() for p in self.pricing)


class ChatTurnRequest(WireModel):
    message: Optional[str] = None
    client_id: Optional[str] = None
    conversation_id: Optional[str] = None
    history: List[Any] = Field(default_factory=list)
    signals: Signals = Field(default_factory=Signals)
    channel: str = ChannelType.WIDGET.value
    site_context: Optional[Dict[str, Any]] = None
    meta: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("message", "client_id", "conversation_id", mode="before")
    @classmethod
    def _non_string_to_none(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None

    @field_validator("channel", mode="before")
    @classmethod
    def _channel_default(cls, value: Any) -> Any:
        if not isinstance(value, str) or not value.strip():
            return ChannelType.WIDGET.value
        return value.strip().lower()

    @field_validator("history", mode="before")
    @classmethod
    def _history_must_be_list(cls, value: Any) -> Any:
        return value if isinstance(value, list) else []

    @field_validator("signals", mode="before")
    @classmethod
    def _signals_must_be_mapping(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, Signals)) else {}

    @field_validator("site_context", mode="before")
    @classmethod
    def _site_context_must_be_mapping(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @field_validator("meta", mode="before")
    @classmethod
    def _meta_must_be_mapping(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


class ChatTurnResponse(WireModel):
    reply: str
    route: Route
    cta_type: CtaType
    cta_url: Optional[str] = None
    conversation_id: Optional[str] = None
    signals: Signals
    debug: Dict[str, Any] = Field(default_factory=dict)


class CtaClickRequest(WireModel):
    client_id: Optional[str] = None
    conversation_id: Optional[str] = None
    cta_type: CtaType
    job: Optional[str] = None
    page_url: Optional[str] = None
    signals: Signals = Field(default_factory=Signals)

    @field_validator("signals", mode="before")
    @classmethod
    def _signals_must_be_mapping(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, Signals)) else {}


class SafetyFilterResult(BaseModel):
    text: str
    changed: bool = False
    reasons: List[str] = Field(default_factory=list)


class TurnContext(BaseModel):
    message: str
    history: List[Message] = Field(default_factory=list)
    route: Route
    business_summary: BusinessSummary = Field(default_factory=BusinessSummary)
    cta_url: Optional[str] = None
    client_id: str = ""
    conversation_id: Optional[str] = None
    channel: str = ChannelType.WIDGET.value

    @property
    def facts(self) -> Facts:
        return self.route.facts


class JobReply(BaseModel):
    text: str
    agent: str
    model_generated: bool = False
    # Deterministic lead-in of `text`; only what follows it came from the model.
    preamble: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def model_text(self) -> str:
        if self.preamble and self.text.startswith(self.preamble):
            return self.text[len(self.preamble) :].strip()
        return self.text


class AgentDecisionLog(BaseModel):
    timestamp: datetime = Field(default_factory=_utcnow)
    conversation_id: Optional[str] = None
    client_id: Optional[str] = None
    agent: str
    action: str
    reasoning: str
    duration_ms: int = 0
    outcome: str = "ok"


class EscalationAuditRecord(BaseModel):
    timestamp: datetime = Field(default_factory=_utcnow)
    event_type: str = "escalation"
    reason: EscalationReason
    message_fingerprint: str
    conversation_id: Optional[str] = None
    client_id: Optional[str] = None
