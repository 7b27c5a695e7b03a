from .schemas import (
    BusinessSummary,
    ChannelType,
    ChatTurnRequest,
    ChatTurnResponse,
    Cta,
    CtaType,
    EscalationReason,
    Facts,
    JobId,
    JobReply,
    Message,
    Route,
    Signals,
    TurnContext,
)

__all__ = [
    "BusinessSummary",
    "ChannelType",
    "ChatTurnRequest",
    "ChatTurnResponse",
    "Cta",
    "CtaType",
    "EscalationReason",
    "Facts",
    "JobId",
    "JobReply",
    "Message",
    "Route",
    "Signals",
    "TurnContext",
]
