# app/schemas/__init__.py
from app.schemas.user import (
    UserBase, UserCreate, UserUpdate, UserResponse, AdminUserResponse
)
from app.schemas.auth import (
    UserLogin, AuthResponse, SessionCheck
)
from app.schemas.chat import (
    ChatMessage, ChatResponse
)
from app.schemas.funnel import (
    FunnelSessionCreated, FunnelMessage, OfferChoice, CommentsIn,
    FunnelReplyResponse, FunnelStatus
)
from app.schemas.payment import (
    PaymentIntentCreate, PaymentIntentResponse, PaymentVerify, PaymentVerifyResponse
)
from app.schemas.admin import (
    StatisticsResponse, PaymentsResponse, UnpaidSessionsResponse, UnpaidSessionDetail,
    PaidSessionSummary, UnpaidSessionSummary, TranscriptMessage,
    ConversationList, ConversationSummary, ConversationMessageOut
)
from app.schemas.common import (
    SuccessResponse, PurgeResponse
)

__all__ = [
    # User
    "UserBase", "UserCreate", "UserUpdate", "UserResponse", "AdminUserResponse",
    # Auth
    "UserLogin", "AuthResponse", "SessionCheck",
    # Chat
    "ChatMessage", "ChatResponse",
    # Funnel
    "FunnelSessionCreated", "FunnelMessage", "OfferChoice", "CommentsIn",
    "FunnelReplyResponse", "FunnelStatus",
    # Payments
    "PaymentIntentCreate", "PaymentIntentResponse", "PaymentVerify", "PaymentVerifyResponse",
    # Admin
    "StatisticsResponse", "PaymentsResponse", "UnpaidSessionsResponse", "UnpaidSessionDetail",
    "PaidSessionSummary", "UnpaidSessionSummary", "TranscriptMessage",
    "ConversationList", "ConversationSummary", "ConversationMessageOut",
    # Common
    "SuccessResponse", "PurgeResponse"
]
