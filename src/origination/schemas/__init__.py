"""
Pydantic schemas for request/response validation
"""
from origination.schemas.pricing import (
    LoanSimulation,
    InstallmentRow,
    Affordability,
    SimulationRequest,
    SimulationResponse,
)
from origination.schemas.credit import (
    DecisionOutcome,
    CreditResult,
)
from origination.schemas.contracts import (
    ContractResult,
    ContractView,
)
from origination.schemas.chat import (
    InboundMessage,
    ChatWebhookAck,
)
from origination.schemas.webhooks import WebhookAck

__all__ = [
    # Pricing
    "LoanSimulation",
    "InstallmentRow",
    "Affordability",
    "SimulationRequest",
    "SimulationResponse",
    # Credit
    "DecisionOutcome",
    "CreditResult",
    # Contracts
    "ContractResult",
    "ContractView",
    # Chat
    "InboundMessage",
    "ChatWebhookAck",
    # Webhooks
    "WebhookAck",
]
