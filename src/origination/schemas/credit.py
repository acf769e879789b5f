"""
Credit decision schemas
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from origination.database.models.enums import CreditDecision, FraudRisk


class DecisionOutcome(BaseModel):
    """Result of the decision rules for one application"""
    decision: CreditDecision
    reason: str
    max_approved_amount: Optional[float] = None
    suggested_rate: Optional[float] = None  # monthly %


class CreditResult(BaseModel):
    """What the assistant is told about a finished analysis"""
    application_id: int
    score: int
    provider: str
    fraud_risk: FraudRisk
    debt_to_income: Optional[float] = None  # % of income; None when income is unknown
    existing_debts: float
    decision: CreditDecision
    reason: str
    max_approved_amount: Optional[float] = None
    suggested_rate: Optional[float] = None
    analyzed_at: datetime
    already_analyzed: bool = False
