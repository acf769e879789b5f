"""
Credit decision engine and analysis service.

`decide` holds the decision rules and is pure. `CreditAnalysisService`
gathers the bureau signal, applies the rules and persists the outcome.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from origination.database.models import Application, CreditAnalysis, Customer
from origination.database.models.enums import (
    ApplicationStatus, CreditDecision, FraudRisk, Stage,
)
from origination.database.session import atomic
from origination.schemas.credit import CreditResult, DecisionOutcome
from origination.utils.exceptions import BusinessRuleError
from origination.utils.helpers import mask_tax_id, only_digits, round_money, utcnow
from origination.utils.logging import get_logger

logger = get_logger(__name__)

# Share of outstanding debt assumed to be paid every month
EXISTING_DEBT_MONTHLY_SHARE = 0.03


@dataclass
class BureauSignal:
    score: int
    fraud_risk: FraudRisk
    existing_debt_total: float
    raw: Dict[str, Any] = field(default_factory=dict)


class BureauProvider:
    """Credit bureau interface"""

    name: str = "bureau"

    async def check_credit(self, tax_id: str) -> BureauSignal:
        raise NotImplementedError


class MockBureauProvider(BureauProvider):
    """
    Deterministic bureau for development and tests: the same tax id always
    yields the same score, fraud risk and outstanding debt.
    """

    name = "bureau_mock"

    async def check_credit(self, tax_id: str) -> BureauSignal:
        digit_sum = sum(int(d) for d in only_digits(tax_id))
        score = 300 + (digit_sum * 17) % 700
        if score > 700:
            fraud_risk = FraudRisk.LOW
        elif score > 400:
            fraud_risk = FraudRisk.MEDIUM
        else:
            fraud_risk = FraudRisk.HIGH
        existing = float(round((1000 - score) * 5.5))

        logger.info(f"[cyan]Mock credit check[/cyan] {mask_tax_id(tax_id)}: score={score}")
        return BureauSignal(
            score=score,
            fraud_risk=fraud_risk,
            existing_debt_total=existing,
            raw={"score": score, "fraud_risk": fraud_risk.value, "existing_debts": existing, "provider": self.name},
        )


def debt_to_income(monthly_payment: float, existing_debt_total: float, monthly_income: Optional[float]) -> float:
    """
    Share of income committed to debt, new installment included.
    Unknown, zero or non-finite income is treated as unaffordable (infinity).
    """
    if monthly_income is None or not math.isfinite(monthly_income) or monthly_income <= 0:
        return math.inf
    return (monthly_payment + existing_debt_total * EXISTING_DEBT_MONTHLY_SHARE) / monthly_income


def decide(
    score: int,
    fraud_risk: FraudRisk,
    dti: float,
    requested_amount: float,
    monthly_income: Optional[float],
) -> DecisionOutcome:
    """
    Apply the credit policy. Rules are evaluated in order; the first match wins.
    """
    income = monthly_income or 0.0

    if fraud_risk == FraudRisk.HIGH:
        return DecisionOutcome(decision=CreditDecision.DENIED, reason="High fraud risk identified.")
    if score < 300:
        return DecisionOutcome(decision=CreditDecision.DENIED, reason="Credit score below the minimum.")
    if dti > 0.70:
        return DecisionOutcome(decision=CreditDecision.DENIED, reason="Income commitment above the limit.")

    if score < 500 or fraud_risk == FraudRisk.MEDIUM or dti > 0.50:
        return DecisionOutcome(
            decision=CreditDecision.MANUAL_REVIEW,
            reason="Analysis requires manual review.",
            max_approved_amount=round_money(min(requested_amount, income * 6)),
        )

    if score >= 800:
        multiplier, rate = 15, 1.49
    elif score >= 650:
        multiplier, rate = 10, 1.99
    else:
        multiplier, rate = 6, 2.49

    return DecisionOutcome(
        decision=CreditDecision.APPROVED,
        reason=f"Approved with score {score}. Adequate credit profile.",
        max_approved_amount=round_money(min(requested_amount, income * multiplier)),
        suggested_rate=rate,
    )


_APPLICATION_STATUS = {
    CreditDecision.APPROVED: ApplicationStatus.APPROVED,
    CreditDecision.DENIED: ApplicationStatus.DENIED,
    CreditDecision.MANUAL_REVIEW: ApplicationStatus.UNDER_REVIEW,
}

_CUSTOMER_STAGE = {
    CreditDecision.APPROVED: Stage.APPROVED,
    CreditDecision.DENIED: Stage.DENIED,
    CreditDecision.MANUAL_REVIEW: Stage.ANALYZING,
}


class CreditAnalysisService:
    """Runs the credit decision for an application and records it"""

    def __init__(self, db: Session, bureau: BureauProvider):
        self.db = db
        self.bureau = bureau

    async def analyze(self, customer: Customer, application: Application) -> CreditResult:
        """
        Analyze an application once. A second call returns the stored analysis unchanged.

        Raises:
            BusinessRuleError: If the customer has no tax id or the application is not awaiting analysis
        """
        if application.credit_analysis is not None:
            return self._to_result(application, application.credit_analysis, already_analyzed=True)
        if not customer.tax_id:
            raise BusinessRuleError("Tax id not registered", code="missing_tax_id")
        if application.status != ApplicationStatus.SIMULATED.value:
            raise BusinessRuleError(
                f"Application is {application.status} and cannot be analyzed", code="invalid_status"
            )

        signal = await self.bureau.check_credit(customer.tax_id)
        income = customer.monthly_income
        dti = debt_to_income(application.monthly_payment, signal.existing_debt_total, income)
        outcome = decide(signal.score, signal.fraud_risk, dti, application.requested_amount, income)

        with atomic(self.db):
            analysis = CreditAnalysis(
                application_id=application.id,
                credit_score=signal.score,
                score_provider=self.bureau.name,
                fraud_risk=signal.fraud_risk.value,
                debt_to_income=None if math.isinf(dti) else dti,
                existing_debts=signal.existing_debt_total,
                decision=outcome.decision.value,
                decision_reason=outcome.reason,
                raw_response=signal.raw,
                analyzed_at=utcnow(),
            )
            self.db.add(analysis)
            application.credit_analysis = analysis
            application.status = _APPLICATION_STATUS[outcome.decision].value
            application.approved_amount = outcome.max_approved_amount
            application.denial_reason = outcome.reason if outcome.decision == CreditDecision.DENIED else None
            customer.stage = _CUSTOMER_STAGE[outcome.decision].value

        logger.info(
            f"[green]✅ Credit analysis completed:[/green] application={application.id} "
            f"score={signal.score} decision=[bold]{outcome.decision.value}[/bold]"
        )
        return self._to_result(application, analysis, suggested_rate=outcome.suggested_rate)

    @staticmethod
    def _to_result(
        application: Application,
        analysis: CreditAnalysis,
        suggested_rate: Optional[float] = None,
        already_analyzed: bool = False,
    ) -> CreditResult:
        dti = analysis.debt_to_income
        return CreditResult(
            application_id=application.id,
            score=analysis.credit_score,
            provider=analysis.score_provider,
            fraud_risk=FraudRisk(analysis.fraud_risk),
            debt_to_income=None if dti is None else round(dti * 100, 2),
            existing_debts=analysis.existing_debts,
            decision=CreditDecision(analysis.decision),
            reason=analysis.decision_reason,
            max_approved_amount=application.approved_amount,
            suggested_rate=suggested_rate,
            analyzed_at=analysis.analyzed_at,
            already_analyzed=already_analyzed,
        )
