import math

import pytest

from conftest import APPROVED_TAX_ID, DENIED_TAX_ID, REVIEW_TAX_ID
from origination.database.models import CreditAnalysis
from origination.database.models.enums import ApplicationStatus, CreditDecision, FraudRisk, Stage
from origination.services.credit import CreditAnalysisService, MockBureauProvider, debt_to_income, decide
from origination.utils.exceptions import BusinessRuleError


class TestDecide:
    def test_strong_profile_gets_lowest_rate_tier(self):
        outcome = decide(850, FraudRisk.LOW, 0.1, 10000, 5000)

        assert outcome.decision == CreditDecision.APPROVED
        assert outcome.suggested_rate == 1.49
        assert outcome.max_approved_amount == 10000

    def test_low_score_is_denied_regardless(self):
        assert decide(250, FraudRisk.LOW, 0.0, 1000, 50000).decision == CreditDecision.DENIED

    def test_high_fraud_risk_is_always_denied(self):
        outcome = decide(900, FraudRisk.HIGH, 0.05, 1000, 50000)

        assert outcome.decision == CreditDecision.DENIED
        assert "fraud" in outcome.reason.lower()

    def test_excessive_commitment_is_denied(self):
        assert decide(800, FraudRisk.LOW, 0.75, 10000, 5000).decision == CreditDecision.DENIED
        assert decide(800, FraudRisk.LOW, math.inf, 10000, None).decision == CreditDecision.DENIED

    @pytest.mark.parametrize("score,risk,dti", [
        (450, FraudRisk.LOW, 0.2),
        (700, FraudRisk.MEDIUM, 0.2),
        (700, FraudRisk.LOW, 0.6),
    ])
    def test_borderline_profiles_go_to_manual_review(self, score, risk, dti):
        outcome = decide(score, risk, dti, 10000, 5000)

        assert outcome.decision == CreditDecision.MANUAL_REVIEW
        assert outcome.max_approved_amount == 10000
        assert outcome.suggested_rate is None

    def test_approved_amount_is_capped_by_income_multiple(self):
        middle = decide(700, FraudRisk.LOW, 0.2, 20000, 1500)
        lower = decide(550, FraudRisk.LOW, 0.2, 20000, 1500)

        assert (middle.suggested_rate, middle.max_approved_amount) == (1.99, 15000)
        assert (lower.suggested_rate, lower.max_approved_amount) == (2.49, 9000)


def test_debt_to_income_includes_existing_debt_share():
    assert debt_to_income(900, 1000, 5000) == pytest.approx((900 + 30) / 5000)
    assert debt_to_income(900, 1000, None) == math.inf
    assert debt_to_income(900, 1000, 0) == math.inf
    assert debt_to_income(900, 1000, float("nan")) == math.inf
    assert debt_to_income(900, 1000, math.inf) == math.inf


def test_non_finite_income_is_never_approved():
    outcome = decide(820, FraudRisk.LOW, debt_to_income(900, 1000, float("nan")), 10000, float("nan"))

    assert outcome.decision == CreditDecision.DENIED


async def test_mock_bureau_is_deterministic():
    bureau = MockBureauProvider()

    first = await bureau.check_credit(APPROVED_TAX_ID)
    second = await bureau.check_credit(APPROVED_TAX_ID)

    assert first == second
    assert (first.score, first.fraud_risk, first.existing_debt_total) == (844, FraudRisk.LOW, 858.0)
    assert (await bureau.check_credit(REVIEW_TAX_ID)).fraud_risk == FraudRisk.MEDIUM
    assert (await bureau.check_credit(DENIED_TAX_ID)).fraud_risk == FraudRisk.HIGH


class TestCreditAnalysisService:
    async def test_approval_updates_application_and_customer(self, db, consenting_customer, make_application):
        customer = consenting_customer(tax_id=APPROVED_TAX_ID)
        application = make_application(customer)

        result = await CreditAnalysisService(db, MockBureauProvider()).analyze(customer, application)

        assert result.decision == CreditDecision.APPROVED
        assert result.score == 844
        assert result.suggested_rate == 1.49
        assert result.debt_to_income == pytest.approx(19.07, abs=0.01)
        assert result.provider == "bureau_mock"
        assert application.status == ApplicationStatus.APPROVED.value
        assert application.approved_amount == 10000
        assert customer.stage == Stage.APPROVED.value
        assert application.credit_analysis.raw_response["score"] == 844

    async def test_second_analysis_returns_stored_result(self, db, consenting_customer, make_application):
        customer = consenting_customer(tax_id=APPROVED_TAX_ID)
        application = make_application(customer)
        service = CreditAnalysisService(db, MockBureauProvider())

        await service.analyze(customer, application)
        again = await service.analyze(customer, application)

        assert again.already_analyzed
        assert again.decision == CreditDecision.APPROVED
        assert db.query(CreditAnalysis).count() == 1

    async def test_manual_review(self, db, consenting_customer, make_application):
        customer = consenting_customer(tax_id=REVIEW_TAX_ID)
        application = make_application(customer)

        result = await CreditAnalysisService(db, MockBureauProvider()).analyze(customer, application)

        assert result.decision == CreditDecision.MANUAL_REVIEW
        assert application.status == ApplicationStatus.UNDER_REVIEW.value
        assert customer.stage == Stage.ANALYZING.value

    async def test_denial_records_reason(self, db, consenting_customer, make_application):
        customer = consenting_customer(tax_id=DENIED_TAX_ID)
        application = make_application(customer)

        result = await CreditAnalysisService(db, MockBureauProvider()).analyze(customer, application)

        assert result.decision == CreditDecision.DENIED
        assert application.status == ApplicationStatus.DENIED.value
        assert application.denial_reason == result.reason
        assert customer.stage == Stage.DENIED.value

    async def test_unknown_income_stores_no_ratio(self, db, consenting_customer, make_application):
        customer = consenting_customer(tax_id=APPROVED_TAX_ID, monthly_income=None)
        application = make_application(customer)

        result = await CreditAnalysisService(db, MockBureauProvider()).analyze(customer, application)

        assert result.decision == CreditDecision.DENIED
        assert result.debt_to_income is None
        assert application.credit_analysis.debt_to_income is None

    async def test_only_simulated_applications_are_analyzed(self, db, consenting_customer, make_application):
        customer = consenting_customer()
        application = make_application(customer, status=ApplicationStatus.CANCELLED)

        with pytest.raises(BusinessRuleError) as exc:
            await CreditAnalysisService(db, MockBureauProvider()).analyze(customer, application)

        assert exc.value.code == "invalid_status"
        assert db.query(CreditAnalysis).count() == 0

    async def test_analysis_rows_are_immutable(self, db, consenting_customer, make_application):
        customer = consenting_customer()
        application = make_application(customer)
        await CreditAnalysisService(db, MockBureauProvider()).analyze(customer, application)

        analysis = db.query(CreditAnalysis).one()
        analysis.credit_score = 999
        with pytest.raises(ValueError):
            db.commit()
        db.rollback()
