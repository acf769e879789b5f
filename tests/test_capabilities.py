import json
from datetime import date

import pytest

from conftest import APPROVED_TAX_ID, REVIEW_TAX_ID
from origination.core.config import LoanConfig
from origination.database.models import Application, Customer, Document
from origination.database.models.enums import ApplicationStatus, Stage
from origination.services.capabilities import CapabilityName, CapabilitySet
from origination.services.credit import MockBureauProvider
from origination.services.pricing import PricingEngine

PHONE = "5511999990000"


@pytest.fixture
def capabilities(db):
    def _make(phone=PHONE, **kwargs):
        loan = LoanConfig()
        return CapabilitySet(
            db,
            phone,
            bureau=MockBureauProvider(),
            pricing=PricingEngine(loan),
            loan_config=loan,
            **kwargs,
        )
    return _make


async def call(caps, name, /, **arguments):
    result = await caps.execute(name, arguments)
    return json.loads(result.content), result.is_error


def test_every_capability_has_a_tool_schema():
    from origination.services.tools import get_capability_tools

    names = {tool["function"]["name"] for tool in get_capability_tools()}

    assert names == {c.value for c in CapabilityName}


async def test_unknown_capability_is_a_structured_error(capabilities):
    payload, is_error = await call(capabilities(), "transfer_money", amount=10)

    assert is_error
    assert payload["code"] == "unknown_capability"


async def test_invalid_arguments_name_the_field(capabilities):
    payload, is_error = await call(capabilities(), "simulate_loan", amount=-5, installments=12)

    assert is_error
    assert payload["code"] == "validation_error"
    assert "amount" in payload["errors"]


async def test_unexpected_failure_becomes_generic_error(capabilities, monkeypatch):
    caps = capabilities()

    def explode(*args, **kwargs):
        raise RuntimeError("pricing exploded")

    monkeypatch.setattr(caps.pricing, "simulate", explode)
    payload, is_error = await call(caps, "simulate_loan", amount=5000, installments=12)

    assert is_error
    assert payload["code"] == "internal_error"
    assert "exploded" not in payload["error"]


class TestCustomerCapabilities:
    async def test_get_customer_creates_and_masks(self, db, capabilities, consenting_customer):
        payload, _ = await call(capabilities(phone="5511888880000"), "get_customer")
        assert payload["stage"] == Stage.NEW.value
        assert payload["consent_given"] is False

        consenting_customer(tax_id=REVIEW_TAX_ID)
        payload, _ = await call(capabilities(), "get_customer")
        assert payload["tax_id"] == "***.982.247-**"
        assert payload["has_income"] is True
        assert payload["documents"]["complete"] is False

    async def test_consent_granted_moves_to_qualifying(self, db, capabilities):
        payload, is_error = await call(capabilities(), "record_consent", granted=True)

        customer = db.query(Customer).filter_by(phone=PHONE).one()
        assert not is_error
        assert customer.consent_given_at is not None
        assert customer.stage == Stage.QUALIFYING.value

    async def test_consent_refusal_is_not_an_error(self, db, capabilities):
        payload, is_error = await call(capabilities(), "record_consent", granted=False)

        customer = db.query(Customer).filter_by(phone=PHONE).one()
        assert not is_error
        assert payload["consent"] == "refused"
        assert customer.consent_refused_at is not None
        assert not customer.has_consent

    async def test_sensitive_fields_require_consent(self, db, capabilities):
        caps = capabilities()

        payload, is_error = await call(caps, "update_customer", name="Maria Silva", tax_id=APPROVED_TAX_ID)
        assert is_error
        assert set(payload["errors"]) == {"tax_id"}

        payload, is_error = await call(caps, "update_customer", name="Maria Silva")
        assert not is_error
        customer = db.query(Customer).filter_by(phone=PHONE).one()
        assert customer.name == "Maria Silva"
        assert customer.tax_id is None

    async def test_invalid_tax_id_leaves_record_unchanged(self, db, capabilities, make_customer):
        from origination.utils.helpers import utcnow
        customer = make_customer(phone=PHONE, name="Maria", consent_given_at=utcnow())

        payload, is_error = await call(
            capabilities(), "update_customer", tax_id="52998224726", email="maria@example.com", name="Maria Silva"
        )

        db.refresh(customer)
        assert is_error
        assert "tax_id" in payload["errors"]
        assert customer.tax_id is None
        assert customer.email is None
        assert customer.name == "Maria"

    async def test_all_field_errors_reported_together(self, capabilities, make_customer):
        from origination.utils.helpers import utcnow
        make_customer(phone=PHONE, consent_given_at=utcnow())

        payload, is_error = await call(
            capabilities(),
            "update_customer",
            email="not-an-email",
            birth_date=f"{date.today().year - 10}-01-01",
            monthly_income=-100,
        )

        assert is_error
        assert set(payload["errors"]) == {"email", "birth_date", "monthly_income"}

    @pytest.mark.parametrize("income", ["NaN", "inf", float("nan"), float("inf")])
    async def test_non_finite_income_is_rejected(self, db, capabilities, make_customer, income):
        from origination.utils.helpers import utcnow
        customer = make_customer(phone=PHONE, consent_given_at=utcnow(), monthly_income=3000.0)

        payload, is_error = await call(capabilities(), "update_customer", monthly_income=income)

        db.refresh(customer)
        assert is_error
        assert payload["code"] == "validation_error"
        assert "monthly_income" in payload["errors"]
        assert customer.monthly_income == 3000.0

    async def test_tax_id_must_be_unique(self, capabilities, consenting_customer):
        consenting_customer(tax_id=APPROVED_TAX_ID, phone="5511777770000")
        consenting_customer(tax_id=None, phone=PHONE)

        payload, is_error = await call(capabilities(), "update_customer", tax_id=APPROVED_TAX_ID)

        assert is_error
        assert "another customer" in payload["errors"]["tax_id"]

    async def test_valid_update_is_normalized(self, db, capabilities, make_customer):
        from origination.utils.helpers import utcnow
        customer = make_customer(phone=PHONE, consent_given_at=utcnow())

        payload, is_error = await call(
            capabilities(),
            "update_customer",
            tax_id="529.982.247-25",
            email=" Maria@Example.com ",
            birth_date="20/05/1990",
            monthly_income=4500,
            employment_type="CLT",
        )

        db.refresh(customer)
        assert not is_error
        assert customer.tax_id == REVIEW_TAX_ID
        assert customer.email == "maria@example.com"
        assert customer.birth_date == date(1990, 5, 20)
        assert customer.monthly_income == 4500
        assert customer.employment_type == "CLT"


class TestLoanCapabilities:
    async def test_simulation_uses_stored_income(self, db, capabilities, consenting_customer):
        customer = consenting_customer(stage=Stage.QUALIFYING.value)

        payload, is_error = await call(capabilities(), "simulate_loan", amount=10000, installments=12)

        db.refresh(customer)
        assert not is_error
        assert payload["interest_rate"] == 1.69
        assert payload["affordability"]["affordable"] is True
        assert customer.stage == Stage.SIMULATING.value

    async def test_simulation_rejects_non_finite_income(self, capabilities, consenting_customer):
        consenting_customer()

        payload, is_error = await call(
            capabilities(), "simulate_loan", amount=10000, installments=12, monthly_income="NaN"
        )

        assert is_error
        assert "monthly_income" in payload["errors"]

    async def test_simulation_reports_adjustments(self, capabilities):
        payload, _ = await call(capabilities(), "simulate_loan", amount=500, installments=12)

        assert payload["adjusted"] is True
        assert payload["amount"] == 1000

    async def test_application_requires_name_and_tax_id(self, capabilities):
        payload, is_error = await call(capabilities(), "create_application", amount=5000, installments=12)

        assert is_error
        assert payload["code"] == "missing_data"
        assert set(payload["errors"]) == {"name", "tax_id"}

    async def test_application_rejects_out_of_bounds_terms(self, capabilities, consenting_customer):
        consenting_customer()

        payload, is_error = await call(capabilities(), "create_application", amount=200000, installments=60)

        assert is_error
        assert set(payload["errors"]) == {"amount", "installments"}

    async def test_application_freezes_terms_and_blocks_duplicates(self, db, capabilities, consenting_customer):
        customer = consenting_customer()
        caps = capabilities()

        payload, is_error = await call(caps, "create_application", amount=10000, installments=12, purpose="EDUCATION")
        assert not is_error
        application = db.get(Application, payload["application_id"])
        assert application.status == ApplicationStatus.SIMULATED.value
        assert application.interest_rate == 1.69
        assert application.purpose == "EDUCATION"
        db.refresh(customer)
        assert customer.stage == Stage.DOCUMENTS_PENDING.value

        payload, is_error = await call(caps, "create_application", amount=5000, installments=6)
        assert is_error
        assert payload["code"] == "active_application_exists"
        assert db.query(Application).count() == 1

    async def test_documents_complete_triggers_identity_verification(self, db, capabilities, consenting_customer):
        customer = consenting_customer()
        caps = capabilities(inbound_media_url="https://media.example.com/1.jpg", inbound_media_type="image/jpeg")

        for document_type in ("ID_FRONT", "ID_BACK", "PROOF_OF_INCOME", "PROOF_OF_ADDRESS"):
            payload, is_error = await call(caps, "register_document", document_type=document_type)
            assert not is_error
            assert "identity_verification" not in payload

        payload, _ = await call(caps, "register_document", document_type="SELFIE")

        db.refresh(customer)
        assert payload["complete"] is True
        assert payload["identity_verification"]["verified"] is True
        assert customer.kyc_verified
        assert db.query(Document).first().media_url == "https://media.example.com/1.jpg"

    async def test_registering_same_type_overwrites(self, db, capabilities, consenting_customer):
        consenting_customer()
        caps = capabilities()

        await call(caps, "register_document", document_type="ID_FRONT", media_url="https://a")
        await call(caps, "register_document", document_type="ID_FRONT", media_url="https://b")
        payload, _ = await call(caps, "check_documents")

        assert db.query(Document).count() == 1
        assert db.query(Document).one().media_url == "https://b"
        assert len(payload["missing"]) == 4

    async def test_cannot_touch_another_customers_application(
        self, capabilities, consenting_customer, make_application
    ):
        other = consenting_customer(phone="5511777770000", tax_id=REVIEW_TAX_ID)
        application = make_application(other)
        consenting_customer()

        payload, is_error = await call(capabilities(), "run_credit_analysis", application_id=application.id)

        assert is_error
        assert payload["code"] == "not_found"

    async def test_contract_requires_approval(self, capabilities, consenting_customer, make_application):
        application = make_application(consenting_customer())

        payload, is_error = await call(capabilities(), "generate_contract", application_id=application.id)

        assert is_error
        assert payload["code"] == "not_approved"

    async def test_full_decision_and_contract_flow(self, db, capabilities, consenting_customer, make_application):
        customer = consenting_customer()
        application = make_application(customer)
        caps = capabilities()

        analysis, is_error = await call(caps, "run_credit_analysis", application_id=application.id)
        assert not is_error
        assert analysis["decision"] == "APPROVED"

        first, _ = await call(caps, "generate_contract", application_id=application.id)
        second, _ = await call(caps, "generate_contract", application_id=application.id)
        assert first["contract_number"] == second["contract_number"]
        assert second["already_existed"] is True

        status, _ = await call(caps, "get_application_status")
        assert status["status"] == ApplicationStatus.CONTRACT_PENDING.value
        assert status["credit_decision"] == "APPROVED"
        assert status["contract_status"] == "SENT"
        db.refresh(customer)
        assert customer.stage == Stage.CONTRACT_SENT.value

    async def test_status_without_application(self, capabilities):
        payload, is_error = await call(capabilities(), "get_application_status")

        assert not is_error
        assert payload["has_application"] is False


class TestUpdateStage:
    async def test_forward_moves_are_allowed(self, db, capabilities, consenting_customer):
        customer = consenting_customer(stage=Stage.SIMULATING.value)

        payload, is_error = await call(capabilities(), "update_stage", stage="DOCUMENTS_PENDING")

        db.refresh(customer)
        assert not is_error
        assert customer.stage == Stage.DOCUMENTS_PENDING.value

    async def test_same_stage_is_a_no_op(self, capabilities, consenting_customer):
        consenting_customer(stage=Stage.SIMULATING.value)

        payload, is_error = await call(capabilities(), "update_stage", stage="SIMULATING")

        assert not is_error
        assert payload["changed"] is False

    @pytest.mark.parametrize("target", ["QUALIFYING", "APPROVED", "DISBURSED"])
    async def test_backward_and_process_stages_are_rejected(self, db, capabilities, consenting_customer, target):
        customer = consenting_customer(stage=Stage.SIMULATING.value)

        payload, is_error = await call(capabilities(), "update_stage", stage=target)

        db.refresh(customer)
        assert is_error
        assert payload["code"] == "invalid_transition"
        assert customer.stage == Stage.SIMULATING.value

    async def test_cancel_then_nothing_else(self, db, capabilities, consenting_customer):
        customer = consenting_customer(stage=Stage.DOCUMENTS_PENDING.value)
        caps = capabilities()

        _, is_error = await call(caps, "update_stage", stage="CANCELLED")
        assert not is_error

        payload, is_error = await call(caps, "update_stage", stage="ANALYZING")
        db.refresh(customer)
        assert is_error
        assert customer.stage == Stage.CANCELLED.value

    async def test_cancelling_closes_the_application_and_contract(
        self, db, capabilities, consenting_customer, make_application
    ):
        from origination.services.contracts import ContractService
        from origination.utils.exceptions import BusinessRuleError

        customer = consenting_customer(stage=Stage.APPROVED.value)
        application = make_application(customer, status=ApplicationStatus.APPROVED, approved_amount=10000.0)
        contracts = ContractService(db)
        generated = await contracts.generate(application.id)

        payload, is_error = await call(capabilities(), "update_stage", stage="CANCELLED")

        assert not is_error
        assert customer.stage == Stage.CANCELLED.value
        assert application.status == ApplicationStatus.CANCELLED.value
        assert application.contract.status == "CANCELLED"
        with pytest.raises(BusinessRuleError):
            await contracts.sign(generated.contract_id, "hash", None)
        assert customer.stage == Stage.CANCELLED.value

    async def test_signed_contract_blocks_cancellation(
        self, db, capabilities, consenting_customer, make_application
    ):
        from origination.services.contracts import ContractService

        customer = consenting_customer(stage=Stage.APPROVED.value)
        application = make_application(customer, status=ApplicationStatus.APPROVED, approved_amount=10000.0)
        contracts = ContractService(db)
        generated = await contracts.generate(application.id)
        await contracts.sign(generated.contract_id, "hash", None)

        payload, is_error = await call(capabilities(), "update_stage", stage="CANCELLED")

        assert is_error
        assert payload["code"] == "signed"
        assert customer.stage == Stage.CONTRACT_SIGNED.value
        assert application.status == ApplicationStatus.DISBURSEMENT_PENDING.value
