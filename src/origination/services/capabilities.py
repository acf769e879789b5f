"""
Capability set: the operations the reasoning service may invoke.

The set of capabilities is closed (CapabilityName). Each one has a pydantic
input model and a handler; `CapabilitySet.execute` validates the arguments,
runs the handler and always answers with a CapabilityResult. Failures of any
kind come back as `is_error=True` results the reasoning service can read and
correct, never as exceptions.
"""
import json
import math
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator
from sqlalchemy.orm import Session

from origination.core.config import LoanConfig, settings
from origination.database.models import Application, Customer
from origination.database.models.enums import (
    ApplicationStatus, ContractStatus, DocumentType, EmploymentType, LoanPurpose, STAGE_ORDER, Stage,
    TERMINAL_STAGES,
)
from origination.database.session import atomic
from origination.external.providers.funder import FunderClient
from origination.external.providers.kyc import IdentityVerifierClient
from origination.external.providers.signer import SignerClient
from origination.repositories.application_repository import ApplicationRepository
from origination.repositories.customer_repository import CustomerRepository
from origination.services.contracts import ContractService
from origination.services.credit import BureauProvider, CreditAnalysisService
from origination.services.documents import DocumentService
from origination.services.identity import IdentityService
from origination.services.pricing import PricingEngine
from origination.utils.exceptions import BusinessRuleError
from origination.utils.helpers import (
    age_on, mask_tax_id, only_digits, parse_date, utcnow, validate_email, validate_tax_id,
)
from origination.utils.logging import get_logger

logger = get_logger(__name__)


class CapabilityName(str, Enum):
    GET_CUSTOMER = "get_customer"
    RECORD_CONSENT = "record_consent"
    UPDATE_CUSTOMER = "update_customer"
    SIMULATE_LOAN = "simulate_loan"
    CREATE_APPLICATION = "create_application"
    CHECK_DOCUMENTS = "check_documents"
    REGISTER_DOCUMENT = "register_document"
    RUN_CREDIT_ANALYSIS = "run_credit_analysis"
    GENERATE_CONTRACT = "generate_contract"
    GET_APPLICATION_STATUS = "get_application_status"
    UPDATE_STAGE = "update_stage"


class CapabilityResult(BaseModel):
    content: str
    is_error: bool = False


# Stages only the credit analysis and contract flow may set
SYSTEM_MANAGED_STAGES = {
    Stage.APPROVED, Stage.DENIED, Stage.CONTRACT_SENT, Stage.CONTRACT_SIGNED, Stage.DISBURSED,
}


# Input models

class NoInput(BaseModel):
    pass


class RecordConsentInput(BaseModel):
    granted: bool


class UpdateCustomerInput(BaseModel):
    name: Optional[str] = None
    tax_id: Optional[str] = None
    email: Optional[str] = None
    birth_date: Optional[str] = None
    monthly_income: Optional[float] = Field(None, allow_inf_nan=False)
    employer_name: Optional[str] = None
    employment_type: Optional[EmploymentType] = None

    @field_validator("tax_id", "birth_date", mode="before")
    @classmethod
    def _numbers_as_text(cls, v):
        return str(v) if isinstance(v, int) else v


class SimulateLoanInput(BaseModel):
    amount: float = Field(..., gt=0)
    installments: int = Field(..., gt=0)
    monthly_income: Optional[float] = Field(None, gt=0, allow_inf_nan=False)


class CreateApplicationInput(BaseModel):
    amount: float = Field(..., gt=0)
    installments: int = Field(..., gt=0)
    purpose: Optional[LoanPurpose] = None


class RegisterDocumentInput(BaseModel):
    document_type: DocumentType
    media_url: Optional[str] = None
    media_type: Optional[str] = None


class ApplicationInput(BaseModel):
    application_id: int


class UpdateStageInput(BaseModel):
    stage: Stage


def _ok(payload: Dict[str, Any]) -> CapabilityResult:
    return CapabilityResult(content=json.dumps(payload, default=str, ensure_ascii=False))


def _fail(message: str, code: str, errors: Optional[Dict[str, str]] = None) -> CapabilityResult:
    payload: Dict[str, Any] = {"success": False, "code": code, "error": message}
    if errors:
        payload["errors"] = errors
    return CapabilityResult(content=json.dumps(payload, default=str, ensure_ascii=False), is_error=True)


def _application_summary(application: Application) -> Dict[str, Any]:
    return {
        "application_id": application.id,
        "status": application.status,
        "requested_amount": application.requested_amount,
        "approved_amount": application.approved_amount,
        "installments": application.installments,
        "interest_rate": application.interest_rate,
        "monthly_payment": application.monthly_payment,
    }


class CapabilitySet:
    """
    Capabilities bound to one customer (by phone) for one pipeline run.
    """

    def __init__(
        self,
        db: Session,
        phone: str,
        bureau: BureauProvider,
        pricing: Optional[PricingEngine] = None,
        signer: Optional[SignerClient] = None,
        funder: Optional[FunderClient] = None,
        verifier: Optional[IdentityVerifierClient] = None,
        loan_config: Optional[LoanConfig] = None,
        inbound_media_url: Optional[str] = None,
        inbound_media_type: Optional[str] = None,
    ):
        self.db = db
        self.phone = phone
        self.bureau = bureau
        self.loan = loan_config or settings.loan
        self.pricing = pricing or PricingEngine(self.loan)
        self.signer = signer
        self.funder = funder
        self.verifier = verifier
        self.inbound_media_url = inbound_media_url
        self.inbound_media_type = inbound_media_type

        self.customers = CustomerRepository(db)
        self.applications = ApplicationRepository(db)
        self.documents = DocumentService(db)

        self._dispatch = {
            CapabilityName.GET_CUSTOMER: (NoInput, self.get_customer),
            CapabilityName.RECORD_CONSENT: (RecordConsentInput, self.record_consent),
            CapabilityName.UPDATE_CUSTOMER: (UpdateCustomerInput, self.update_customer),
            CapabilityName.SIMULATE_LOAN: (SimulateLoanInput, self.simulate_loan),
            CapabilityName.CREATE_APPLICATION: (CreateApplicationInput, self.create_application),
            CapabilityName.CHECK_DOCUMENTS: (NoInput, self.check_documents),
            CapabilityName.REGISTER_DOCUMENT: (RegisterDocumentInput, self.register_document),
            CapabilityName.RUN_CREDIT_ANALYSIS: (ApplicationInput, self.run_credit_analysis),
            CapabilityName.GENERATE_CONTRACT: (ApplicationInput, self.generate_contract),
            CapabilityName.GET_APPLICATION_STATUS: (NoInput, self.get_application_status),
            CapabilityName.UPDATE_STAGE: (UpdateStageInput, self.update_stage),
        }

    async def execute(self, name: str, arguments: Optional[Dict[str, Any]]) -> CapabilityResult:
        try:
            capability = CapabilityName(name)
        except ValueError:
            return _fail(f"Unknown capability '{name}'", code="unknown_capability")

        input_model, handler = self._dispatch[capability]
        try:
            params = input_model.model_validate(arguments or {})
        except PydanticValidationError as e:
            errors = {".".join(str(p) for p in err["loc"]) or "input": err["msg"] for err in e.errors()}
            return _fail("Invalid input", code="validation_error", errors=errors)

        try:
            return await handler(params)
        except BusinessRuleError as e:
            return _fail(e.message, code=e.code)
        except HTTPException as e:
            self.db.rollback()
            return _fail(str(e.detail), code="failed")
        except Exception as e:
            self.db.rollback()
            logger.error(f"[red]❌ Capability {capability.value} failed:[/red] {e!r}")
            return _fail(f"Could not complete {capability.value}. Please try again.", code="internal_error")

    def _customer(self) -> Customer:
        customer = self.customers.get_by_phone(self.phone)
        if customer is None:
            with atomic(self.db):
                customer = self.customers.upsert_by_phone(self.phone)
        return customer

    def _owned_application(self, customer: Customer, application_id: int) -> Optional[Application]:
        application = self.applications.find_by_id(application_id)
        if application is None or application.customer_id != customer.id:
            return None
        return application

    # Capabilities

    async def get_customer(self, params: NoInput) -> CapabilityResult:
        customer = self._customer()
        latest = self.applications.latest_for_customer(customer.id)
        return _ok({
            "customer_id": customer.id,
            "name": customer.name,
            "tax_id": mask_tax_id(customer.tax_id) if customer.tax_id else None,
            "email": customer.email,
            "has_birth_date": customer.birth_date is not None,
            "has_income": customer.monthly_income is not None,
            "employment_type": customer.employment_type,
            "stage": customer.stage,
            "consent_given": customer.has_consent,
            "consent_refused": customer.consent_refused_at is not None and not customer.has_consent,
            "identity_verified": customer.kyc_verified,
            "documents": self.documents.summary(customer),
            "latest_application": _application_summary(latest) if latest else None,
        })

    async def record_consent(self, params: RecordConsentInput) -> CapabilityResult:
        customer = self._customer()
        with atomic(self.db):
            if params.granted:
                if customer.consent_given_at is None:
                    customer.consent_given_at = utcnow()
                customer.consent_refused_at = None
                if customer.stage == Stage.NEW.value:
                    customer.stage = Stage.QUALIFYING.value
            else:
                customer.consent_refused_at = utcnow()
                customer.consent_given_at = None

        if params.granted:
            return _ok({"success": True, "consent": "granted", "stage": customer.stage})
        return _ok({
            "success": True,
            "consent": "refused",
            "message": "Consent refused. Personal data cannot be collected.",
        })

    def _validate_customer_fields(self, customer: Customer, fields: Dict[str, Any]) -> Dict[str, str]:
        errors: Dict[str, str] = {}

        if not customer.has_consent:
            for field in fields:
                if field != "name":
                    errors[field] = "Consent must be recorded before collecting this field"

        if "name" in fields and len(fields["name"].strip()) < 2:
            errors["name"] = "Name is too short"

        if "tax_id" in fields and "tax_id" not in errors:
            tax_id = only_digits(fields["tax_id"])
            if not validate_tax_id(tax_id):
                errors["tax_id"] = "Invalid tax id (check digits do not match)"
            else:
                owner = self.customers.find_by_tax_id(tax_id)
                if owner is not None and owner.id != customer.id:
                    errors["tax_id"] = "Tax id already registered to another customer"

        if "email" in fields and "email" not in errors and not validate_email(fields["email"].strip()):
            errors["email"] = "Invalid email address"

        if "birth_date" in fields and "birth_date" not in errors:
            birth = parse_date(fields["birth_date"])
            today = date.today()
            if birth is None:
                errors["birth_date"] = "Invalid date, expected YYYY-MM-DD"
            elif birth > today:
                errors["birth_date"] = "Birth date is in the future"
            elif age_on(birth, today) < self.loan.min_age:
                errors["birth_date"] = f"Customer must be at least {self.loan.min_age} years old"
            elif age_on(birth, today) > self.loan.max_age:
                errors["birth_date"] = "Birth date is not plausible"

        if "monthly_income" in fields and "monthly_income" not in errors:
            income = fields["monthly_income"]
            if not math.isfinite(income) or income <= 0 or income > self.loan.max_monthly_income:
                errors["monthly_income"] = (
                    f"Income must be greater than 0 and at most {self.loan.max_monthly_income:.2f}"
                )

        return errors

    async def update_customer(self, params: UpdateCustomerInput) -> CapabilityResult:
        customer = self._customer()
        fields = params.model_dump(exclude_none=True)
        if not fields:
            return _fail("No fields provided", code="validation_error")

        errors = self._validate_customer_fields(customer, fields)
        if errors:
            return _fail("Validation failed; nothing was saved", code="validation_error", errors=errors)

        values = dict(fields)
        if "name" in values:
            values["name"] = values["name"].strip()
        if "tax_id" in values:
            values["tax_id"] = only_digits(values["tax_id"])
        if "email" in values:
            values["email"] = values["email"].strip().lower()
        if "birth_date" in values:
            values["birth_date"] = parse_date(values["birth_date"])
        if "employment_type" in values:
            values["employment_type"] = values["employment_type"].value

        with atomic(self.db):
            for field, value in values.items():
                setattr(customer, field, value)

        logger.info(f"[green]✅ Customer {customer.id} updated:[/green] {', '.join(sorted(values))}")
        return _ok({"success": True, "updated": sorted(values)})

    async def simulate_loan(self, params: SimulateLoanInput) -> CapabilityResult:
        customer = self._customer()
        income = params.monthly_income or customer.monthly_income
        simulation = self.pricing.simulate(params.amount, params.installments, income)

        if customer.stage in (Stage.NEW.value, Stage.QUALIFYING.value):
            with atomic(self.db):
                customer.stage = Stage.SIMULATING.value

        payload: Dict[str, Any] = simulation.model_dump()
        if income:
            payload["affordability"] = self.pricing.check_affordability(simulation.monthly_payment, income).model_dump()
        return _ok(payload)

    async def create_application(self, params: CreateApplicationInput) -> CapabilityResult:
        customer = self._customer()

        missing = {}
        if not customer.name:
            missing["name"] = "Name is required before creating an application"
        if not customer.tax_id:
            missing["tax_id"] = "Tax id is required before creating an application"
        if missing:
            return _fail("Customer data incomplete", code="missing_data", errors=missing)

        bounds = {}
        if not self.loan.min_amount <= params.amount <= self.loan.max_amount:
            bounds["amount"] = f"Amount must be between {self.loan.min_amount:.2f} and {self.loan.max_amount:.2f}"
        if not self.loan.min_installments <= params.installments <= self.loan.max_installments:
            bounds["installments"] = (
                f"Installments must be between {self.loan.min_installments} and {self.loan.max_installments}"
            )
        if bounds:
            return _fail("Requested terms are outside the product limits", code="out_of_bounds", errors=bounds)

        active = self.applications.active_for_customer(customer.id)
        if active is not None:
            return _fail(
                f"Customer already has an active application ({active.id}, {active.status})",
                code="active_application_exists",
            )

        simulation = self.pricing.simulate(params.amount, params.installments, customer.monthly_income)
        with atomic(self.db):
            application = self.applications.create(
                customer_id=customer.id,
                requested_amount=simulation.amount,
                installments=simulation.installments,
                interest_rate=simulation.interest_rate,
                monthly_payment=simulation.monthly_payment,
                total_amount=simulation.total_amount,
                purpose=(params.purpose or LoanPurpose.OTHER).value,
                status=ApplicationStatus.SIMULATED.value,
            )
            customer.stage = Stage.DOCUMENTS_PENDING.value

        logger.info(f"[green]✅ Application {application.id} created[/green] for customer {customer.id}")
        return _ok({
            "success": True,
            **_application_summary(application),
            "total_amount": application.total_amount,
            "next_step": "Collect the required documents",
        })

    async def check_documents(self, params: NoInput) -> CapabilityResult:
        return _ok(self.documents.summary(self._customer()))

    async def register_document(self, params: RegisterDocumentInput) -> CapabilityResult:
        customer = self._customer()
        with atomic(self.db):
            self.documents.register(
                customer,
                params.document_type,
                media_url=params.media_url or self.inbound_media_url,
                media_type=params.media_type or self.inbound_media_type,
            )

        summary = self.documents.summary(customer)
        payload: Dict[str, Any] = {
            "success": True,
            "document_type": params.document_type.value,
            "missing": summary["missing"],
            "complete": summary["complete"],
        }
        if summary["complete"] and not customer.kyc_verified:
            identity = IdentityService(self.db, verifier=self.verifier)
            payload["identity_verification"] = await identity.start_verification(customer)
        return _ok(payload)

    async def run_credit_analysis(self, params: ApplicationInput) -> CapabilityResult:
        customer = self._customer()
        application = self._owned_application(customer, params.application_id)
        if application is None:
            return _fail(f"Application {params.application_id} not found", code="not_found")
        if not customer.tax_id:
            return _fail("Tax id not registered", code="missing_data", errors={"tax_id": "required"})

        result = await CreditAnalysisService(self.db, self.bureau).analyze(customer, application)
        return _ok(result.model_dump(mode="json"))

    async def generate_contract(self, params: ApplicationInput) -> CapabilityResult:
        customer = self._customer()
        if self._owned_application(customer, params.application_id) is None:
            return _fail(f"Application {params.application_id} not found", code="not_found")

        contracts = ContractService(self.db, signer=self.signer, funder=self.funder, pricing=self.pricing)
        result = await contracts.generate(params.application_id)
        return _ok(result.model_dump(mode="json"))

    async def get_application_status(self, params: NoInput) -> CapabilityResult:
        customer = self._customer()
        application = self.applications.latest_for_customer(customer.id)
        if application is None:
            return _ok({"has_application": False, "message": "No application found."})

        analysis = application.credit_analysis
        contract = application.contract
        return _ok({
            "has_application": True,
            **_application_summary(application),
            "denial_reason": application.denial_reason,
            "credit_decision": analysis.decision if analysis else None,
            "contract_number": contract.contract_number if contract else None,
            "contract_status": contract.status if contract else None,
            "signing_url": contract.signing_url if contract else None,
        })

    async def update_stage(self, params: UpdateStageInput) -> CapabilityResult:
        customer = self._customer()
        current = Stage(customer.stage)
        target = params.stage

        if target == current:
            return _ok({"success": True, "stage": current.value, "changed": False})
        if current in TERMINAL_STAGES:
            return _fail(f"The journey has ended at {current.value}", code="invalid_transition")
        if target in SYSTEM_MANAGED_STAGES:
            return _fail(f"Stage {target.value} is set by the loan process itself", code="invalid_transition")
        if target != Stage.CANCELLED and STAGE_ORDER[target] < STAGE_ORDER[current]:
            return _fail(
                f"Cannot move back from {current.value} to {target.value}", code="invalid_transition"
            )

        application = None
        if target == Stage.CANCELLED:
            application = self.applications.active_for_customer(customer.id)
            contract = application.contract if application is not None else None
            if contract is not None and contract.status == ContractStatus.SIGNED.value:
                return _fail("The contract is already signed and cannot be cancelled", code="signed")

        with atomic(self.db):
            customer.stage = target.value
            if application is not None:
                application.status = ApplicationStatus.CANCELLED.value
                application.denial_reason = "Cancelled by the customer"
                if application.contract is not None:
                    application.contract.status = ContractStatus.CANCELLED.value
        if application is not None:
            logger.info(f"[yellow]🚫 Application {application.id} cancelled with the journey[/yellow]")
        return _ok({"success": True, "stage": target.value, "changed": True})
