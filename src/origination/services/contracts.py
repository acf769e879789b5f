"""
Contract and disbursement state machine.

Contract:     SENT -> VIEWED -> SIGNED, or CANCELLED before signing
Application:  APPROVED -> CONTRACT_PENDING -> DISBURSEMENT_PENDING -> DISBURSED
"""
import secrets
from datetime import date
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from origination.database.models import Application, Contract, Customer
from origination.database.models.enums import ApplicationStatus, ContractStatus, Stage, TERMINAL_STAGES
from origination.database.session import atomic
from origination.external.providers.funder import FunderClient, FundingEvent
from origination.external.providers.signer import SignerClient, SignerEvent
from origination.repositories.application_repository import ApplicationRepository
from origination.repositories.contract_repository import ContractRepository
from origination.schemas.contracts import ContractResult, ContractView
from origination.services.pricing import PricingEngine, first_due_date
from origination.utils.exceptions import BusinessRuleError, NotFoundError, ProviderAPIError
from origination.utils.helpers import mask_tax_id, utcnow
from origination.utils.logging import get_logger

logger = get_logger(__name__)

DISBURSEMENT_METHOD = "PIX"

SIGNER_SIGNED_EVENTS = {"sign", "auto_close"}
SIGNER_CANCELLED_EVENTS = {"cancel", "refusal", "deadline"}
FUNDING_SETTLED_STATUSES = {"disbursed"}


def render_contract(terms: Dict[str, Any]) -> str:
    """Minimal HTML body uploaded to the signature provider"""
    rows = "".join(
        f"<tr><td>{row['number']}</td><td>{row['due_date']}</td><td>{row['payment']:.2f}</td></tr>"
        for row in terms["schedule"]
    )
    return (
        f"<html><body><h1>Personal Loan Agreement {terms['contract_number']}</h1>"
        f"<p>Borrower: {terms['borrower_name']} ({mask_tax_id(terms['borrower_tax_id'])})</p>"
        f"<p>Amount: {terms['loan_amount']:.2f} in {terms['installments']} installments of "
        f"{terms['monthly_payment']:.2f} at {terms['interest_rate']:.2f}% a month</p>"
        f"<p>Total: {terms['total_amount']:.2f}. Disbursement by {terms['disbursement_method']}.</p>"
        f"<table><tr><th>#</th><th>Due</th><th>Payment</th></tr>{rows}</table>"
        f"</body></html>"
    )


class ContractService:
    """
    Generates, signs, cancels and settles loan contracts.

    The signer and funder clients are optional: without them contracts are
    tracked internally only.
    """

    def __init__(
        self,
        db: Session,
        signer: Optional[SignerClient] = None,
        funder: Optional[FunderClient] = None,
        pricing: Optional[PricingEngine] = None,
    ):
        self.db = db
        self.signer = signer
        self.funder = funder
        self.pricing = pricing or PricingEngine()
        self.contracts = ContractRepository(db)
        self.applications = ApplicationRepository(db)

    def _new_contract_number(self) -> str:
        while True:
            number = f"LN-{date.today().year}-{secrets.token_hex(6).upper()}"
            if self.contracts.by_number(number) is None:
                return number

    def _build_terms(self, application: Application, customer: Customer, contract_number: str) -> Dict[str, Any]:
        amount = application.approved_amount or application.requested_amount
        if amount < application.requested_amount:
            priced = self.pricing.price_at_rate(amount, application.installments, application.interest_rate)
            monthly_payment, total_amount = priced.monthly_payment, priced.total_amount
        else:
            monthly_payment, total_amount = application.monthly_payment, application.total_amount

        first_due = first_due_date()
        schedule = self.pricing.generate_schedule(
            amount, application.interest_rate, application.installments, first_due
        )
        return {
            "contract_number": contract_number,
            "borrower_name": customer.name,
            "borrower_tax_id": customer.tax_id,
            "borrower_phone": customer.phone,
            "loan_amount": amount,
            "installments": application.installments,
            "interest_rate": application.interest_rate,
            "monthly_payment": monthly_payment,
            "total_amount": total_amount,
            "first_due_date": schedule[0].due_date.isoformat(),
            "last_due_date": schedule[-1].due_date.isoformat(),
            "schedule": [row.model_dump(mode="json") for row in schedule],
            "disbursement_method": DISBURSEMENT_METHOD,
            "generated_at": utcnow().isoformat(),
        }

    async def generate(self, application_id: int) -> ContractResult:
        """
        Create the contract for an approved application. Calling it again for
        the same application returns the existing contract.

        Raises:
            BusinessRuleError: If the application is missing or not approved, or the journey has ended
        """
        existing = self.contracts.by_application(application_id)
        if existing is not None:
            return ContractResult(
                contract_id=existing.id,
                contract_number=existing.contract_number,
                status=ContractStatus(existing.status),
                signing_url=existing.signing_url,
                already_existed=True,
                message="Contract already generated.",
            )

        application = self.applications.find_by_id(application_id)
        if application is None:
            raise BusinessRuleError("Application not found", code="not_found")
        if application.status != ApplicationStatus.APPROVED.value:
            raise BusinessRuleError(
                "The application must be approved before a contract is generated", code="not_approved"
            )
        if Stage(application.customer.stage) in TERMINAL_STAGES:
            raise BusinessRuleError(
                f"The customer journey has ended at {application.customer.stage}", code="journey_ended"
            )

        customer = application.customer
        contract_number = self._new_contract_number()
        terms = self._build_terms(application, customer, contract_number)

        with atomic(self.db):
            contract = Contract(
                application_id=application.id,
                contract_number=contract_number,
                terms=terms,
                status=ContractStatus.SENT.value,
            )
            self.db.add(contract)
            application.status = ApplicationStatus.CONTRACT_PENDING.value
            customer.stage = Stage.CONTRACT_SENT.value

        logger.info(f"[green]✅ Contract generated:[/green] [cyan]{contract_number}[/cyan] (application {application.id})")

        await self._hand_off_to_signer(contract, customer)

        return ContractResult(
            contract_id=contract.id,
            contract_number=contract_number,
            status=ContractStatus(contract.status),
            signing_url=contract.signing_url,
            message=f"Contract {contract_number} generated. The signing link will be sent to the customer.",
        )

    async def _hand_off_to_signer(self, contract: Contract, customer: Customer) -> None:
        if self.signer is None:
            return
        try:
            handoff = await self.signer.create_and_send_contract(
                file_name=f"{contract.contract_number}.html",
                content=render_contract(contract.terms),
                signer_name=customer.name,
                signer_email=customer.email,
                signer_tax_id=customer.tax_id,
                signer_phone=customer.phone,
            )
        except (ProviderAPIError, KeyError) as e:
            logger.warning(
                f"[yellow]⚠️  Signer hand-off failed for {contract.contract_number}, "
                f"tracking internally:[/yellow] {e!r}"
            )
            return

        with atomic(self.db):
            contract.signer_document_key = handoff.document_key
            contract.signing_url = handoff.signing_url
        logger.info(f"[green]✍️  Contract sent for signature:[/green] {contract.contract_number}")

    async def sign(self, contract_id: int, signature_hash: str, signature_ip: Optional[str]) -> ContractResult:
        """
        Record the borrower's signature and request disbursement.
        Signing an already signed contract is a no-op.

        Raises:
            NotFoundError: If the contract does not exist
            BusinessRuleError: If the contract was cancelled or the journey has ended
        """
        contract = self.contracts.find_by_id(contract_id)
        if contract is None:
            raise NotFoundError(detail=f"Contract {contract_id} not found")

        if contract.status == ContractStatus.SIGNED.value:
            return ContractResult(
                contract_id=contract.id,
                contract_number=contract.contract_number,
                status=ContractStatus.SIGNED,
                already_existed=True,
                message="Contract already signed.",
            )
        if contract.status == ContractStatus.CANCELLED.value:
            raise BusinessRuleError("Contract was cancelled and cannot be signed", code="cancelled")

        application = contract.application
        if Stage(application.customer.stage) in TERMINAL_STAGES:
            raise BusinessRuleError(
                f"The customer journey has ended at {application.customer.stage}", code="journey_ended"
            )
        with atomic(self.db):
            contract.status = ContractStatus.SIGNED.value
            contract.signed_at = utcnow()
            contract.signature_hash = signature_hash
            contract.signature_ip = signature_ip
            application.status = ApplicationStatus.DISBURSEMENT_PENDING.value
            application.customer.stage = Stage.CONTRACT_SIGNED.value

        logger.info(f"[green]✅ Contract signed:[/green] [cyan]{contract.contract_number}[/cyan]")

        await self._request_disbursement(contract, application.customer)

        return ContractResult(
            contract_id=contract.id,
            contract_number=contract.contract_number,
            status=ContractStatus.SIGNED,
            message="Contract signed. The money will be transferred shortly.",
        )

    async def _request_disbursement(self, contract: Contract, customer: Customer) -> None:
        """Single attempt; confirmation arrives through the funding webhook"""
        if self.funder is None:
            return
        terms = contract.terms
        request = {
            "contract_number": contract.contract_number,
            "borrower": {
                "name": customer.name,
                "tax_id": customer.tax_id,
                "phone": customer.phone,
                "email": customer.email,
                "birth_date": customer.birth_date.isoformat() if customer.birth_date else None,
            },
            "amount": terms["loan_amount"],
            "installments": terms["installments"],
            "interest_rate_monthly": terms["interest_rate"],
            "monthly_payment": terms["monthly_payment"],
            "total_amount": terms["total_amount"],
            "first_due_date": terms["first_due_date"],
            "disbursement": {"method": DISBURSEMENT_METHOD, "pix_key": customer.tax_id, "pix_key_type": "tax_id"},
        }
        try:
            disbursement = await self.funder.create_debt_and_disburse(request)
        except (ProviderAPIError, KeyError) as e:
            logger.error(
                f"[red]❌ Disbursement request failed for {contract.contract_number}; "
                f"awaiting webhook or manual follow-up:[/red] {e!r}"
            )
            return

        with atomic(self.db):
            contract.funding_operation_key = disbursement.operation_key
        logger.info(
            f"[green]💸 Disbursement requested:[/green] {contract.contract_number} "
            f"operation={disbursement.operation_key} status={disbursement.status}"
        )

    def view(self, contract_number: str) -> ContractView:
        """Read a contract; the first read of a SENT contract marks it VIEWED"""
        contract = self.contracts.by_number(contract_number)
        if contract is None:
            raise NotFoundError(detail=f"Contract '{contract_number}' not found")

        if contract.status == ContractStatus.SENT.value:
            with atomic(self.db):
                contract.status = ContractStatus.VIEWED.value
            logger.info(f"[cyan]👀 Contract viewed:[/cyan] {contract_number}")

        return ContractView(
            contract_number=contract.contract_number,
            status=ContractStatus(contract.status),
            terms=contract.terms,
            signed_at=contract.signed_at,
            signing_url=contract.signing_url,
        )

    def cancel(self, contract_id: int, reason: str) -> ContractResult:
        """
        Cancel an unsigned contract together with its application.

        Raises:
            NotFoundError: If the contract does not exist
            BusinessRuleError: If the contract is already signed
        """
        contract = self.contracts.find_by_id(contract_id)
        if contract is None:
            raise NotFoundError(detail=f"Contract {contract_id} not found")
        if contract.status == ContractStatus.CANCELLED.value:
            return ContractResult(
                contract_id=contract.id,
                contract_number=contract.contract_number,
                status=ContractStatus.CANCELLED,
                already_existed=True,
                message="Contract already cancelled.",
            )
        if contract.status == ContractStatus.SIGNED.value:
            raise BusinessRuleError("A signed contract cannot be cancelled", code="signed")

        application = contract.application
        with atomic(self.db):
            contract.status = ContractStatus.CANCELLED.value
            application.status = ApplicationStatus.CANCELLED.value
            application.denial_reason = reason
            application.customer.stage = Stage.CANCELLED.value

        logger.info(f"[yellow]🚫 Contract cancelled:[/yellow] {contract.contract_number} ({reason})")
        return ContractResult(
            contract_id=contract.id,
            contract_number=contract.contract_number,
            status=ContractStatus.CANCELLED,
            message=f"Contract cancelled: {reason}",
        )

    def mark_disbursed(self, operation_key: str) -> bool:
        """
        Settle the loan once the funder confirms the transfer.
        Returns False when no contract matches the operation key.
        """
        contract = self.contracts.by_funding_key(operation_key)
        if contract is None:
            logger.warning(f"[yellow]⚠️  No contract for funding operation {operation_key}[/yellow]")
            return False

        application = contract.application
        if application.status == ApplicationStatus.DISBURSED.value:
            return True

        with atomic(self.db):
            application.status = ApplicationStatus.DISBURSED.value
            application.disbursed_at = utcnow()
            application.customer.stage = Stage.DISBURSED.value

        logger.info(f"[bold green]💰 Loan disbursed:[/bold green] {contract.contract_number}")
        return True

    async def handle_signer_event(self, event: SignerEvent, signature_hash: str) -> None:
        contract = self.contracts.by_signer_key(event.document_key)
        if contract is None:
            logger.warning(f"[yellow]⚠️  No contract for signer document {event.document_key}[/yellow]")
            return

        if event.name in SIGNER_SIGNED_EVENTS:
            try:
                await self.sign(contract.id, signature_hash, None)
            except BusinessRuleError as e:
                logger.warning(f"[yellow]⚠️  Signature ignored for {contract.contract_number}:[/yellow] {e.message}")
        elif event.name in SIGNER_CANCELLED_EVENTS:
            if contract.status != ContractStatus.SIGNED.value:
                self.cancel(contract.id, f"signer event: {event.name}")
        else:
            logger.debug(f"[dim]Ignoring signer event {event.name}[/dim]")

    def handle_funding_event(self, event: FundingEvent) -> None:
        if event.status.lower() in FUNDING_SETTLED_STATUSES:
            self.mark_disbursed(event.key)
        else:
            logger.debug(f"[dim]Ignoring funding event {event.webhook_type}/{event.status}[/dim]")
