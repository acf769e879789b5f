"""
Identity verification (KYC) for customers
"""
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from origination.database.models import Customer
from origination.database.session import atomic
from origination.external.providers.kyc import IdentityVerifierClient, KycEvent
from origination.utils.exceptions import ProviderAPIError
from origination.utils.helpers import utcnow
from origination.utils.logging import get_logger

logger = get_logger(__name__)

KYC_APPROVED = "Approved"
KYC_DECLINED = "Declined"


class IdentityService:
    """
    Starts verification sessions and applies provider decisions.
    Without a configured verifier, customers are marked verified at once (development mode).
    """

    def __init__(self, db: Session, verifier: Optional[IdentityVerifierClient] = None):
        self.db = db
        self.verifier = verifier

    async def start_verification(self, customer: Customer) -> Dict[str, Any]:
        if customer.kyc_verified:
            return {"verified": True, "message": "Identity already verified."}

        if self.verifier is None:
            with atomic(self.db):
                customer.kyc_verified = True
                customer.kyc_verified_at = utcnow()
                customer.kyc_verification_id = f"dev-{customer.id}"
            return {"verified": True, "message": "Identity verified (development mode)."}

        try:
            session = await self.verifier.verify_identity(reference=str(customer.id))
        except (ProviderAPIError, KeyError) as e:
            logger.warning(f"[yellow]⚠️  Could not start identity verification:[/yellow] {e!r}")
            return {"verified": False, "message": "Identity verification is unavailable right now."}

        with atomic(self.db):
            customer.kyc_verification_id = session.session_id
        logger.info(f"[cyan]🪪 Identity verification started[/cyan] for customer {customer.id}")
        return {"verified": False, "verification_url": session.url, "message": "Identity verification started."}

    def handle_event(self, event: KycEvent) -> None:
        """Apply a final decision; intermediate statuses are ignored"""
        if event.status not in (KYC_APPROVED, KYC_DECLINED):
            return

        customer = self.db.query(Customer).filter(Customer.kyc_verification_id == event.session_id).first()
        if customer is None:
            logger.warning(f"[yellow]⚠️  No customer for verification session {event.session_id}[/yellow]")
            return

        if event.status == KYC_APPROVED:
            with atomic(self.db):
                customer.kyc_verified = True
                customer.kyc_verified_at = utcnow()
            logger.info(f"[green]✅ Identity verified[/green] for customer {customer.id}")
        else:
            logger.info(f"[yellow]Identity verification declined[/yellow] for customer {customer.id}")
