"""
Document collection: required set, registration and review
"""
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from origination.database.models import Customer, Document
from origination.database.models.enums import DocumentType
from origination.repositories.document_repository import DocumentRepository
from origination.utils.logging import get_logger

logger = get_logger(__name__)

REQUIRED_DOCUMENTS: List[DocumentType] = [
    DocumentType.ID_FRONT,
    DocumentType.ID_BACK,
    DocumentType.PROOF_OF_INCOME,
    DocumentType.PROOF_OF_ADDRESS,
    DocumentType.SELFIE,
]

DOCUMENT_LABELS: Dict[DocumentType, str] = {
    DocumentType.ID_FRONT: "ID card (front)",
    DocumentType.ID_BACK: "ID card (back)",
    DocumentType.TAX_ID_CARD: "Tax id card",
    DocumentType.DRIVER_LICENSE: "Driver's license",
    DocumentType.PROOF_OF_INCOME: "Proof of income",
    DocumentType.PROOF_OF_ADDRESS: "Proof of address",
    DocumentType.SELFIE: "Selfie holding the ID",
    DocumentType.BANK_STATEMENT: "Bank statement",
    DocumentType.OTHER: "Document",
}

DEFAULT_MEDIA_TYPE = "image/jpeg"


def missing_documents(documents: List[Document]) -> List[DocumentType]:
    """Required types not yet sent, in the order they are asked for"""
    sent = {d.document_type for d in documents}
    return [t for t in REQUIRED_DOCUMENTS if t.value not in sent]


class DocumentService:
    def __init__(self, db: Session):
        self.db = db
        self.repository = DocumentRepository(db)

    def summary(self, customer: Customer) -> Dict[str, Any]:
        documents = self.repository.for_customer(customer.id)
        missing = missing_documents(documents)
        return {
            "required": len(REQUIRED_DOCUMENTS),
            "sent": [
                {"type": d.document_type, "status": d.status}
                for d in documents
            ],
            "missing": [{"type": t.value, "label": DOCUMENT_LABELS[t]} for t in missing],
            "complete": not missing,
        }

    def register(
        self,
        customer: Customer,
        document_type: DocumentType,
        media_url: Optional[str] = None,
        media_type: Optional[str] = None,
    ) -> Document:
        """Upsert by type; the caller commits"""
        document = self.repository.upsert(
            customer.id, document_type, media_url=media_url, media_type=media_type or DEFAULT_MEDIA_TYPE
        )
        logger.info(f"[green]📄 Document registered:[/green] {document_type.value} (customer {customer.id})")
        return document
