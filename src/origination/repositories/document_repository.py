"""
Document data access
"""
from typing import List, Optional

from origination.database.models import Document
from origination.database.models.enums import DocumentType, DocumentStatus
from origination.repositories.base_repository import BaseRepository


class DocumentRepository(BaseRepository[Document]):
    model = Document

    def for_customer(self, customer_id: int) -> List[Document]:
        return self.find_by(customer_id=customer_id)

    def upsert(
        self,
        customer_id: int,
        document_type: DocumentType,
        media_url: Optional[str] = None,
        media_type: Optional[str] = None,
    ) -> Document:
        """Register a document; sending the same type again replaces the previous one"""
        document = self.find_one_by(customer_id=customer_id, document_type=document_type.value)
        if document is None:
            return self.create(
                customer_id=customer_id,
                document_type=document_type.value,
                status=DocumentStatus.PENDING.value,
                media_url=media_url,
                media_type=media_type,
            )
        return self.update(
            document,
            status=DocumentStatus.PENDING.value,
            media_url=media_url,
            media_type=media_type,
            rejection_reason=None,
        )
