"""
Contract data access
"""
from typing import Optional

from origination.database.models import Contract
from origination.repositories.base_repository import BaseRepository


class ContractRepository(BaseRepository[Contract]):
    model = Contract

    def by_application(self, application_id: int) -> Optional[Contract]:
        return self.find_one_by(application_id=application_id)

    def by_number(self, contract_number: str) -> Optional[Contract]:
        return self.find_one_by(contract_number=contract_number)

    def by_signer_key(self, document_key: str) -> Optional[Contract]:
        return self.find_one_by(signer_document_key=document_key)

    def by_funding_key(self, operation_key: str) -> Optional[Contract]:
        return self.find_one_by(funding_operation_key=operation_key)
