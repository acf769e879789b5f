"""
Contract schemas
"""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel

from origination.database.models.enums import ContractStatus


class ContractResult(BaseModel):
    """Outcome of a contract operation, as reported to the assistant and the API"""
    contract_id: int
    contract_number: str
    status: ContractStatus
    signing_url: Optional[str] = None
    already_existed: bool = False
    message: str


class ContractView(BaseModel):
    contract_number: str
    status: ContractStatus
    terms: Dict[str, Any]
    signed_at: Optional[datetime] = None
    signing_url: Optional[str] = None
