"""
Funding provider client: registers the debt and disburses by instant transfer
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from origination.external.providers.base import ProviderClient


@dataclass
class Disbursement:
    operation_key: str
    status: str


@dataclass
class FundingEvent:
    webhook_type: str
    key: str
    status: str
    payload: Dict[str, Any]


class FunderClient(ProviderClient):
    provider_name = "funder"

    async def create_debt_and_disburse(self, request: Dict[str, Any]) -> Disbursement:
        """
        Register the credit operation and request the transfer to the borrower.
        Not retried: a second POST could fund the loan twice.
        """
        data = (await self.post("/debt", request)).get("data", {})
        return Disbursement(
            operation_key=str(data["debt_key"]),
            status=str(data.get("credit_operation_status", "pending")),
        )

    @staticmethod
    def parse_webhook(payload: Any) -> Optional[FundingEvent]:
        if not isinstance(payload, dict):
            return None
        if not payload.get("webhook_type") or not payload.get("key"):
            return None
        return FundingEvent(
            webhook_type=str(payload["webhook_type"]),
            key=str(payload["key"]),
            status=str(payload.get("status", "")),
            payload=payload,
        )
