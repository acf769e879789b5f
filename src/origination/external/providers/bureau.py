"""
Credit bureau REST client
"""
from typing import Optional

import httpx

from origination.core.config import ProviderConfig
from origination.database.models.enums import FraudRisk
from origination.external.providers.base import ProviderClient
from origination.services.credit import BureauProvider, BureauSignal
from origination.utils.helpers import only_digits


class HttpBureauProvider(BureauProvider):
    """
    Bureau behind an HTTP API. The score lookup is a read, so it is retried
    on transient failures.

    Expected response: {"score": int, "fraud_risk": "LOW|MEDIUM|HIGH", "existing_debts": number}
    """

    name = "bureau"

    def __init__(self, config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.client = ProviderClient(config, transport=transport)
        self.client.provider_name = "bureau"

    async def check_credit(self, tax_id: str) -> BureauSignal:
        data = await self.client.get(f"/credit-score/{only_digits(tax_id)}")
        return BureauSignal(
            score=int(data["score"]),
            fraud_risk=FraudRisk(str(data.get("fraud_risk", "MEDIUM")).upper()),
            existing_debt_total=float(data.get("existing_debts", 0) or 0),
            raw=data,
        )
