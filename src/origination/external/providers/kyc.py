"""
Identity verification (document + liveness) provider client
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from origination.external.providers.base import ProviderClient


@dataclass
class VerificationSession:
    session_id: str
    url: str


@dataclass
class KycEvent:
    session_id: str
    status: str  # Approved | Declined | In Review | Expired | Abandoned ...
    vendor_data: str
    payload: Dict[str, Any]


class IdentityVerifierClient(ProviderClient):
    provider_name = "kyc"

    async def verify_identity(self, reference: str, callback_url: Optional[str] = None) -> VerificationSession:
        """Open a verification session; the customer completes it on the returned URL"""
        data = await self.post("/v2/session/", {"vendor_data": reference, "callback": callback_url})
        return VerificationSession(session_id=str(data["session_id"]), url=str(data.get("url", "")))

    @staticmethod
    def parse_webhook(payload: Any) -> Optional[KycEvent]:
        if not isinstance(payload, dict):
            return None
        if not payload.get("session_id") or not payload.get("status"):
            return None
        return KycEvent(
            session_id=str(payload["session_id"]),
            status=str(payload["status"]),
            vendor_data=str(payload.get("vendor_data") or ""),
            payload=payload,
        )
