"""
Digital signature provider client
"""
import base64
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from origination.external.providers.base import ProviderClient
from origination.utils.helpers import utcnow


@dataclass
class SignerHandoff:
    document_key: str
    signer_key: str
    signing_url: str


@dataclass
class SignerEvent:
    name: str  # upload | add_signer | sign | auto_close | cancel | refusal | deadline
    document_key: str
    payload: Dict[str, Any]


class SignerClient(ProviderClient):
    """
    Uploads a contract, registers the borrower as signer and asks the
    provider to deliver the signing link over the chat channel.
    """

    provider_name = "signer"

    async def create_and_send_contract(
        self,
        file_name: str,
        content: str,
        signer_name: str,
        signer_email: Optional[str],
        signer_tax_id: str,
        signer_phone: str,
        deadline_days: int = 7,
    ) -> SignerHandoff:
        encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")
        document = (await self.post("/documents", {
            "document": {
                "path": f"/{file_name}",
                "content_base64": f"data:text/html;base64,{encoded}",
                "deadline_at": (utcnow() + timedelta(days=deadline_days)).isoformat(),
                "auto_close": True,
                "block_after_refusal": True,
            }
        }))["document"]

        signer = (await self.post("/signers", {
            "signer": {
                "name": signer_name,
                "email": signer_email,
                "phone_number": f"+{signer_phone}",
                "documentation": signer_tax_id,
                "has_documentation": True,
                "auths": ["whatsapp"],
                "delivery": "whatsapp",
            }
        }))["signer"]

        signature_list = (await self.post("/lists", {
            "list": {
                "document_key": document["key"],
                "signer_key": signer["key"],
                "sign_as": "sign",
                "refusable": True,
            }
        }))["list"]

        request_key = signature_list["request_signature_key"]
        await self.post("/notifications", {"request_signature_key": request_key})

        return SignerHandoff(
            document_key=document["key"],
            signer_key=signer["key"],
            signing_url=f"{self.base_url}/sign/{request_key}",
        )

    @staticmethod
    def parse_webhook(payload: Any) -> Optional[SignerEvent]:
        if not isinstance(payload, dict):
            return None
        event = payload.get("event")
        document = payload.get("document")
        if not isinstance(event, dict) or not isinstance(document, dict):
            return None
        if not event.get("name") or not document.get("key"):
            return None
        return SignerEvent(name=str(event["name"]), document_key=str(document["key"]), payload=payload)
