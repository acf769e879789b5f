"""
Chat gateway client (Evolution-style WhatsApp HTTP API)
"""
import httpx
from typing import Any, Dict, Optional

from origination.core.config import ChatConfig, settings
from origination.utils.helpers import mask_phone, normalize_phone
from origination.utils.logging import get_logger

logger = get_logger(__name__)


class ChatGatewayClient:
    """
    Sends outbound text messages to customers.
    """

    def __init__(self, config: Optional[ChatConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        config = config or settings.chat
        self.base_url = config.base_url.rstrip("/")
        self.api_key = config.api_key
        self.instance = config.instance
        self.timeout = config.timeout
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        return headers

    async def send_text(self, phone: str, text: str) -> Dict[str, Any]:
        """
        Send one text message.

        Raises:
            httpx.HTTPError: If the gateway rejects the message or is unreachable
        """
        number = normalize_phone(phone)
        url = f"{self.base_url}/message/sendText/{self.instance}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json={"number": number, "text": text}, headers=self._get_headers())
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"[red]❌ Chat gateway rejected message to {mask_phone(number)}:[/red] "
                f"[yellow]{e.response.status_code}[/yellow]"
            )
            raise
        except httpx.HTTPError as e:
            logger.error(f"[red]❌ Chat gateway unreachable:[/red] {e!r}")
            raise

        logger.debug(f"[dim]Message delivered to {mask_phone(number)} ({len(text)} chars)[/dim]")
        return response.json() if response.content else {}
