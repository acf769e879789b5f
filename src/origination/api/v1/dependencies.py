"""
API-specific dependencies for v1 endpoints
"""
import hmac
from typing import Optional
from fastapi import Header

from origination.core.config import settings
from origination.utils.exceptions import WebhookAuthError


def verify_chat_api_key(apikey: Optional[str] = Header(None)) -> Optional[str]:
    """
    Verify the `apikey` header sent by the chat gateway.
    No configured key disables the check (development mode).
    """
    expected = settings.chat.api_key
    if not expected:
        return apikey
    if not apikey or not hmac.compare_digest(apikey, expected):
        raise WebhookAuthError(detail="Invalid API key")
    return apikey
