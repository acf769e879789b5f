"""
Chat channel schemas
"""
from typing import Optional
from pydantic import BaseModel


class InboundMessage(BaseModel):
    """A customer message accepted from the chat gateway"""
    phone: str
    text: str
    name: Optional[str] = None
    media_url: Optional[str] = None
    media_type: Optional[str] = None
    external_id: Optional[str] = None  # transport message id


class ChatWebhookAck(BaseModel):
    status: str = "received"
    accepted: bool = False
