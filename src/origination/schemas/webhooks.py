"""
Provider webhook schemas
"""
from pydantic import BaseModel


class WebhookAck(BaseModel):
    received: bool = True
    duplicate: bool = False
