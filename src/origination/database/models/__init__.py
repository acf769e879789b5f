"""
Database models module
"""
from origination.database.models.base import Base
from origination.database.models.loan import (  # Import all models here
    Customer,
    Application,
    CreditAnalysis,
    Contract,
    Conversation,
    Message,
    Document,
)

__all__ = [
    "Base",
    "Customer",
    "Application",
    "CreditAnalysis",
    "Contract",
    "Conversation",
    "Message",
    "Document",
]
