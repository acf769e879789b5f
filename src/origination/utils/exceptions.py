"""
Custom exception classes
"""
from fastapi import HTTPException, status


class ProviderAPIError(HTTPException):
    """Exception raised when a third-party provider call fails"""
    def __init__(self, detail: str, status_code: int = status.HTTP_502_BAD_GATEWAY):
        super().__init__(status_code=status_code, detail=detail)


class DatabaseError(HTTPException):
    """Exception raised for database errors"""
    def __init__(self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(status_code=status_code, detail=detail)


class InvalidPayloadError(HTTPException):
    """Exception raised when a webhook body cannot be parsed"""
    def __init__(self, detail: str = "Invalid payload", status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(status_code=status_code, detail=detail)


class WebhookAuthError(HTTPException):
    """Exception raised when a webhook signature or API key does not match"""
    def __init__(self, detail: str = "Invalid signature", status_code: int = status.HTTP_401_UNAUTHORIZED):
        super().__init__(status_code=status_code, detail=detail)


class NotFoundError(HTTPException):
    """Exception raised when a requested record does not exist"""
    def __init__(self, detail: str, status_code: int = status.HTTP_404_NOT_FOUND):
        super().__init__(status_code=status_code, detail=detail)


class BusinessRuleError(Exception):
    """
    Raised by services when a state transition is not allowed
    (e.g. generating a contract for an application that is not approved).
    Capabilities turn it into a structured failure for the reasoning loop.
    """
    def __init__(self, message: str, code: str = "business_rule"):
        super().__init__(message)
        self.message = message
        self.code = code
