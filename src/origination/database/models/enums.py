"""
Status and classification enums shared by models, services and schemas.
Stored as plain strings.
"""
from enum import Enum


class Stage(str, Enum):
    """Customer journey position"""
    NEW = "NEW"
    QUALIFYING = "QUALIFYING"
    SIMULATING = "SIMULATING"
    DOCUMENTS_PENDING = "DOCUMENTS_PENDING"
    ANALYZING = "ANALYZING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    CONTRACT_SENT = "CONTRACT_SENT"
    CONTRACT_SIGNED = "CONTRACT_SIGNED"
    DISBURSED = "DISBURSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Forward order of the journey; APPROVED and DENIED share a rank
STAGE_ORDER = {
    Stage.NEW: 0,
    Stage.QUALIFYING: 1,
    Stage.SIMULATING: 2,
    Stage.DOCUMENTS_PENDING: 3,
    Stage.ANALYZING: 4,
    Stage.APPROVED: 5,
    Stage.DENIED: 5,
    Stage.CONTRACT_SENT: 6,
    Stage.CONTRACT_SIGNED: 7,
    Stage.DISBURSED: 8,
    Stage.COMPLETED: 9,
}

TERMINAL_STAGES = {Stage.DENIED, Stage.COMPLETED, Stage.CANCELLED}


class ApplicationStatus(str, Enum):
    SIMULATED = "SIMULATED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    CONTRACT_PENDING = "CONTRACT_PENDING"
    DISBURSEMENT_PENDING = "DISBURSEMENT_PENDING"
    DISBURSED = "DISBURSED"
    CANCELLED = "CANCELLED"


# An application in any other status is active
INACTIVE_APPLICATION_STATUSES = (
    ApplicationStatus.DENIED,
    ApplicationStatus.DISBURSED,
    ApplicationStatus.CANCELLED,
)


class ContractStatus(str, Enum):
    SENT = "SENT"
    VIEWED = "VIEWED"
    SIGNED = "SIGNED"
    CANCELLED = "CANCELLED"


class CreditDecision(str, Enum):
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    MANUAL_REVIEW = "MANUAL_REVIEW"


class FraudRisk(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class DocumentType(str, Enum):
    ID_FRONT = "ID_FRONT"
    ID_BACK = "ID_BACK"
    TAX_ID_CARD = "TAX_ID_CARD"
    DRIVER_LICENSE = "DRIVER_LICENSE"
    PROOF_OF_INCOME = "PROOF_OF_INCOME"
    PROOF_OF_ADDRESS = "PROOF_OF_ADDRESS"
    SELFIE = "SELFIE"
    BANK_STATEMENT = "BANK_STATEMENT"
    OTHER = "OTHER"


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class MessageRole(str, Enum):
    CUSTOMER = "CUSTOMER"
    ASSISTANT = "ASSISTANT"
    SYSTEM = "SYSTEM"


class EmploymentType(str, Enum):
    CLT = "CLT"  # formal employment
    SELF_EMPLOYED = "SELF_EMPLOYED"
    CIVIL_SERVANT = "CIVIL_SERVANT"
    RETIRED = "RETIRED"
    BUSINESS_OWNER = "BUSINESS_OWNER"
    OTHER = "OTHER"


class LoanPurpose(str, Enum):
    DEBT_CONSOLIDATION = "DEBT_CONSOLIDATION"
    HOME_IMPROVEMENT = "HOME_IMPROVEMENT"
    EDUCATION = "EDUCATION"
    HEALTH = "HEALTH"
    BUSINESS = "BUSINESS"
    TRAVEL = "TRAVEL"
    VEHICLE = "VEHICLE"
    OTHER = "OTHER"
