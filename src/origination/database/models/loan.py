"""
Loan origination tables: customers, applications, credit analyses,
contracts, conversations, messages and documents.
"""
from sqlalchemy import (
    Column, String, Text, Boolean, Date, DateTime, Numeric, Integer, Float,
    ForeignKey, JSON, UniqueConstraint, event,
)
from sqlalchemy.orm import relationship, validates

from origination.database.models.base import BaseModel
from origination.database.models.enums import (
    Stage, ApplicationStatus, ContractStatus, DocumentStatus,
)

Money = Numeric(12, 2, asdecimal=False)


class Customer(BaseModel):
    """
    A borrower, keyed by the phone number of the chat channel.
    """
    __tablename__ = "customers"

    phone = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=True)
    tax_id = Column(String(11), unique=True, nullable=True, index=True)
    email = Column(String(255), nullable=True)
    birth_date = Column(Date, nullable=True)

    # Income and employment
    monthly_income = Column(Money, nullable=True)
    employer_name = Column(String(200), nullable=True)
    employment_type = Column(String(30), nullable=True)

    # Consent
    consent_given_at = Column(DateTime, nullable=True)
    consent_refused_at = Column(DateTime, nullable=True)

    # Journey
    stage = Column(String(30), nullable=False, default=Stage.NEW.value, index=True)

    # Identity verification
    kyc_verified = Column(Boolean, nullable=False, default=False)
    kyc_verified_at = Column(DateTime, nullable=True)
    kyc_verification_id = Column(String(100), nullable=True, index=True)

    applications = relationship(
        "Application", back_populates="customer", order_by="Application.id"
    )
    documents = relationship("Document", back_populates="customer", order_by="Document.id")
    conversations = relationship("Conversation", back_populates="customer")

    @property
    def has_consent(self) -> bool:
        return self.consent_given_at is not None


class Application(BaseModel):
    """
    A loan request with the terms frozen at creation and the credit outcome.
    """
    __tablename__ = "applications"

    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    requested_amount = Column(Money, nullable=False)
    approved_amount = Column(Money, nullable=True)
    installments = Column(Integer, nullable=False)
    interest_rate = Column(Float, nullable=False)  # monthly %
    monthly_payment = Column(Money, nullable=False)
    total_amount = Column(Money, nullable=False)
    purpose = Column(String(30), nullable=True)
    status = Column(String(30), nullable=False, default=ApplicationStatus.SIMULATED.value, index=True)
    denial_reason = Column(Text, nullable=True)
    disbursed_at = Column(DateTime, nullable=True)

    customer = relationship("Customer", back_populates="applications")
    credit_analysis = relationship("CreditAnalysis", back_populates="application", uselist=False)
    contract = relationship("Contract", back_populates="application", uselist=False)

    @validates("customer_id")
    def _freeze_customer(self, key, value):
        if self.customer_id is not None and value != self.customer_id:
            raise ValueError("An application cannot be moved to another customer")
        return value


class CreditAnalysis(BaseModel):
    """
    Outcome of one credit decision. Written once, never updated.
    """
    __tablename__ = "credit_analyses"

    application_id = Column(Integer, ForeignKey("applications.id"), unique=True, nullable=False)
    credit_score = Column(Integer, nullable=False)
    score_provider = Column(String(50), nullable=False)
    fraud_risk = Column(String(10), nullable=False)
    debt_to_income = Column(Float, nullable=True)  # NULL when income is unknown
    existing_debts = Column(Money, nullable=False, default=0)
    decision = Column(String(20), nullable=False)
    decision_reason = Column(Text, nullable=False)
    raw_response = Column(JSON, nullable=True)  # audit only
    analyzed_at = Column(DateTime, nullable=False)

    application = relationship("Application", back_populates="credit_analysis")


class Contract(BaseModel):
    """
    Loan contract with the immutable terms snapshot shown to the borrower.
    """
    __tablename__ = "contracts"

    application_id = Column(Integer, ForeignKey("applications.id"), unique=True, nullable=False)
    contract_number = Column(String(40), unique=True, nullable=False, index=True)
    terms = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default=ContractStatus.SENT.value, index=True)
    signed_at = Column(DateTime, nullable=True)
    signature_hash = Column(String(128), nullable=True)
    signature_ip = Column(String(64), nullable=True)

    # External references
    signer_document_key = Column(String(100), nullable=True, index=True)
    signing_url = Column(String(500), nullable=True)
    funding_operation_key = Column(String(100), nullable=True, index=True)

    application = relationship("Application", back_populates="contract")

    @validates("terms")
    def _freeze_terms(self, key, value):
        if self.terms is not None:
            raise ValueError("Contract terms are frozen once set")
        return value


class Conversation(BaseModel):
    __tablename__ = "conversations"

    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    customer = relationship("Customer", back_populates="conversations")
    messages = relationship("Message", back_populates="conversation", order_by="Message.id")


class Message(BaseModel):
    """One chat turn. Rows are append-only."""
    __tablename__ = "messages"

    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)
    media_url = Column(String(1000), nullable=True)
    media_type = Column(String(100), nullable=True)
    external_id = Column(String(100), nullable=True, index=True)  # transport message id

    conversation = relationship("Conversation", back_populates="messages")


class Document(BaseModel):
    """
    A customer document, one row per (customer, type).
    """
    __tablename__ = "documents"
    __table_args__ = (UniqueConstraint("customer_id", "document_type", name="uq_document_customer_type"),)

    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    document_type = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default=DocumentStatus.PENDING.value)
    media_url = Column(String(1000), nullable=True)
    media_type = Column(String(100), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    customer = relationship("Customer", back_populates="documents")


@event.listens_for(Message, "before_update")
@event.listens_for(CreditAnalysis, "before_update")
def _reject_update(mapper, connection, target):
    raise ValueError(f"{type(target).__name__} rows are immutable")
