"""
Shared fixtures: in-memory database, scripted reasoning service, recording chat gateway
"""
import copy
from datetime import date

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from origination.database.models import Application, Customer
from origination.database.models.enums import ApplicationStatus, Stage
from origination.database.session import init_db
from origination.services.llm_service import END_TURN, Completion
from origination.utils.helpers import utcnow

# Valid CPFs with known mock-bureau outcomes
APPROVED_TAX_ID = "99900000005"  # score 844, LOW risk
REVIEW_TAX_ID = "52998224725"  # score 535, MEDIUM risk
DENIED_TAX_ID = "11144477735"  # score 348, HIGH risk


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_customer(db):
    def _make(phone="5511999990000", **fields):
        fields.setdefault("stage", Stage.NEW.value)
        customer = Customer(phone=phone, **fields)
        db.add(customer)
        db.commit()
        return customer
    return _make


@pytest.fixture
def consenting_customer(make_customer):
    """A customer who consented and provided everything needed to apply"""
    def _make(tax_id=APPROVED_TAX_ID, phone="5511999990000", monthly_income=5000.0, **fields):
        fields.setdefault("name", "Maria Silva")
        fields.setdefault("birth_date", date(1990, 5, 20))
        fields.setdefault("stage", Stage.SIMULATING.value)
        return make_customer(
            phone=phone,
            tax_id=tax_id,
            monthly_income=monthly_income,
            consent_given_at=utcnow(),
            **fields,
        )
    return _make


@pytest.fixture
def make_application(db):
    def _make(customer, status=ApplicationStatus.SIMULATED, amount=10000.0, installments=12, **fields):
        fields.setdefault("interest_rate", 1.69)
        fields.setdefault("monthly_payment", 927.56)
        fields.setdefault("total_amount", 11130.72)
        application = Application(
            customer_id=customer.id,
            requested_amount=amount,
            installments=installments,
            status=status.value,
            **fields,
        )
        db.add(application)
        db.commit()
        return application
    return _make


class ScriptedReasoning:
    """Returns queued completions in order and records every request"""

    def __init__(self, completions=None):
        self.completions = list(completions or [])
        self.calls = []

    async def create_completion(self, system_policy, tools, messages):
        self.calls.append({"system": system_policy, "tools": tools, "messages": copy.deepcopy(messages)})
        if not self.completions:
            return Completion(text_segments=["Done."], stop_reason=END_TURN)
        item = self.completions.pop(0)
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return await item(messages)
        return item


class RecordingChat:
    """Chat gateway stand-in that keeps what would have been sent"""

    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_text(self, phone, text):
        if self.fail:
            raise httpx.ConnectError("gateway down")
        self.sent.append((phone, text))
        return {}


@pytest.fixture
def scripted_reasoning():
    return ScriptedReasoning


@pytest.fixture
def chat():
    return RecordingChat()
