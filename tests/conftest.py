"""
Shared fixtures: in-memory SQLite storage, fake collaborators, signed-in owners.
"""

import base64
import os

# Configure the environment before importing app modules
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ.pop("RESEND_API_KEY", None)

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from propodocs.auth import create_access_token  # noqa: E402
from propodocs.database import Database  # noqa: E402
from propodocs.domain.contracts.pdf_service import ContractPDFService  # noqa: E402
from propodocs.domain.contracts.schemas import ContractCreate  # noqa: E402
from propodocs.domain.contracts.service import ContractService  # noqa: E402
from propodocs.main import create_app  # noqa: E402
from propodocs.models import Contract, ContractTemplate, Proposal, User  # noqa: E402
from propodocs.utils.dates import utcnow  # noqa: E402

SIGNATURE_IMAGE = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n\x1a\nfake-signature").decode()


class FakeNotifier:
    """Records notifications instead of sending email"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []
        self.signed = []

    async def contract_sent(self, summary):
        self.sent.append(summary)
        if self.fail:
            raise RuntimeError("mail provider down")
        return True

    async def contract_signed(self, summary):
        self.signed.append(summary)
        if self.fail:
            raise RuntimeError("mail provider down")
        return True


class FakeRenderer:
    """Stands in for the headless browser"""

    def __init__(self, pdf: bytes = b"%PDF-1.4 fake"):
        self.pdf = pdf
        self.calls = []

    async def render_html_to_pdf(self, html, page_options=None):
        self.calls.append((html, page_options))
        return self.pdf


def make_file_database(path) -> Database:
    database = Database(f"sqlite:///{path}")
    database.create_all()
    return database


@pytest.fixture
def database():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    db = Database("sqlite://", engine=engine)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def service(db, notifier, renderer):
    return ContractService(db, notifier=notifier, pdf_service=ContractPDFService(renderer=renderer))


@pytest.fixture
def owner(db):
    user = User(email="owner@example.com", full_name="Olivia Owner", company="Owner Studio")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db):
    user = User(email="other@example.com", full_name="Oscar Other")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def system_template(db):
    template = ContractTemplate(
        user_id=None,
        name="Standard Services Agreement",
        content=(
            "Agreement between {{company_name}} and {{client_name}} ({{client_company}}).\n"
            "Deliverables:\n{{deliverables}}\n"
            "Term: {{contract_term}}. Monthly: {{monthly_amount}}. Setup: {{setup_fee}}. "
            "Total: {{total_value}}. Governed by {{governing_state}}."
        ),
        is_default=True,
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


@pytest.fixture
def proposal(db, owner):
    proposal = Proposal(
        user_id=owner.id,
        title="Growth Marketing",
        client_name="Acme Corp",
        client_company="Acme Holdings",
        client_email="buyer@acme.test",
        calculator_data={
            "selectedTier": {
                "name": "Growth",
                "description": "Full-funnel campaigns",
                "monthlyPrice": 2000,
                "setupFee": 500,
            },
            "addOnStates": {
                "seo": {"name": "SEO", "description": "Technical SEO", "price": 300, "selected": True},
                "ads": {"name": "Ads Audit", "price": 750, "priceType": "one-time", "selected": True},
                "pr": {"name": "PR", "price": 999, "selected": False},
            },
        },
    )
    db.add(proposal)
    db.commit()
    db.refresh(proposal)
    return proposal


@pytest.fixture
def make_contract(service, owner):
    """Create a draft through the service, optionally pushing it to a status"""

    def _make(user=None, expires_in=None, **fields) -> Contract:
        data = {
            "client_name": "Acme Corp",
            "client_email": "buyer@acme.test",
            "title": "Website Redesign",
            "content": "The provider will redesign the website.",
            "deliverables": [
                {"name": "Design", "description": "Figma mockups", "price": 1500, "price_type": "one-time"},
                {"name": "Hosting", "price": 50, "price_type": "monthly"},
            ],
            **fields,
        }
        if expires_in is not None:
            data["expires_at"] = utcnow() + expires_in
        return service.create_contract(ContractCreate(**data), user or owner)

    return _make


@pytest.fixture
def sent_contract(make_contract, service, owner):
    async def _sent(**fields):
        contract = make_contract(**fields)
        return await service.send(contract.id, owner)

    return _sent


@pytest.fixture
def app(database, notifier, renderer):
    return create_app(
        database=database,
        notifier=notifier,
        pdf_service=ContractPDFService(renderer=renderer),
    )


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers(owner):
    return {"Authorization": f"Bearer {create_access_token(owner.id)}"}


@pytest.fixture
def other_headers(other_user):
    return {"Authorization": f"Bearer {create_access_token(other_user.id)}"}


def expire(db, contract: Contract, ago: timedelta = timedelta(minutes=1)) -> None:
    """Move a contract's expiry into the past"""
    contract.expires_at = utcnow() - ago
    db.commit()
