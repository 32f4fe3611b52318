import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from autoshop.core.database import Base, create_db_engine
from autoshop.core.dependencies import (
    Principal,
    get_current_principal,
    get_db,
    get_event_publisher,
    get_notifier,
)
from autoshop.main import app
from autoshop.models import Branch, Client, Currency, Product
from autoshop.models.money import Money

ACTOR = "ADM-TEST"


class FakeNotifier:
    def __init__(self):
        self.messages = []
        self.sms = []

    def send_message(self, text):
        self.messages.append(text)
        return True

    def send_templated_sms(self, phone, text):
        self.sms.append((phone, text))
        return True


class FakePublisher:
    def __init__(self):
        self.events = []

    async def publish(self, event, payload, branch_id=None):
        self.events.append((event, payload, branch_id))


@pytest.fixture
def db():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def api(db, notifier, publisher):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_principal] = lambda: Principal(id=ACTOR, role="admin")
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def branch(db):
    branch = Branch(name="Chilonzor", address="Tashkent", phone="998901112233")
    db.add(branch)
    db.commit()
    db.refresh(branch)
    return branch


@pytest.fixture
def make_client(db, branch):
    def _make(first_name="Aziz", last_name="Karimov", phone="998901234567", debt=None):
        client = Client(
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            branch_id=branch.id,
            debt=debt or Money.zero(),
        )
        db.add(client)
        db.commit()
        db.refresh(client)
        return client
    return _make


@pytest.fixture
def customer(make_client):
    return make_client()


@pytest.fixture
def make_product(db, branch):
    def _make(name="Motor oil 5W-30", quantity=10, cost_price=5, sale_price=10, currency=Currency.UZS):
        product = Product(
            name=name,
            quantity=quantity,
            cost_price=Decimal(str(cost_price)),
            sale_price=Decimal(str(sale_price)),
            currency=currency,
            branch_id=branch.id,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product
    return _make


@pytest.fixture
def product(make_product):
    return make_product()


@pytest.fixture
def due_date():
    return date.today() + timedelta(days=30)


@pytest.fixture
def order_payload(customer, branch, product, due_date):
    """Request body builder; defaults to the 3 x P1 @ 10 debt sale."""
    def _payload(**overrides):
        payload = {
            "client_id": customer.id,
            "branch_id": branch.id,
            "products": [{"product_id": product.id, "quantity": 3, "price": 10}],
            "total_amount": {"usd": 0, "uzs": 30},
            "paid_amount": {"usd": 0, "uzs": 20},
            "debt_amount": {"usd": 0, "uzs": 10},
            "payment_type": "debt",
            "status": "completed",
            "date_returned": due_date.isoformat(),
        }
        payload.update(overrides)
        return payload
    return _payload
