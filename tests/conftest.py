import os

# Settings are read at import time, point everything at throwaway values first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "whsec_test"

from datetime import timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import main
from database import Base, SessionLocal, engine
from models.address import Address
from models.cart import CartItem
from models.coupon import Coupon, DiscountType
from models.product import Product
from models.service_area import ServiceArea
from models.users import User
from services import cart_store
from services import wallet as wallet_service
from services.notifications import NotificationSink, get_notification_sink
from utils.clock import utcnow
from utils.razorpay_client import GatewaySession, get_payment_gateway
from utils.tokenJWT import create_access_token


class FakeGateway:
    """Stands in for the Razorpay client. Signatures are plain strings built by ``sign``."""

    key_id = "rzp_test_key"
    webhook_signature = "valid-webhook-signature"

    def __init__(self):
        self.sessions = []
        self.error = None

    @staticmethod
    def sign(session_id, payment_id):
        return f"signed:{session_id}:{payment_id}"

    async def create_session(self, amount, currency, metadata):
        if self.error is not None:
            raise self.error
        session = GatewaySession(
            session_id=f"order_test{len(self.sessions) + 1}",
            client_token=self.key_id,
            amount=int(round(amount * 100)),
            currency=currency,
        )
        self.sessions.append((session, metadata))
        return session

    def verify(self, session_id, signature, payload):
        return signature == self.sign(session_id, payload.get("gateway_payment_id"))

    def verify_webhook(self, body, signature):
        return signature == self.webhook_signature


class RecordingSink(NotificationSink):
    def __init__(self):
        self.events = []

    def emit(self, user_id, type_, payload):
        self.events.append((user_id, type_, payload))

    def types(self):
        return [type_ for _, type_, _ in self.events]


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def client(gateway, sink):
    main.app.dependency_overrides[get_payment_gateway] = lambda: gateway
    main.app.dependency_overrides[get_notification_sink] = lambda: sink
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture
def store(db):
    """Customers, catalog, delivery coverage and coupons shared by most tests.

    Milk 50 (stock 10), rice 200 (stock 5). Postal code 560034 is served with a
    delivery fee of 30 and a minimum order of 100; 560099 is switched off and
    110001 is not covered at all.
    """
    now = utcnow()
    customer = User(email="asha@example.com", password_hash="!", role="customer", name="Asha")
    other = User(email="ravi@example.com", password_hash="!", role="customer", name="Ravi")
    admin = User(email="admin@example.com", password_hash="!", role="admin", name="Store Admin")
    db.add_all([customer, other, admin])
    db.flush()

    db.add_all([
        ServiceArea(postal_code="560034", area="Koramangala", city="Bengaluru", state="Karnataka",
                    delivery_eta_label="30-45 mins", delivery_fee=30.0, min_order_value=100.0),
        ServiceArea(postal_code="560099", area="Electronic City", city="Bengaluru", state="Karnataka",
                    delivery_fee=50.0, min_order_value=0.0, is_active=False),
    ])

    milk = Product(name="Toned Milk", code="GR0001", unit="500 ml", price=50.0, stock_quantity=10)
    rice = Product(name="Basmati Rice", code="GR0002", unit="1 kg", price=200.0, stock_quantity=5)
    db.add_all([milk, rice])

    home = Address(user_id=customer.id, recipient_name="Asha", phone="9800000001", line1="12, 4th Cross",
                   city="Bengaluru", state="Karnataka", postal_code="560034", is_default=True)
    far = Address(user_id=customer.id, recipient_name="Asha", phone="9800000001", line1="7 Janpath",
                  city="New Delhi", state="Delhi", postal_code="110001")
    other_home = Address(user_id=other.id, recipient_name="Ravi", phone="9800000002", line1="3 Church Street",
                         city="Bengaluru", state="Karnataka", postal_code="560034", is_default=True)
    db.add_all([home, far, other_home])

    save20 = Coupon(code="SAVE20", discount_type=DiscountType.PERCENTAGE, value=20.0,
                    min_order_amount=500.0, max_discount_amount=100.0, total_usage_limit=100,
                    per_user_usage_limit=1, valid_from=now - timedelta(days=1),
                    valid_until=now + timedelta(days=30))
    freeship = Coupon(code="FREESHIP", discount_type=DiscountType.FREE_DELIVERY, value=0.0,
                      min_order_amount=0.0, per_user_usage_limit=5,
                      valid_from=now - timedelta(days=1), valid_until=now + timedelta(days=30))
    db.add_all([save20, freeship])
    db.commit()

    return SimpleNamespace(
        customer_id=customer.id, other_id=other.id, admin_id=admin.id,
        milk_id=milk.id, rice_id=rice.id,
        home_id=home.id, far_id=far.id, other_home_id=other_home.id,
        save20_id=save20.id, freeship_id=freeship.id,
    )


@pytest.fixture
def fill_cart(db):
    def _fill(user_id, *lines):
        cart = cart_store.get_open_cart(db, user_id, create=True)
        for product_id, qty in lines:
            product = db.get(Product, product_id)
            db.add(CartItem(cart_id=cart.id, product_id=product_id, qty=qty,
                            unit_price_snapshot=product.price))
        db.commit()
    return _fill


@pytest.fixture
def fund_wallet(db):
    def _fund(user_id, amount):
        wallet_service.credit(db, user_id, amount, description="Top up")
        db.commit()
    return _fund


@pytest.fixture
def auth_headers():
    def _headers(email):
        return {"Authorization": f"Bearer {create_access_token({'sub': email})}"}
    return _headers
