"""Pytest fixtures for storefront tests."""

import base64
import hmac
import hashlib
import json
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import mongomock
from bson import ObjectId
import pytest
from fastapi.testclient import TestClient

from catalog import ProductLedger
from checkout import CheckoutService
from config import Settings
from notifications import OrderMailer
from orders import OrderWriter
from payments import PaymentGateway

KEY_SECRET = "test_key_secret"
JWT_SECRET = "test_jwt_secret"


def _b64url(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode()


def jwt_encode(payload: dict, secret: str) -> str:
    """HS256 token as the identity provider issues them."""
    header_b64 = _b64url(json.dumps({"alg": "HS256", "typ": "JWT"}, separators=(',', ':')).encode())
    payload_b64 = _b64url(json.dumps(payload, default=str, separators=(',', ':')).encode())
    signature = hmac.new(secret.encode(), f"{header_b64}.{payload_b64}".encode(), hashlib.sha256).digest()
    return f"{header_b64}.{payload_b64}.{_b64url(signature)}"


def create_access_token(uid: str, email: Optional[str], secret: str = JWT_SECRET,
                        expires_delta: timedelta = timedelta(hours=1)) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    return jwt_encode({"sub": uid, "email": email, "exp": expire}, secret)


@pytest.fixture
def settings():
    return Settings(
        database_name="storefront_test",
        jwt_secret=JWT_SECRET,
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret=KEY_SECRET,
        razorpay_api_url="https://gateway.test/v1",
        mail_api_url="https://mail.test/emails",
        mail_api_key="mail_key",
    )


@pytest.fixture
def db():
    """Fresh in-memory MongoDB database."""
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def gateway_calls():
    """Order-creation requests the fake gateway received."""
    return []


@pytest.fixture
def gateway_orders():
    """Orders the fake gateway holds, by id."""
    return {}


@pytest.fixture
def gateway_status():
    """HTTP status the fake gateway answers with."""
    return {"code": 200}


@pytest.fixture
def gateway(settings, gateway_calls, gateway_orders, gateway_status):
    def handler(request: httpx.Request) -> httpx.Response:
        if gateway_status["code"] != 200:
            return httpx.Response(gateway_status["code"], json={"error": {"code": "SERVER_ERROR"}})
        if request.method == "GET":
            order_id = request.url.path.rsplit("/", 1)[-1]
            if order_id not in gateway_orders:
                return httpx.Response(404, json={"error": {"code": "BAD_REQUEST_ERROR"}})
            return httpx.Response(200, json=gateway_orders[order_id])

        body = json.loads(request.content)
        gateway_calls.append({"url": str(request.url), "body": body, "auth": request.headers.get("authorization")})
        order = {
            "id": f"order_TEST{len(gateway_orders) + 1:04d}",
            "amount": body["amount"],
            "currency": body["currency"],
            "receipt": body["receipt"],
            "status": "created",
        }
        gateway_orders[order["id"]] = order
        return httpx.Response(200, json=order)

    client = httpx.Client(base_url=settings.razorpay_api_url, transport=httpx.MockTransport(handler))
    return PaymentGateway(settings, client=client)


@pytest.fixture
def sent_mail():
    return []


@pytest.fixture
def mailer(settings, sent_mail):
    def handler(request: httpx.Request) -> httpx.Response:
        sent_mail.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "mail_1"})

    return OrderMailer(settings, client=httpx.Client(transport=httpx.MockTransport(handler)))


@pytest.fixture
def ledger(db):
    return ProductLedger(db)


@pytest.fixture
def orders(db):
    return OrderWriter(db)


@pytest.fixture
def checkout(ledger, orders, gateway):
    return CheckoutService(ledger, orders, gateway, currency="INR")


@pytest.fixture
def make_product(ledger):
    """Create a product and return its string id."""

    def _make(name="Mug", price=500, inventory=10, is_active=True, **extra):
        product = ledger.create({"name": name, "price": price, "inventory": inventory, "is_active": is_active, **extra})
        return product["id"]

    return _make


@pytest.fixture
def stock(db):
    """Current inventory of a product by string id."""
    def _stock(product_id):
        return db["products"].find_one({"_id": ObjectId(product_id)}).get("inventory")

    return _stock


def sign(gateway_order_id: str, gateway_payment_id: str, secret: str = KEY_SECRET) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def bearer(uid: str = "user_123", email: str = "buyer@example.com") -> dict:
    return {"Authorization": f"Bearer {create_access_token(uid, email, JWT_SECRET)}"}


@pytest.fixture
def services(settings, db, gateway, mailer):
    from main import Services

    return Services.from_settings(settings, db=db, gateway=gateway, mailer=mailer)


@pytest.fixture
def api_client(settings, services):
    from main import create_app

    return TestClient(create_app(settings, services))


@pytest.fixture
def admin_headers(db):
    db["users"].insert_one({"uid": "admin_1", "email": "admin@example.com", "role": "admin"})
    return bearer("admin_1", "admin@example.com")
