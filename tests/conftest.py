from contextlib import contextmanager
from datetime import datetime, timezone

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from auth import create_token, hash_password
from database import get_db
from errors import ServiceUnavailable
from payments import payment_signature
from schemas import CreatePaymentOrderBody, VerifyPaymentBody

SECRET = "test_secret"

SHIPPING = {
    "name": "Ravi Kumar",
    "street": "12 MG Road",
    "city": "Vijayawada",
    "state": "Andhra Pradesh",
    "pincode": "520001",
    "phone": "9876543210",
}


class InMemoryStore:
    """Dictionary-backed stand-in for MongoStore."""

    def __init__(self):
        self.books = {}
        self.orders = {}
        self.seq = 0
        self.transactional = False
        self.fail_on_book = None

    @contextmanager
    def unit_of_work(self):
        yield self

    def add_book(self, title="Book", price=100.0, stock_count=10, sales_count=0, is_active=True, **extra):
        book_id = str(ObjectId())
        self.books[book_id] = {
            "id": book_id,
            "title": title,
            "author": "Author of " + title,
            "image": f"/uploads/{title}.jpg",
            "price": price,
            "stockCount": stock_count,
            "salesCount": sales_count,
            "inStock": stock_count > 0,
            "isActive": is_active,
            **extra,
        }
        return book_id

    def get_books(self, book_ids):
        return {b: dict(self.books[b]) for b in book_ids if b in self.books}

    def adjust_stock(self, book_id, stock_delta, sales_delta=0):
        if book_id == self.fail_on_book:
            raise RuntimeError("database unavailable")
        book = self.books.get(book_id)
        if book is None:
            return None
        book["stockCount"] += stock_delta
        book["salesCount"] += sales_delta
        book["inStock"] = book["stockCount"] > 0
        return dict(book)

    def next_order_sequence(self):
        self.seq += 1
        return self.seq

    def insert_order(self, order):
        order.id = str(ObjectId())
        order.created_at = datetime.now(timezone.utc)
        self.orders[order.id] = order.model_copy(deep=True)
        return order.id

    def get_order(self, order_id):
        order = self.orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    def find_order_by_gateway_id(self, gateway_order_id):
        for order in self.orders.values():
            if order.payment_details.razorpay_order_id == gateway_order_id:
                return order.model_copy(deep=True)
        return None

    def _matching(self, filt):
        filt = filt or {}
        result = []
        for order in self.orders.values():
            if "user" in filt and order.user != filt["user"]:
                continue
            if "orderStatus" in filt and order.order_status != filt["orderStatus"]:
                continue
            result.append(order)
        return result

    def find_orders(self, filt=None, skip=0, limit=20):
        return [o.model_copy(deep=True) for o in self._matching(filt)[skip:skip + limit]]

    def count_orders(self, filt=None):
        return len(self._matching(filt))

    def order_stats(self):
        stats = {}
        for order in self.orders.values():
            row = stats.setdefault(order.order_status, {"status": order.order_status, "count": 0, "totalValue": 0})
            row["count"] += 1
            row["totalValue"] += order.order_summary.total
        return list(stats.values())

    def save_order(self, order, expected_status=None, unless_paid=False):
        current = self.orders.get(order.id)
        if current is None:
            return False
        if expected_status is not None and current.order_status != expected_status:
            return False
        if unless_paid and current.payment_details.status == "paid":
            return False
        self.orders[order.id] = order.model_copy(deep=True)
        return True


class FakeGateway:
    def __init__(self):
        self.created = []

    def create_order(self, amount, currency, receipt, notes=None):
        order = {"id": f"order_test{len(self.created) + 1}", "amount": amount, "currency": currency}
        self.created.append({**order, "receipt": receipt, "notes": notes})
        return order


class DownGateway:
    def create_order(self, amount, currency, receipt, notes=None):
        raise ServiceUnavailable()


def cart_body(items, amount, **extra):
    return CreatePaymentOrderBody(
        amount=amount,
        items=[{"bookId": book_id, "quantity": qty} for book_id, qty in items],
        shippingAddress=SHIPPING,
        **extra,
    )


def verify_body(order, payment_id="pay_test1", secret=SECRET, signature=None, gateway_order_id=None):
    gateway_order_id = gateway_order_id or order.payment_details.razorpay_order_id
    return VerifyPaymentBody(
        gatewayOrderId=gateway_order_id,
        gatewayPaymentId=payment_id,
        gatewaySignature=signature or payment_signature(secret, gateway_order_id, payment_id),
        orderId=order.id,
    )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def gateway():
    return FakeGateway()


CUSTOMER = {"id": str(ObjectId()), "name": "Ravi Kumar", "email": "ravi@example.com", "role": "user"}
OTHER_CUSTOMER = {"id": str(ObjectId()), "name": "Sita", "email": "sita@example.com", "role": "user"}
ADMIN = {"id": str(ObjectId()), "name": "Admin", "email": "admin@example.com", "role": "admin"}


@pytest.fixture
def as_user():
    current = {"user": CUSTOMER}

    def switch(user):
        current["user"] = user

    switch.current = current
    return switch


@pytest.fixture
def client(store, gateway, as_user):
    from auth import get_current_user
    from main import app, get_store
    from payments import get_gateway, get_gateway_secret

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_gateway_secret] = lambda: SECRET
    app.dependency_overrides[get_current_user] = lambda: as_user.current["user"]
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def mongo():
    return mongomock.MongoClient()["ataka_test"]


@pytest.fixture
def api(mongo, gateway):
    """Client wired to an in-memory MongoDB; authentication runs for real."""
    from main import app
    from payments import get_gateway, get_gateway_secret, get_webhook_secret

    app.dependency_overrides[get_db] = lambda: mongo
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_gateway_secret] = lambda: SECRET
    app.dependency_overrides[get_webhook_secret] = lambda: ""
    yield TestClient(app)
    app.dependency_overrides.clear()


def insert_user(mongo, name="Ravi Kumar", email="ravi@example.com", password="telugu123", **extra):
    doc = {
        "name": name,
        "email": email,
        "passwordHash": hash_password(password),
        "role": "user",
        "isActive": True,
        "addresses": [],
        "wishlist": [],
        "createdAt": datetime.now(timezone.utc),
        **extra,
    }
    return str(mongo["user"].insert_one(doc).inserted_id)


def auth_header(user_id):
    return {"Authorization": f"Bearer {create_token({'id': user_id})}"}
