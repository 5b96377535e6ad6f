"""
Pytest fixtures for the florapos terminal backend tests.

Provides an app per test (in-memory SQLite, memory-backed activity log) wired
to a fake content backend served through httpx.MockTransport.
"""

import itertools
import json

import httpx
import pytest

from florapos import create_app
from florapos.extensions import db


DEFAULT_PRODUCTS = [
    {"documentId": "rose-red", "name": "Red rose", "price": 120, "availableQuantity": 50, "productType": "flower", "slug": "red-rose"},
    {"documentId": "tulip-white", "name": "White tulip", "price": 80, "availableQuantity": 30, "productType": "flower", "slug": "white-tulip"},
    {"documentId": "card-blank", "name": "Blank card", "price": 15, "availableQuantity": 100, "productType": "card", "slug": "blank-card"},
]


class FakeContentStore:
    """
    In-memory stand-in for the shop's content backend.

    Records every request in `calls` as (method, path). `fail` maps
    (method, path prefix) to an HTTP status to answer with instead.
    """

    def __init__(self, products=None):
        self.products = {p["documentId"]: dict(p) for p in (products if products is not None else DEFAULT_PRODUCTS)}
        self.shifts: dict[str, dict] = {}
        self.workers = [{"id": 7, "slug": "anna", "name": "Anna"}, {"id": 8, "slug": "ivan", "name": "Ivan"}]
        self.calls: list[tuple[str, str]] = []
        self.fail: dict[tuple[str, str], int] = {}
        self._ids = itertools.count(1)

    def calls_to(self, method: str, path: str) -> int:
        return sum(1 for m, p in self.calls if m == method and p == path)

    def add_product(self, document_id, *, name=None, price=0, quantity=0, product_type="flower"):
        self.products[document_id] = {
            "documentId": document_id,
            "name": name or document_id,
            "price": price,
            "availableQuantity": quantity,
            "productType": product_type,
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        self.calls.append((method, path))

        for (fail_method, prefix), status in self.fail.items():
            if fail_method == method and path.startswith(prefix):
                return httpx.Response(status, json={"error": {"status": status, "message": "injected failure"}})

        if method == "GET" and path == "/api/products":
            return httpx.Response(200, json={"data": list(self.products.values()), "meta": {}})

        if method == "GET" and path == "/api/workers":
            return httpx.Response(200, json={"data": self.workers})

        if method == "POST" and path == "/api/sales":
            updated = []
            for line in json.loads(request.content)["items"]:
                product = self.products.get(line["documentId"])
                if product is None:
                    return httpx.Response(404, json={"error": {"message": "product not found"}})
                product["availableQuantity"] = max(0, product["availableQuantity"] - line["quantity"])
                updated.append({"documentId": product["documentId"], "availableQuantity": product["availableQuantity"]})
            return httpx.Response(200, json={"updated": updated})

        if method == "POST" and path == "/api/admin/products-writeoff":
            body = json.loads(request.content)
            product = self.products.get(body["documentId"])
            if product is None:
                return httpx.Response(404, json={"error": {"message": "product not found"}})
            product["availableQuantity"] = max(0, product["availableQuantity"] - body["amount"])
            return httpx.Response(200, json={"documentId": product["documentId"], "availableQuantity": product["availableQuantity"]})

        if method == "GET" and path == "/api/shift-reports":
            wanted_date = request.url.params.get("filters[date][$eq]")
            rows = [row for row in self.shifts.values() if wanted_date is None or row["date"] == wanted_date]
            return httpx.Response(200, json={"data": rows, "meta": {}})

        if method == "POST" and path == "/api/shift-reports":
            data = json.loads(request.content)["data"]
            document_id = f"shift-{next(self._ids)}"
            self.shifts[document_id] = self._shift_row(document_id, data)
            return httpx.Response(200, json={"data": self.shifts[document_id]})

        if method == "PUT" and path.startswith("/api/shift-reports/"):
            document_id = path.rsplit("/", 1)[1]
            if document_id not in self.shifts:
                return httpx.Response(404, json={"error": {"message": "not found"}})
            data = json.loads(request.content)["data"]
            self.shifts[document_id] = self._shift_row(document_id, data)
            return httpx.Response(200, json={"data": self.shifts[document_id]})

        return httpx.Response(404, json={"error": {"message": f"no route {method} {path}"}})

    @staticmethod
    def _shift_row(document_id: str, data: dict) -> dict:
        row = dict(data)
        row["documentId"] = document_id
        row["worker"] = {"id": data.get("worker"), "slug": data.get("workerSlug")}
        return row


@pytest.fixture()
def content_store():
    return FakeContentStore()


@pytest.fixture()
def app(content_store):
    """Create application for testing."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "ACTIVITY_LOG_STORAGE": "memory",
        "CONTENT_STORE_URL": "http://content.test",
        "CONTENT_STORE_TRANSPORT": httpx.MockTransport(content_store.handler),
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture()
def services(app):
    return app.extensions["florapos"]


@pytest.fixture()
def runner(app):
    return app.test_cli_runner()
