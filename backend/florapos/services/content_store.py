# Overview: HTTP client for the shop's content backend (inventory, shift records, sales).

"""
Content Store Client

The backend owns products, workers and shift records. This terminal only
talks to it through these calls; every transport error and every non-2xx
response surfaces as ContentStoreError so callers handle one failure type.

Endpoints (JSON, Strapi-style {"data": ...} envelopes):
- GET  /api/products                       full item list
- GET  /api/shift-reports                  lookup by date (+ worker)
- POST /api/shift-reports                  create
- PUT  /api/shift-reports/<documentId>     update
- POST /api/sales                          decrement stock for sold items
- POST /api/admin/products-writeoff        decrement stock for a write-off
- GET  /api/workers                        worker list
There is deliberately no delete call for shift records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

import httpx

from .shift_schemas import ShiftKey, ShiftRecord

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000


class ContentStoreError(Exception):
    """Network or HTTP failure talking to the content backend."""

    def __init__(self, message: str, *, status_code: int | None = None, retryable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


@dataclass(frozen=True)
class InventoryItem:
    id: str
    name: str
    unit_price: Decimal
    on_hand_quantity: int
    kind: str | None = None
    slug: str | None = None
    extra: dict = field(default_factory=dict, compare=False)

    @classmethod
    def from_store(cls, data: dict) -> "InventoryItem":
        attrs = data.get("attributes") if isinstance(data.get("attributes"), dict) else data
        item_id = data.get("documentId") or attrs.get("documentId") or data.get("id")
        if item_id is None:
            raise ContentStoreError("product without documentId", retryable=False)
        try:
            price = Decimal(str(attrs.get("price") or 0))
        except InvalidOperation:
            price = Decimal("0")
        try:
            on_hand = int(attrs.get("availableQuantity") or 0)
        except (TypeError, ValueError):
            on_hand = 0
        return cls(
            id=str(item_id),
            name=attrs.get("name") or "",
            unit_price=price,
            on_hand_quantity=on_hand,
            kind=attrs.get("productType"),
            slug=attrs.get("slug"),
            extra={k: v for k, v in attrs.items() if k in ("color", "cardType", "description")},
        )

    def to_dict(self) -> dict:
        price = self.unit_price
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "unitPrice": int(price) if price == price.to_integral_value() else float(price),
            "onHandQuantity": self.on_hand_quantity,
            "kind": self.kind,
            **self.extra,
        }


class ContentStoreClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ContentStoreError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            retryable = response.status_code >= 500 or response.status_code in (408, 429)
            logger.warning("%s %s returned HTTP %s", method, path, response.status_code)
            raise ContentStoreError(
                f"{method} {path} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                retryable=retryable,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ContentStoreError(f"{method} {path} returned invalid JSON") from exc

    @staticmethod
    def _rows(body: Any) -> list[dict]:
        if isinstance(body, dict):
            body = body.get("data")
        if not isinstance(body, list):
            return []
        return [row for row in body if isinstance(row, dict)]

    @staticmethod
    def _single(body: Any, what: str) -> dict:
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise ContentStoreError(f"{what}: response carried no record", retryable=False)
        return data

    # -------------------------------------------------------------------------
    # Inventory
    # -------------------------------------------------------------------------

    def list_items(self) -> list[InventoryItem]:
        body = self._request("GET", "/api/products", params={"pagination[page]": 1, "pagination[pageSize]": PAGE_SIZE})
        return [InventoryItem.from_store(row) for row in self._rows(body)]

    def apply_sale(self, lines: Iterable[tuple[str, int]]) -> list[dict]:
        """Decrement on-hand stock for each (item_id, quantity)."""
        items = [{"documentId": item_id, "quantity": quantity} for item_id, quantity in lines]
        body = self._request("POST", "/api/sales", json={"items": items})
        return list((body or {}).get("updated") or [])

    def write_off(self, item_id: str, amount: int) -> dict:
        body = self._request(
            "POST",
            "/api/admin/products-writeoff",
            json={"documentId": item_id, "amount": amount},
        )
        return body or {}

    def list_workers(self) -> list[dict]:
        return self._rows(self._request("GET", "/api/workers"))

    # -------------------------------------------------------------------------
    # Shift records
    # -------------------------------------------------------------------------

    def find_shift(self, key: ShiftKey) -> ShiftRecord | None:
        """
        Look a shift record up by natural key.

        The backend filters by date/slug; the worker match happens here
        because older records carry the worker only as a relation.
        """
        body = self._request(
            "GET",
            "/api/shift-reports",
            params={
                "filters[slug][$eq]": key.slug,
                "filters[date][$eq]": key.date.isoformat(),
                "populate": "worker",
            },
        )
        for row in self._rows(body):
            record = ShiftRecord.from_store(row)
            if record.matches(key):
                return record
        return None

    def create_shift(self, payload: dict) -> ShiftRecord:
        body = self._request("POST", "/api/shift-reports", json={"data": payload})
        return ShiftRecord.from_store(self._single(body, "create shift"))

    def update_shift(self, document_id: str, payload: dict) -> ShiftRecord:
        body = self._request("PUT", f"/api/shift-reports/{document_id}", json={"data": payload})
        return ShiftRecord.from_store(self._single(body, "update shift"))
