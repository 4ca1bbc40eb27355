"""Shared test fixtures."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any

import pytest

from receipt_ledger.dates import ReceiptDate, today_in_japan
from receipt_ledger.money import Money
from receipt_ledger.receipt import LineItem, Receipt
from receipt_ledger.values import UserId

if TYPE_CHECKING:
    from pathlib import Path

RECEIPT_ID = "3f2b8c1e-9d4a-4c6b-8e2f-1a2b3c4d5e6f"
IMAGE_URL = "https://example.blob.core.windows.net/receipts/3f2b8c1e.jpg"


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    """Provide a temporary directory as the blob store root."""
    root = tmp_path / "receipts"
    root.mkdir()
    return root


@pytest.fixture
def user_id() -> UserId:
    return UserId.create("user-123")


@pytest.fixture
def recent_date_str() -> str:
    """A purchase date well inside the retention window."""
    return (today_in_japan() - timedelta(days=10)).isoformat()


@pytest.fixture
def recent_date(recent_date_str: str) -> ReceiptDate:
    return ReceiptDate.create(recent_date_str)


@pytest.fixture
def processing_receipt(user_id: UserId) -> Receipt:
    return Receipt.create(RECEIPT_ID, user_id, IMAGE_URL)


@pytest.fixture
def line_items() -> list[LineItem]:
    return [
        LineItem(
            name="コピー用紙",
            price=Money.from_major_units(500),
            account_suggestion="消耗品費",
        ),
        LineItem(
            name="ボールペン",
            price=Money.from_major_units(734),
            account_suggestion="事務用品費",
            tax_note="少額のため一括経費計上可",
        ),
    ]


@pytest.fixture
def vision_payload(recent_date_str: str) -> dict[str, Any]:
    """A well-formed vision model answer."""
    return {
        "totalAmount": 1234,
        "receiptDate": recent_date_str,
        "items": [
            {
                "name": "コピー用紙",
                "price": 500,
                "accountSuggestion": "消耗品費",
            },
            {
                "name": "ボールペン",
                "price": 734,
                "accountSuggestion": "事務用品費",
                "taxNote": "少額のため一括経費計上可",
            },
        ],
    }
