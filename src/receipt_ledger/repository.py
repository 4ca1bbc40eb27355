"""Receipt persistence: row mapping and repository implementations."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Protocol

from receipt_ledger.config import DEFAULT_MAX_RECEIPT_AGE_YEARS
from receipt_ledger.dates import ReceiptDate
from receipt_ledger.db import get_connection
from receipt_ledger.money import Money
from receipt_ledger.receipt import LineItem, Receipt, ReceiptProps
from receipt_ledger.schemas import (
    ProcessedItem,
    ReceiptRow,
    parse_stored_items,
    parse_stored_strings,
)
from receipt_ledger.values import UserId

if TYPE_CHECKING:
    from collections.abc import Callable

    import psycopg

logger = logging.getLogger(__name__)


class ReceiptRepository(Protocol):
    """Protocol for receipt persistence backends.

    Saves are last-writer-wins upserts keyed by (user id, receipt id).
    """

    def save(self, receipt: Receipt) -> None: ...

    def get(self, user_id: UserId, receipt_id: str) -> Receipt | None: ...

    def list_for_user(
        self, user_id: UserId, *, limit: int = 50, offset: int = 0
    ) -> list[Receipt]: ...


def receipt_to_row(receipt: Receipt) -> ReceiptRow:
    """Flatten a receipt into its persisted row."""
    items = [
        ProcessedItem(
            name=item.name,
            price=float(item.price.to_major_units()),
            category=item.category,
            account_suggestion=item.account_suggestion,
            tax_note=item.tax_note,
        ).model_dump(by_alias=True, exclude_none=True)
        for item in receipt.items
    ]
    return ReceiptRow(
        user_id=receipt.user_id.to_partition_key(),
        receipt_id=receipt.id,
        receipt_image_url=receipt.receipt_image_url,
        status=receipt.status,
        items=_dump_json(items),
        total_amount=receipt.total_amount.to_major_units()
        if receipt.total_amount
        else None,
        receipt_date=receipt.receipt_date.to_persistence_string()
        if receipt.receipt_date
        else None,
        account_suggestions=_dump_json(list(receipt.account_suggestions)),
        tax_notes=_dump_json(list(receipt.tax_notes)),
        error_message=receipt.error_message,
        created_at=receipt.created_at,
        updated_at=receipt.updated_at,
    )


def row_to_receipt(
    row: ReceiptRow, *, max_age_years: int = DEFAULT_MAX_RECEIPT_AGE_YEARS
) -> Receipt:
    """Rebuild the aggregate from a row, re-running every domain check."""
    items = [
        LineItem(
            name=item.name,
            price=Money.from_major_units(item.price),
            category=item.category,
            account_suggestion=item.account_suggestion,
            tax_note=item.tax_note,
        )
        for item in parse_stored_items(row.items)
    ]
    return Receipt.reconstitute(
        ReceiptProps(
            id=row.receipt_id,
            user_id=UserId.create(row.user_id),
            receipt_image_url=row.receipt_image_url,
            status=row.status,
            created_at=row.created_at,
            updated_at=row.updated_at,
            receipt_date=ReceiptDate.create(
                row.receipt_date, max_age_years=max_age_years
            )
            if row.receipt_date
            else None,
            items=items,
            total_amount=Money.from_major_units(row.total_amount)
            if row.total_amount is not None
            else None,
            account_suggestions=parse_stored_strings(
                row.account_suggestions, "accountSuggestions"
            ),
            tax_notes=parse_stored_strings(row.tax_notes, "taxNotes"),
            error_message=row.error_message,
        )
    )


def _dump_json(values: list[Any]) -> str | None:
    if not values:
        return None
    return json.dumps(values, ensure_ascii=False)


class InMemoryReceiptRepository:
    """Dictionary-backed repository for tests and local runs.

    Stores rows rather than aggregates so reads go through the same
    re-validation as the database implementation.
    """

    def __init__(self, *, max_age_years: int = DEFAULT_MAX_RECEIPT_AGE_YEARS) -> None:
        self._rows: dict[tuple[str, str], ReceiptRow] = {}
        self._max_age_years = max_age_years

    def save(self, receipt: Receipt) -> None:
        row = receipt_to_row(receipt)
        self._rows[(row.user_id, row.receipt_id)] = row

    def get(self, user_id: UserId, receipt_id: str) -> Receipt | None:
        row = self._rows.get((user_id.to_partition_key(), receipt_id))
        if row is None:
            return None
        return row_to_receipt(row, max_age_years=self._max_age_years)

    def list_for_user(
        self, user_id: UserId, *, limit: int = 50, offset: int = 0
    ) -> list[Receipt]:
        key = user_id.to_partition_key()
        rows = sorted(
            (row for (owner, _), row in self._rows.items() if owner == key),
            key=lambda row: row.created_at,
            reverse=True,
        )
        return [
            row_to_receipt(row, max_age_years=self._max_age_years)
            for row in rows[offset : offset + limit]
        ]


_UPSERT_SQL = """\
INSERT INTO receipt_results (
    user_id, receipt_id, receipt_image_url, status, items, total_amount,
    receipt_date, account_suggestions, tax_notes, error_message,
    created_at, updated_at
) VALUES (
    %(user_id)s, %(receipt_id)s, %(receipt_image_url)s, %(status)s, %(items)s,
    %(total_amount)s, %(receipt_date)s, %(account_suggestions)s, %(tax_notes)s,
    %(error_message)s, %(created_at)s, %(updated_at)s
)
ON CONFLICT (user_id, receipt_id) DO UPDATE SET
    receipt_image_url = EXCLUDED.receipt_image_url,
    status = EXCLUDED.status,
    items = EXCLUDED.items,
    total_amount = EXCLUDED.total_amount,
    receipt_date = EXCLUDED.receipt_date,
    account_suggestions = EXCLUDED.account_suggestions,
    tax_notes = EXCLUDED.tax_notes,
    error_message = EXCLUDED.error_message,
    updated_at = EXCLUDED.updated_at
"""

_SELECT_ONE_SQL = """\
SELECT * FROM receipt_results WHERE user_id = %s AND receipt_id = %s
"""

_SELECT_FOR_USER_SQL = """\
SELECT * FROM receipt_results
WHERE user_id = %s
ORDER BY created_at DESC
LIMIT %s OFFSET %s
"""


class PostgresReceiptRepository:
    """PostgreSQL repository over the receipt_results table."""

    def __init__(
        self,
        connect: Callable[[], psycopg.Connection[dict[str, object]]] = get_connection,
        *,
        max_age_years: int = DEFAULT_MAX_RECEIPT_AGE_YEARS,
    ) -> None:
        self._connect = connect
        self._max_age_years = max_age_years

    def save(self, receipt: Receipt) -> None:
        row = receipt_to_row(receipt)
        params = row.model_dump()
        params["status"] = row.status.value
        with self._connect() as conn:
            conn.execute(_UPSERT_SQL, params)
        logger.debug(
            "Upserted receipt %s for user %s (%s)",
            row.receipt_id,
            row.user_id,
            row.status,
        )

    def get(self, user_id: UserId, receipt_id: str) -> Receipt | None:
        with self._connect() as conn:
            record = conn.execute(
                _SELECT_ONE_SQL, (user_id.to_partition_key(), receipt_id)
            ).fetchone()
        if record is None:
            return None
        return row_to_receipt(
            ReceiptRow.model_validate(record), max_age_years=self._max_age_years
        )

    def list_for_user(
        self, user_id: UserId, *, limit: int = 50, offset: int = 0
    ) -> list[Receipt]:
        with self._connect() as conn:
            records = conn.execute(
                _SELECT_FOR_USER_SQL, (user_id.to_partition_key(), limit, offset)
            ).fetchall()
        return [
            row_to_receipt(
                ReceiptRow.model_validate(record), max_age_years=self._max_age_years
            )
            for record in records
        ]
