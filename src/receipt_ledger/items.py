"""ReceiptItem entity."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from receipt_ledger.config import DEFAULT_MAX_RECEIPT_AGE_YEARS
from receipt_ledger.dates import ReceiptDate
from receipt_ledger.money import Money
from receipt_ledger.values import AccountCategory, ItemName, ReceiptItemId, TaxNote

# Items at or above this price (yen) are fixed-asset candidates.
HIGH_VALUE_THRESHOLD_YEN = 100_000

CSV_LABELS = ("購入日", "商品名", "金額", "勘定科目", "税務メモ")


def _now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, eq=False)
class ReceiptItem:
    """One priced line of a receipt, with its bookkeeping metadata.

    Items are immutable. The ``update_*`` methods return a copy that keeps
    the identity and creation time and refreshes ``updated_at``. Two items
    are equal when their ids are equal, whatever their attributes.
    """

    id: ReceiptItemId
    name: ItemName
    price: Money
    purchase_date: ReceiptDate
    account_category: AccountCategory | None = None
    tax_note: TaxNote | None = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @classmethod
    def create(
        cls,
        *,
        name: str,
        price_in_yen: int | float | Decimal,
        purchase_date: str | date | datetime,
        account_category: str | None = None,
        tax_note: str | None = None,
        max_age_years: int = DEFAULT_MAX_RECEIPT_AGE_YEARS,
    ) -> ReceiptItem:
        """Build a new item with a freshly generated id.

        ``purchase_date`` must fall within the last ``max_age_years`` years.
        """
        return cls(
            id=ReceiptItemId.generate(),
            name=ItemName.create(name),
            price=Money.from_major_units(price_in_yen),
            purchase_date=ReceiptDate.create(
                purchase_date, max_age_years=max_age_years
            ),
            account_category=(
                AccountCategory.create(account_category) if account_category else None
            ),
            tax_note=TaxNote.create_optional(tax_note),
        )

    @classmethod
    def restore(
        cls,
        *,
        id: str,  # noqa: A002
        name: str,
        price_in_yen: int | float | Decimal,
        purchase_date: str | date | datetime,
        created_at: datetime,
        updated_at: datetime,
        account_category: str | None = None,
        tax_note: str | None = None,
        max_age_years: int = DEFAULT_MAX_RECEIPT_AGE_YEARS,
    ) -> ReceiptItem:
        """Rebuild a persisted item.

        Every field goes through the same validation as ``create``; stored
        data is never trusted.
        """
        return cls(
            id=ReceiptItemId.create(id),
            name=ItemName.create(name),
            price=Money.from_major_units(price_in_yen),
            purchase_date=ReceiptDate.create(
                purchase_date, max_age_years=max_age_years
            ),
            account_category=(
                AccountCategory.create(account_category) if account_category else None
            ),
            tax_note=TaxNote.create_optional(tax_note),
            created_at=created_at,
            updated_at=updated_at,
        )

    def update_account_category(self, category: str) -> ReceiptItem:
        return replace(
            self,
            account_category=AccountCategory.create(category),
            updated_at=_now(),
        )

    def update_tax_note(self, note: str) -> ReceiptItem:
        return replace(self, tax_note=TaxNote.create(note), updated_at=_now())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReceiptItem):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def equals(self, other: object) -> bool:
        return isinstance(other, ReceiptItem) and self == other

    def is_deductible_expense(self) -> bool:
        return self.price.amount > 0

    def is_high_value_item(self) -> bool:
        return self.price.to_major_units() >= HIGH_VALUE_THRESHOLD_YEN

    def to_persistence_dict(self) -> dict[str, Any]:
        """Project to primitives accepted by ``restore``."""
        return {
            "id": self.id.value,
            "name": self.name.value,
            "price_in_yen": self.price.to_major_units(),
            "account_category": self.account_category.value
            if self.account_category
            else None,
            "tax_note": self.tax_note.value if self.tax_note else None,
            "purchase_date": self.purchase_date.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_csv_row(self) -> dict[str, str]:
        """Project to the labelled columns of the CSV export."""
        purchased, name, amount, category, note = CSV_LABELS
        return {
            purchased: self.purchase_date.format_for_display(),
            name: self.name.value,
            amount: self.price.format(),
            category: self.account_category.value if self.account_category else "",
            note: self.tax_note.value if self.tax_note else "",
        }

    def __str__(self) -> str:
        category = f" [{self.account_category}]" if self.account_category else ""
        return (
            f"{self.name}: {self.price.format()}{category} "
            f"({self.purchase_date.format_for_display()})"
        )
