"""Receipt aggregate root."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from receipt_ledger.errors import (
    AlreadyCompletedError,
    AlreadyFailedError,
    EmptyErrorMessageError,
    EmptyItemListError,
    EmptyValueError,
    ImmutableStatusError,
    InvalidFormatError,
    MissingErrorMessageError,
    MissingReceiptDateError,
    TotalMismatchError,
)
from receipt_ledger.money import Money, sum_money

if TYPE_CHECKING:
    from collections.abc import Iterable

    from receipt_ledger.dates import ReceiptDate
    from receipt_ledger.values import UserId

_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


class ReceiptStatus(StrEnum):
    """Processing state of a receipt."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class LineItem:
    """A priced line as read from the receipt image."""

    name: str
    price: Money
    category: str | None = None
    account_suggestion: str | None = None
    tax_note: str | None = None


@dataclass
class ReceiptProps:
    """Full field set of a receipt, used to rebuild and to snapshot it."""

    id: str
    user_id: UserId
    receipt_image_url: str
    status: ReceiptStatus
    created_at: datetime
    updated_at: datetime
    receipt_date: ReceiptDate | None = None
    items: list[LineItem] = field(default_factory=list)
    total_amount: Money | None = None
    account_suggestions: list[str] = field(default_factory=list)
    tax_notes: list[str] = field(default_factory=list)
    error_message: str | None = None


@dataclass(frozen=True, eq=False)
class Receipt:
    """Aggregate root for one uploaded receipt.

    A receipt starts in ``processing`` and moves once to ``completed`` or
    ``failed``; both are terminal. Every construction path (``create``,
    ``reconstitute`` and each transition) runs the same invariant checks,
    so an instance is either fully valid or never exists. Transitions
    return new instances.
    """

    id: str
    user_id: UserId
    receipt_image_url: str
    status: ReceiptStatus
    created_at: datetime
    updated_at: datetime
    receipt_date: ReceiptDate | None = None
    items: tuple[LineItem, ...] = ()
    total_amount: Money | None = None
    account_suggestions: tuple[str, ...] = ()
    tax_notes: tuple[str, ...] = ()
    error_message: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", ReceiptStatus(self.status))
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "account_suggestions", tuple(self.account_suggestions))
        object.__setattr__(self, "tax_notes", tuple(self.tax_notes))
        _validate_id(self.id)
        _validate_image_url(self.receipt_image_url)
        self._validate_business_rules()

    @classmethod
    def create(
        cls,
        id: str,  # noqa: A002
        user_id: UserId,
        receipt_image_url: str,
        created_at: datetime | None = None,
    ) -> Receipt:
        """Start processing a newly uploaded receipt."""
        now = created_at or datetime.now(tz=UTC)
        return cls(
            id=id.strip() if isinstance(id, str) else id,
            user_id=user_id,
            receipt_image_url=receipt_image_url,
            status=ReceiptStatus.PROCESSING,
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def reconstitute(cls, props: ReceiptProps) -> Receipt:
        """Rebuild a receipt from stored data, re-checking all invariants."""
        return cls(
            id=props.id,
            user_id=props.user_id,
            receipt_image_url=props.receipt_image_url,
            status=props.status,
            created_at=props.created_at,
            updated_at=props.updated_at,
            receipt_date=props.receipt_date,
            items=tuple(props.items),
            total_amount=props.total_amount,
            account_suggestions=tuple(props.account_suggestions),
            tax_notes=tuple(props.tax_notes),
            error_message=props.error_message,
        )

    def _validate_business_rules(self) -> None:
        if self.status is ReceiptStatus.COMPLETED and self.receipt_date is None:
            msg = "Receipt date is required when status is completed"
            raise MissingReceiptDateError(msg)

        if self.status is ReceiptStatus.FAILED and not (
            self.error_message and self.error_message.strip()
        ):
            msg = "Error message is required when status is failed"
            raise MissingErrorMessageError(msg)

        if not self.items:
            return

        calculated = _sum_items(self.items)
        if self.total_amount is None:
            object.__setattr__(self, "total_amount", calculated)
        elif self.total_amount != calculated:
            msg = (
                "Total amount does not match the sum of item prices: "
                f"{self.total_amount.format()} != {calculated.format()}"
            )
            raise TotalMismatchError(msg)

    def mark_as_completed(
        self,
        receipt_date: ReceiptDate,
        items: Iterable[LineItem],
        account_suggestions: Iterable[str] = (),
        tax_notes: Iterable[str] = (),
    ) -> Receipt:
        """Record a successful extraction.

        Raises:
            AlreadyCompletedError: the receipt is already completed.
            ImmutableStatusError: the receipt has failed.
            EmptyItemListError: ``items`` is empty.
        """
        if self.status is ReceiptStatus.COMPLETED:
            msg = "Receipt is already completed"
            raise AlreadyCompletedError(msg)
        if self.status is ReceiptStatus.FAILED:
            msg = "Cannot complete a failed receipt"
            raise ImmutableStatusError(msg)

        items = tuple(items)
        if not items:
            msg = "At least one item is required to complete the receipt"
            raise EmptyItemListError(msg)

        return replace(
            self,
            status=ReceiptStatus.COMPLETED,
            receipt_date=receipt_date,
            items=items,
            total_amount=_sum_items(items),
            account_suggestions=tuple(account_suggestions),
            tax_notes=tuple(tax_notes),
            updated_at=datetime.now(tz=UTC),
        )

    def mark_as_failed(self, error_message: str) -> Receipt:
        """Record a failed extraction.

        Failure never overrides success, and a failed receipt keeps its
        first error message.

        Raises:
            AlreadyCompletedError: the receipt is already completed.
            AlreadyFailedError: the receipt has already failed.
            EmptyErrorMessageError: ``error_message`` is blank.
        """
        if self.status is ReceiptStatus.COMPLETED:
            msg = "Cannot mark completed receipt as failed"
            raise AlreadyCompletedError(msg)
        if self.status is ReceiptStatus.FAILED:
            msg = "Receipt is already failed"
            raise AlreadyFailedError(msg)
        if not error_message or not error_message.strip():
            msg = "Error message is required when marking receipt as failed"
            raise EmptyErrorMessageError(msg)

        return replace(
            self,
            status=ReceiptStatus.FAILED,
            error_message=error_message.strip(),
            updated_at=datetime.now(tz=UTC),
        )

    def update_items(self, items: Iterable[LineItem]) -> Receipt:
        """Replace the items of a receipt that is still processing.

        The total is recomputed, and left unset for an empty list.
        """
        if self.status is not ReceiptStatus.PROCESSING:
            msg = f"Cannot update items of {self.status} receipt"
            raise ImmutableStatusError(msg)

        items = tuple(items)
        return replace(
            self,
            items=items,
            total_amount=_sum_items(items) if items else None,
            updated_at=datetime.now(tz=UTC),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Receipt):
            return NotImplemented
        return self.id == other.id and self.user_id == other.user_id

    def __hash__(self) -> int:
        return hash((self.id, self.user_id))

    def equals(self, other: object) -> bool:
        return isinstance(other, Receipt) and self == other

    def is_processing(self) -> bool:
        return self.status is ReceiptStatus.PROCESSING

    def is_completed(self) -> bool:
        return self.status is ReceiptStatus.COMPLETED

    def is_failed(self) -> bool:
        return self.status is ReceiptStatus.FAILED

    def get_formatted_total_amount(self) -> str | None:
        return self.total_amount.format() if self.total_amount else None

    def get_formatted_receipt_date(self) -> str | None:
        return self.receipt_date.format_for_display() if self.receipt_date else None

    def to_snapshot(self) -> ReceiptProps:
        """Return an independent copy of every field for serialization.

        The lists are new objects; mutating them never reaches the
        aggregate.
        """
        return ReceiptProps(
            id=self.id,
            user_id=self.user_id,
            receipt_image_url=self.receipt_image_url,
            status=self.status,
            created_at=self.created_at,
            updated_at=self.updated_at,
            receipt_date=self.receipt_date,
            items=list(self.items),
            total_amount=self.total_amount,
            account_suggestions=list(self.account_suggestions),
            tax_notes=list(self.tax_notes),
            error_message=self.error_message,
        )


def _sum_items(items: Iterable[LineItem]) -> Money:
    return sum_money([item.price for item in items])


def _validate_id(receipt_id: object) -> None:
    if not isinstance(receipt_id, str) or not receipt_id.strip():
        msg = "Receipt ID cannot be empty"
        raise EmptyValueError(msg)
    if not _UUID_PATTERN.match(receipt_id):
        msg = f"Receipt ID must be a valid UUID, got {receipt_id!r}"
        raise InvalidFormatError(msg)


def _validate_image_url(url: object) -> None:
    if not isinstance(url, str) or not url.strip():
        msg = "Receipt image URL cannot be empty"
        raise EmptyValueError(msg)
    parsed = urlparse(url.strip())
    if not parsed.scheme or not (parsed.netloc or parsed.path):
        msg = f"Receipt image URL must be a valid URL, got {url!r}"
        raise InvalidFormatError(msg)
