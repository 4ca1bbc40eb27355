"""Receipt processing orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from receipt_ledger.config import DEFAULT_MAX_RECEIPT_AGE_YEARS
from receipt_ledger.dates import ReceiptDate
from receipt_ledger.errors import (
    BlobNotFoundError,
    DomainError,
    RateLimitExceededError,
)
from receipt_ledger.extraction import extract_receipt, media_type_for
from receipt_ledger.items import ReceiptItem
from receipt_ledger.money import Money
from receipt_ledger.receipt import LineItem, Receipt
from receipt_ledger.schemas import (
    IssueUploadRequest,
    ProcessReceiptRequest,
    ReceiptResultsQuery,
)
from receipt_ledger.store import new_blob_name, receipt_id_from_blob
from receipt_ledger.values import AccountCategory, UserId

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from receipt_ledger.ratelimit import RateLimiter
    from receipt_ledger.repository import ReceiptRepository
    from receipt_ledger.schemas import VisionReceiptResponse
    from receipt_ledger.store import BlobStore

logger = logging.getLogger(__name__)

# Stored error messages are capped by the row schema.
MAX_ERROR_MESSAGE_LENGTH = 1000


@dataclass(frozen=True)
class UploadTarget:
    """Where a client should upload a receipt image."""

    blob_name: str
    receipt_id: str
    url: str


class ReceiptProcessor:
    """Coordinate blob storage, the vision model and the repository.

    Each processing run persists the ``processing`` receipt first, then
    either the ``completed`` or the ``failed`` one, so a crash never hides
    an upload.
    """

    def __init__(
        self,
        store: BlobStore,
        repository: ReceiptRepository,
        *,
        extractor: Callable[[bytes, str], VisionReceiptResponse] | None = None,
        rate_limiter: RateLimiter | None = None,
        max_age_years: int = DEFAULT_MAX_RECEIPT_AGE_YEARS,
    ) -> None:
        self.store = store
        self.repository = repository
        self._extract = extractor or extract_receipt
        self.rate_limiter = rate_limiter
        self.max_age_years = max_age_years

    def issue_upload(self, request: IssueUploadRequest) -> UploadTarget:
        """Reserve a fresh blob name for an upload."""
        blob_name = new_blob_name(request.file_name)
        return UploadTarget(
            blob_name=blob_name,
            receipt_id=receipt_id_from_blob(blob_name),
            url=self.store.url_for(blob_name),
        )

    def process(self, request: ProcessReceiptRequest) -> Receipt:
        """Extract, validate and persist the receipt behind ``request.blob_name``.

        Raises:
            RateLimitExceededError: the user exhausted the request budget.
            BlobNotFoundError: the image was never uploaded.
            Exception: anything raised after the ``processing`` receipt was
                saved is re-raised once the receipt is stored as ``failed``.
        """
        user_id = UserId.create(request.user_id)
        if self.rate_limiter is not None and not self.rate_limiter.check(
            user_id.value
        ):
            msg = "Rate limit reached, please retry later"
            raise RateLimitExceededError(msg)

        blob_name = request.blob_name
        if not self.store.exists(blob_name):
            msg = f"Receipt image not found: {blob_name}"
            raise BlobNotFoundError(msg)

        receipt = Receipt.create(
            receipt_id_from_blob(blob_name), user_id, self.store.url_for(blob_name)
        )
        self.repository.save(receipt)
        logger.info("Processing receipt %s for user %s", receipt.id, user_id)

        try:
            image = self.store.load(blob_name)
            response = self._extract(image, media_type_for(blob_name))
            completed = self._complete(receipt, response)
        except Exception as exc:
            message = str(exc).strip() or "Unknown error occurred"
            failed = receipt.mark_as_failed(message[:MAX_ERROR_MESSAGE_LENGTH])
            self.repository.save(failed)
            logger.warning("Receipt %s failed: %s", receipt.id, exc)
            raise

        self.repository.save(completed)
        logger.info(
            "Receipt %s completed with %d items, total %s",
            completed.id,
            len(completed.items),
            completed.get_formatted_total_amount(),
        )
        return completed

    def list_results(
        self, user_id: str, query: ReceiptResultsQuery | None = None
    ) -> list[Receipt]:
        """Return the user's receipts, newest first."""
        query = query or ReceiptResultsQuery()
        return self.repository.list_for_user(
            UserId.create(user_id), limit=query.limit, offset=query.offset
        )

    def get_result(self, user_id: str, receipt_id: str) -> Receipt | None:
        return self.repository.get(UserId.create(user_id), receipt_id)

    def itemize(self, receipt: Receipt) -> list[ReceiptItem]:
        """Turn the line items of a completed receipt into ReceiptItem entities.

        A suggested account that is not a valid AccountCategory is dropped
        rather than failing the whole receipt.
        """
        if not receipt.is_completed() or receipt.receipt_date is None:
            return []

        entities: list[ReceiptItem] = []
        for item in receipt.items:
            entities.append(
                ReceiptItem.create(
                    name=item.name,
                    price_in_yen=item.price.to_major_units(),
                    purchase_date=receipt.receipt_date.value,
                    account_category=_account_category(item),
                    tax_note=item.tax_note,
                    max_age_years=self.max_age_years,
                )
            )
        return entities

    def _complete(self, receipt: Receipt, response: VisionReceiptResponse) -> Receipt:
        receipt_date = ReceiptDate.create(
            response.receipt_date, max_age_years=self.max_age_years
        )
        items = [
            LineItem(
                name=item.name,
                price=Money.from_major_units(item.price),
                category=item.category,
                account_suggestion=item.account_suggestion,
                tax_note=item.tax_note,
            )
            for item in response.items
        ]
        completed = receipt.mark_as_completed(
            receipt_date,
            items,
            account_suggestions=_unique(item.account_suggestion for item in items),
            tax_notes=_unique(item.tax_note for item in items),
        )

        reported = Money.from_major_units(response.total_amount)
        if completed.total_amount != reported:
            logger.warning(
                "Receipt %s: model total %s differs from item sum %s; using item sum",
                receipt.id,
                reported.format(),
                completed.get_formatted_total_amount(),
            )
        return completed


def _unique(values: Iterable[str | None]) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def _account_category(item: LineItem) -> str | None:
    candidate = item.account_suggestion or item.category
    if not candidate:
        return None
    try:
        return AccountCategory.create(candidate).value
    except DomainError:
        logger.info("Ignoring invalid account suggestion %r", candidate)
        return None
