"""Receipt ledger: receipt images to validated bookkeeping records."""

from receipt_ledger.dates import ReceiptDate
from receipt_ledger.items import ReceiptItem
from receipt_ledger.money import Money
from receipt_ledger.receipt import LineItem, Receipt, ReceiptProps, ReceiptStatus
from receipt_ledger.values import (
    AccountCategory,
    ItemName,
    ReceiptItemId,
    TaxNote,
    UserId,
)

__all__ = [
    "AccountCategory",
    "ItemName",
    "LineItem",
    "Money",
    "Receipt",
    "ReceiptDate",
    "ReceiptItem",
    "ReceiptItemId",
    "ReceiptProps",
    "ReceiptStatus",
    "TaxNote",
    "UserId",
]
