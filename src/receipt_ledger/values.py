"""Validated identifier and text value types."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import ClassVar

from receipt_ledger.errors import (
    EmptyValueError,
    InvalidCharactersError,
    InvalidFormatError,
    TooLongError,
    UnsafeContentError,
)

# Script tags, javascript: URLs and inline event handlers (onclick= ...).
UNSAFE_CONTENT_PATTERN = re.compile(r"<script|javascript:|on\w+=", re.IGNORECASE)

_PARTITION_KEY_FORBIDDEN = re.compile(r"[/\\#?]")
_CONTROL_CHARACTERS = re.compile(r"[\u0000-\u001f\u007f-\u009f]")
_UUID_V4_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_ACCOUNT_CATEGORY_CHARS = re.compile(
    r"^[\u3040-\u309f\u30a0-\u30ff\u4e00-\u9fafa-zA-Z0-9\s・ー（）()]+$"
)

COMMON_ACCOUNT_CATEGORIES: tuple[str, ...] = (
    "消耗品費",
    "事務用品費",
    "交通費",
    "会議費",
    "接待交際費",
    "通信費",
    "水道光熱費",
    "賃借料",
    "保険料",
    "修繕費",
    "広告宣伝費",
    "研修費",
    "図書費",
    "旅費交通費",
    "雑費",
)


def _require_text(value: object, label: str) -> str:
    """Return ``value`` trimmed, raising if it is not a non-blank string."""
    if not isinstance(value, str) or not value.strip():
        msg = f"{label} cannot be empty"
        raise EmptyValueError(msg)
    return value.strip()


def _check_length(value: str, label: str, max_length: int) -> None:
    if len(value) > max_length:
        msg = f"{label} is too long (max {max_length} characters)"
        raise TooLongError(msg)


def _check_safe(value: str, label: str) -> None:
    if UNSAFE_CONTENT_PATTERN.search(value):
        msg = f"{label} contains unsafe content"
        raise UnsafeContentError(msg)


@dataclass(frozen=True)
class UserId:
    """Opaque identifier of the authenticated owner of a receipt.

    The value doubles as the storage partition key, so it may not contain
    ``/``, ``\\``, ``#``, ``?`` or control characters.
    """

    value: str

    MAX_LENGTH: ClassVar[int] = 100

    def __post_init__(self) -> None:
        trimmed = _require_text(self.value, "UserId")
        _check_length(trimmed, "UserId", self.MAX_LENGTH)
        if _PARTITION_KEY_FORBIDDEN.search(trimmed):
            msg = (
                "UserId contains invalid characters for Azure Table Storage "
                f"partition keys: {trimmed}"
            )
            raise InvalidCharactersError(msg)
        if _CONTROL_CHARACTERS.search(trimmed):
            msg = "UserId contains invalid control characters"
            raise InvalidCharactersError(msg)
        object.__setattr__(self, "value", trimmed)

    @classmethod
    def create(cls, value: object) -> UserId:
        return cls(value)  # type: ignore[arg-type]

    def equals(self, other: object) -> bool:
        return self == other

    def to_partition_key(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ReceiptItemId:
    """UUID v4 identity of a receipt item."""

    value: str

    def __post_init__(self) -> None:
        trimmed = _require_text(self.value, "ReceiptItemId")
        if not _UUID_V4_PATTERN.match(trimmed):
            msg = f"ReceiptItemId must be a valid UUIDv4, got {trimmed!r}"
            raise InvalidFormatError(msg)
        object.__setattr__(self, "value", trimmed)

    @classmethod
    def create(cls, value: object) -> ReceiptItemId:
        return cls(value)  # type: ignore[arg-type]

    @classmethod
    def generate(cls) -> ReceiptItemId:
        return cls(str(uuid.uuid4()))

    def equals(self, other: object) -> bool:
        return self == other

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ItemName:
    """Name of a product or service as printed on the receipt."""

    value: str

    MAX_LENGTH: ClassVar[int] = 200

    def __post_init__(self) -> None:
        trimmed = _require_text(self.value, "Item name")
        _check_length(trimmed, "Item name", self.MAX_LENGTH)
        _check_safe(trimmed, "Item name")
        object.__setattr__(self, "value", trimmed)

    @classmethod
    def create(cls, value: object) -> ItemName:
        return cls(value)  # type: ignore[arg-type]

    def equals(self, other: object) -> bool:
        return self == other

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class AccountCategory:
    """Bookkeeping account (勘定科目) an expense is posted to."""

    value: str

    MAX_LENGTH: ClassVar[int] = 50

    def __post_init__(self) -> None:
        trimmed = _require_text(self.value, "Account category")
        _check_length(trimmed, "Account category", self.MAX_LENGTH)
        _check_safe(trimmed, "Account category")
        if not _ACCOUNT_CATEGORY_CHARS.match(trimmed):
            msg = f"Account category contains invalid characters: {trimmed}"
            raise InvalidCharactersError(msg)
        object.__setattr__(self, "value", trimmed)

    @classmethod
    def create(cls, value: object) -> AccountCategory:
        return cls(value)  # type: ignore[arg-type]

    @staticmethod
    def common_categories() -> tuple[str, ...]:
        return COMMON_ACCOUNT_CATEGORIES

    def is_common_category(self) -> bool:
        return self.value in COMMON_ACCOUNT_CATEGORIES

    def equals(self, other: object) -> bool:
        return self == other

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TaxNote:
    """Free-form note for the tax return (e.g. 軽減税率対象)."""

    value: str

    MAX_LENGTH: ClassVar[int] = 500

    def __post_init__(self) -> None:
        trimmed = _require_text(self.value, "Tax note")
        _check_length(trimmed, "Tax note", self.MAX_LENGTH)
        _check_safe(trimmed, "Tax note")
        object.__setattr__(self, "value", trimmed)

    @classmethod
    def create(cls, value: object) -> TaxNote:
        return cls(value)  # type: ignore[arg-type]

    @classmethod
    def create_optional(cls, value: str | None) -> TaxNote | None:
        """Return None for a missing or blank note instead of raising."""
        if value is None or not value.strip():
            return None
        return cls(value)

    def equals(self, other: object) -> bool:
        return self == other

    def __str__(self) -> str:
        return self.value
