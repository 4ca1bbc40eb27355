"""Boundary contracts for requests, vision-model responses and stored rows."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    ValidationError,
)
from pydantic.alias_generators import to_camel

from receipt_ledger.errors import (
    BlobNotFoundError,
    DomainError,
    FieldIssue,
    RateLimitExceededError,
    SchemaValidationError,
)
from receipt_ledger.receipt import ReceiptStatus
from receipt_ledger.values import UNSAFE_CONTENT_PATTERN

logger = logging.getLogger(__name__)

MAX_ITEMS = 100
MAX_FILENAME_LENGTH = 255
MAX_BLOB_NAME_LENGTH = 1024
ALLOWED_EXTENSIONS = ("jpg", "jpeg", "png", "webp", "pdf")

ModelT = TypeVar("ModelT", bound=BaseModel)


def _reject_unsafe(value: str) -> str:
    if UNSAFE_CONTENT_PATTERN.search(value):
        msg = "script tags or event handlers are not allowed"
        raise ValueError(msg)
    return value


def _reject_path_segments(value: str) -> str:
    if ".." in value or "/" in value or "\\" in value:
        msg = "path characters are not allowed"
        raise ValueError(msg)
    return value


Name = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=200),
    AfterValidator(_reject_unsafe),
]
ShortText = Annotated[
    str,
    StringConstraints(strip_whitespace=True, max_length=100),
    AfterValidator(_reject_unsafe),
]
NoteText = Annotated[
    str,
    StringConstraints(strip_whitespace=True, max_length=500),
    AfterValidator(_reject_unsafe),
]
# Internally generated exception text; not screened for markup.
MessageText = Annotated[str, StringConstraints(strip_whitespace=True, max_length=1000)]
RequestUserId = Annotated[
    str,
    StringConstraints(
        strip_whitespace=True, min_length=1, max_length=100, pattern=r"^[a-zA-Z0-9._-]+$"
    ),
]
SafeFilename = Annotated[
    str,
    StringConstraints(
        strip_whitespace=True,
        min_length=1,
        max_length=MAX_FILENAME_LENGTH,
        pattern=r"^[a-zA-Z0-9._-]+$",
    ),
    AfterValidator(_reject_path_segments),
]
BlobName = Annotated[
    str,
    StringConstraints(
        strip_whitespace=True,
        min_length=1,
        max_length=MAX_BLOB_NAME_LENGTH,
        pattern=r"(?i)^[a-zA-Z0-9._-]+\.(jpg|jpeg|png|webp|pdf)$",
    ),
    AfterValidator(_reject_path_segments),
]
# The model is asked for YYYY-MM-DD; an ISO datetime is tolerated.
DateString = Annotated[
    str,
    StringConstraints(
        strip_whitespace=True,
        pattern=r"^[0-9]{4}-[0-9]{2}-[0-9]{2}(T[0-9]{2}:[0-9]{2}:[0-9]{2}(\.[0-9]{3})?Z?)?$",
    ),
]
NonNegativeNumber = Annotated[float, Field(ge=0, allow_inf_nan=False, strict=True)]
PositiveNumber = Annotated[float, Field(gt=0, allow_inf_nan=False, strict=True)]

_BLOB_NAME_ADAPTER: TypeAdapter[str] = TypeAdapter(BlobName)
_STRING_LIST_ADAPTER: TypeAdapter[list[str]] = TypeAdapter(list[str])


class _Schema(BaseModel):
    """Strict camelCase contract; unknown keys are rejected."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )


class ProcessReceiptRequest(_Schema):
    """Request to process an uploaded receipt image."""

    blob_name: BlobName
    user_id: RequestUserId


class IssueUploadRequest(_Schema):
    """Request for a fresh upload target."""

    file_name: SafeFilename | None = None


class ReceiptResultsQuery(_Schema):
    """Paging parameters for the receipt list, coerced from query strings."""

    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class ProcessedItem(_Schema):
    """One line item as returned by the vision model and stored in rows."""

    name: Name
    price: NonNegativeNumber
    category: ShortText | None = None
    account_suggestion: ShortText | None = None
    tax_note: NoteText | None = None


class VisionReceiptResponse(_Schema):
    """Structured receipt extracted from an image by the vision model."""

    total_amount: PositiveNumber
    receipt_date: DateString
    items: list[ProcessedItem] = Field(min_length=1, max_length=MAX_ITEMS)


_ITEMS_ADAPTER: TypeAdapter[list[ProcessedItem]] = TypeAdapter(
    Annotated[list[ProcessedItem], Field(max_length=MAX_ITEMS)]
)


class ReceiptRow(BaseModel):
    """Persisted row shape, keyed by (user_id, receipt_id).

    List-valued fields are stored as JSON text.
    """

    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(min_length=1, max_length=100)
    receipt_id: str = Field(
        pattern=r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
    )
    receipt_image_url: str = Field(min_length=1)
    status: ReceiptStatus
    items: str | None = None
    total_amount: Decimal | None = Field(default=None, ge=0)
    receipt_date: DateString | None = None
    account_suggestions: str | None = None
    tax_notes: str | None = None
    error_message: MessageText | None = None
    created_at: datetime
    updated_at: datetime


class ErrorResponse(BaseModel):
    """Error body returned to API callers."""

    error: str = Field(max_length=200)
    message: str | None = Field(default=None, max_length=500)
    code: str | None = None


def validate_payload(schema: type[ModelT], data: Any) -> ModelT:
    """Validate ``data`` against ``schema``.

    Every violation is collected into a single SchemaValidationError whose
    issues carry the dotted field path (``items.0.price``).
    """
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise SchemaValidationError(_issues(exc)) from exc


def validate_json_payload(schema: type[ModelT], text: str | bytes) -> ModelT:
    """Parse and validate the JSON document ``text`` against ``schema``.

    Malformed JSON is reported like any other violation, as an issue with
    an empty path.
    """
    try:
        return schema.model_validate_json(text)
    except ValidationError as exc:
        raise SchemaValidationError(_issues(exc)) from exc


def validate_blob_name(blob_name: str) -> str:
    """Return ``blob_name`` stripped, or raise SchemaValidationError."""
    try:
        return _BLOB_NAME_ADAPTER.validate_python(blob_name)
    except ValidationError as exc:
        raise SchemaValidationError(_issues(exc, prefix="blobName")) from exc


def error_response(
    exc: Exception, *, development: bool = False
) -> tuple[int, ErrorResponse]:
    """Map an exception to an HTTP status and a safe response body.

    Validation failures are the caller's fault and keep their detail.
    Anything else is a 500 whose detail is shown only in development.
    """
    if isinstance(exc, SchemaValidationError):
        return 400, ErrorResponse(
            error="Validation error", message=_clip(exc.describe()), code="validation"
        )
    if isinstance(exc, DomainError):
        return 400, ErrorResponse(
            error="Validation error", message=_clip(str(exc)), code=type(exc).__name__
        )
    if isinstance(exc, BlobNotFoundError):
        return 404, ErrorResponse(
            error="Not found", message=_clip(str(exc)), code="not_found"
        )
    if isinstance(exc, RateLimitExceededError):
        return 429, ErrorResponse(
            error="Too many requests", message=_clip(str(exc)), code="rate_limited"
        )

    logger.error("Unhandled error while handling request", exc_info=exc)
    message = f"{type(exc).__name__}: {exc}" if development else "Internal server error"
    return 500, ErrorResponse(error="Internal Server Error", message=_clip(message))


def _issues(exc: ValidationError, prefix: str = "") -> list[FieldIssue]:
    issues: list[FieldIssue] = []
    for err in exc.errors():
        parts = [prefix, *err["loc"]] if prefix else list(err["loc"])
        issues.append(
            FieldIssue(path=".".join(str(part) for part in parts), message=err["msg"])
        )
    return issues


def _clip(message: str, limit: int = 500) -> str:
    return message if len(message) <= limit else message[: limit - 3] + "..."


def parse_stored_items(text: str | None) -> list[ProcessedItem]:
    """Decode and re-validate the JSON item list of a stored row."""
    if not text:
        return []
    try:
        return _ITEMS_ADAPTER.validate_json(text)
    except ValidationError as exc:
        raise SchemaValidationError(_issues(exc, prefix="items")) from exc


def parse_stored_strings(text: str | None, field: str) -> list[str]:
    """Decode a JSON list of strings stored in ``field``."""
    if not text:
        return []
    try:
        return _STRING_LIST_ADAPTER.validate_json(text)
    except ValidationError as exc:
        raise SchemaValidationError(_issues(exc, prefix=field)) from exc
