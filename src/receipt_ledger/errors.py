"""Exception taxonomy for receipt-ledger.

Every domain failure is a local validation failure and derives from
``ValueError``. Format errors describe malformed input; business-rule
errors describe well-formed input that breaks an accounting rule or a
status transition.
"""

from __future__ import annotations

from dataclasses import dataclass


class DomainError(ValueError):
    """Base class for all domain validation failures."""


class FormatError(DomainError):
    """Input is malformed (shape, length, charset, markup)."""


class InvalidFormatError(FormatError):
    """Value does not match the required textual format."""


class InvalidCalendarDateError(FormatError):
    """Date string is well-formed but names an impossible day."""


class EmptyValueError(FormatError):
    """Required value is missing or blank."""


class TooLongError(FormatError):
    """Value exceeds its length bound."""


class InvalidCharactersError(FormatError):
    """Value contains a disallowed character."""


class UnsafeContentError(FormatError):
    """Value contains script, markup or event-handler patterns."""


class InvalidAmountError(FormatError):
    """Monetary amount is not a finite number."""


class InvalidFactorError(FormatError):
    """Multiplication factor is not a finite number."""


class BusinessRuleError(DomainError):
    """Input is well-formed but violates a business rule."""


class NegativeAmountError(BusinessRuleError):
    """Money cannot be negative."""


class NegativeResultError(BusinessRuleError):
    """Money arithmetic produced a negative amount."""


class CurrencyMismatchError(BusinessRuleError):
    """Money operands use different currencies."""


class FutureDateError(BusinessRuleError):
    """Receipt date lies after today (JST)."""


class TooOldError(BusinessRuleError):
    """Receipt date lies outside the retention window."""


class EmptyItemListError(BusinessRuleError):
    """A receipt cannot be completed without items."""


class EmptyErrorMessageError(BusinessRuleError):
    """A receipt cannot be failed without an error message."""


class TotalMismatchError(BusinessRuleError):
    """Explicit total differs from the sum of item prices."""


class MissingReceiptDateError(BusinessRuleError):
    """Completed receipts must carry a receipt date."""


class MissingErrorMessageError(BusinessRuleError):
    """Failed receipts must carry an error message."""


class InvalidTransitionError(BusinessRuleError):
    """Requested status transition is not allowed."""


class AlreadyCompletedError(InvalidTransitionError):
    """Receipt is already completed."""


class AlreadyFailedError(InvalidTransitionError):
    """Receipt is already failed."""


class ImmutableStatusError(InvalidTransitionError):
    """Receipt in a terminal status cannot be edited."""


@dataclass(frozen=True)
class FieldIssue:
    """A single field-level schema violation."""

    path: str
    message: str

    def __str__(self) -> str:
        if not self.path:
            return self.message
        return f"{self.path}: {self.message}"


class SchemaValidationError(ValueError):
    """Boundary payload failed schema validation.

    Collects every offending field so callers can report them at once.
    """

    def __init__(
        self, issues: list[FieldIssue] | None = None, message: str = "Validation failed"
    ) -> None:
        self.issues = list(issues or [])
        detail = ", ".join(str(issue) for issue in self.issues)
        super().__init__(f"{message}: {detail}" if detail else message)
        self.message = message

    def describe(self) -> str:
        """Return the issues joined for an error response body."""
        if not self.issues:
            return self.message
        return ", ".join(str(issue) for issue in self.issues)


class ExtractionError(RuntimeError):
    """Vision model call failed or returned no usable JSON."""


class RateLimitExceededError(Exception):
    """Caller exceeded the request budget for the current window."""


class BlobNotFoundError(LookupError):
    """Requested receipt image does not exist in the blob store."""
