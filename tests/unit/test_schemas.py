"""Tests for receipt_ledger.schemas."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import pytest

from receipt_ledger.errors import (
    BlobNotFoundError,
    RateLimitExceededError,
    SchemaValidationError,
    TooOldError,
)
from receipt_ledger.receipt import ReceiptStatus
from receipt_ledger.schemas import (
    IssueUploadRequest,
    ProcessReceiptRequest,
    ReceiptResultsQuery,
    ReceiptRow,
    VisionReceiptResponse,
    error_response,
    parse_stored_items,
    parse_stored_strings,
    validate_blob_name,
    validate_json_payload,
    validate_payload,
)


def _paths(exc: SchemaValidationError) -> set[str]:
    return {issue.path for issue in exc.issues}


class TestVisionReceiptResponse:
    """Tests for the vision model response contract."""

    def test_valid_payload(self, vision_payload: dict[str, Any]) -> None:
        response = validate_payload(VisionReceiptResponse, vision_payload)

        assert response.total_amount == 1234
        assert len(response.items) == 2
        assert response.items[0].account_suggestion == "消耗品費"
        assert response.items[1].tax_note == "少額のため一括経費計上可"

    def test_iso_datetime_date_tolerated(self, vision_payload: dict[str, Any]) -> None:
        vision_payload["receiptDate"] = "2025-06-01T00:00:00.000Z"
        response = validate_payload(VisionReceiptResponse, vision_payload)
        assert response.receipt_date == "2025-06-01T00:00:00.000Z"

    def test_collects_every_issue(self) -> None:
        payload = {
            "totalAmount": -1,
            "receiptDate": "06/01/2025",
            "items": [{"name": "ペン", "price": -5}],
        }
        with pytest.raises(SchemaValidationError) as exc_info:
            validate_payload(VisionReceiptResponse, payload)

        assert _paths(exc_info.value) == {"totalAmount", "receiptDate", "items.0.price"}
        assert "items.0.price" in str(exc_info.value)

    def test_items_required(self, vision_payload: dict[str, Any]) -> None:
        vision_payload["items"] = []
        with pytest.raises(SchemaValidationError) as exc_info:
            validate_payload(VisionReceiptResponse, vision_payload)
        assert _paths(exc_info.value) == {"items"}

    def test_item_count_bounded(self, vision_payload: dict[str, Any]) -> None:
        vision_payload["items"] = [{"name": "x", "price": 1}] * 101
        with pytest.raises(SchemaValidationError):
            validate_payload(VisionReceiptResponse, vision_payload)

    def test_zero_total_rejected(self, vision_payload: dict[str, Any]) -> None:
        vision_payload["totalAmount"] = 0
        with pytest.raises(SchemaValidationError):
            validate_payload(VisionReceiptResponse, vision_payload)

    def test_numeric_strings_rejected(self, vision_payload: dict[str, Any]) -> None:
        vision_payload["items"][0]["price"] = "500"
        with pytest.raises(SchemaValidationError) as exc_info:
            validate_payload(VisionReceiptResponse, vision_payload)
        assert _paths(exc_info.value) == {"items.0.price"}

    def test_unsafe_item_name_rejected(self, vision_payload: dict[str, Any]) -> None:
        vision_payload["items"][0]["name"] = "<script>alert(1)</script>"
        with pytest.raises(SchemaValidationError) as exc_info:
            validate_payload(VisionReceiptResponse, vision_payload)
        assert _paths(exc_info.value) == {"items.0.name"}

    def test_unknown_keys_rejected(self, vision_payload: dict[str, Any]) -> None:
        vision_payload["storeName"] = "コンビニ"
        with pytest.raises(SchemaValidationError) as exc_info:
            validate_payload(VisionReceiptResponse, vision_payload)
        assert _paths(exc_info.value) == {"storeName"}

    def test_item_text_is_stripped(self, vision_payload: dict[str, Any]) -> None:
        vision_payload["items"][0]["name"] = "  コピー用紙  "
        response = validate_payload(VisionReceiptResponse, vision_payload)
        assert response.items[0].name == "コピー用紙"


class TestRequests:
    """Tests for request schemas."""

    def test_process_request(self) -> None:
        request = validate_payload(
            ProcessReceiptRequest,
            {"blobName": "3f2b8c1e-9d4a-4c6b-8e2f-1a2b3c4d5e6f.png", "userId": "user-1"},
        )
        assert request.blob_name.endswith(".png")
        assert request.user_id == "user-1"

    def test_process_request_by_field_name(self) -> None:
        request = ProcessReceiptRequest(blob_name="a.jpg", user_id="u")
        assert request.blob_name == "a.jpg"

    def test_process_request_rejects_bad_fields(self) -> None:
        with pytest.raises(SchemaValidationError) as exc_info:
            validate_payload(
                ProcessReceiptRequest, {"blobName": "receipt.exe", "userId": "a b"}
            )
        assert _paths(exc_info.value) == {"blobName", "userId"}

    def test_issue_upload_request(self) -> None:
        assert validate_payload(IssueUploadRequest, {}).file_name is None
        request = validate_payload(IssueUploadRequest, {"fileName": "scan.PNG"})
        assert request.file_name == "scan.PNG"

    def test_issue_upload_rejects_path_segments(self) -> None:
        for bad in ("../scan.png", "a/b.png", "a..b.png"):
            with pytest.raises(SchemaValidationError):
                validate_payload(IssueUploadRequest, {"fileName": bad})

    def test_results_query_defaults(self) -> None:
        query = validate_payload(ReceiptResultsQuery, {})
        assert (query.limit, query.offset) == (50, 0)

    def test_results_query_coerces_strings(self) -> None:
        query = validate_payload(ReceiptResultsQuery, {"limit": "10", "offset": "20"})
        assert (query.limit, query.offset) == (10, 20)

    def test_results_query_bounds(self) -> None:
        for bad in ({"limit": 0}, {"limit": 101}, {"offset": -1}):
            with pytest.raises(SchemaValidationError):
                validate_payload(ReceiptResultsQuery, bad)


class TestValidateBlobName:
    """Tests for validate_blob_name()."""

    def test_valid_names(self) -> None:
        assert validate_blob_name(" receipt.JPG ") == "receipt.JPG"
        assert validate_blob_name("a-b_c.1.webp") == "a-b_c.1.webp"

    def test_invalid_names(self) -> None:
        for bad in ("", "receipt", "receipt.gif", "../x.jpg", "a/b.jpg", "a..b.jpg"):
            with pytest.raises(SchemaValidationError) as exc_info:
                validate_blob_name(bad)
            assert all(path.startswith("blobName") for path in _paths(exc_info.value))


class TestReceiptRow:
    """Tests for the stored row shape."""

    def _row(self, **overrides: object) -> dict[str, object]:
        row: dict[str, object] = {
            "user_id": "user-1",
            "receipt_id": "3f2b8c1e-9d4a-4c6b-8e2f-1a2b3c4d5e6f",
            "receipt_image_url": "https://example.com/a.jpg",
            "status": "completed",
            "total_amount": Decimal("1234.00"),
            "receipt_date": "2025-06-01T00:00:00.000Z",
            "created_at": datetime(2025, 6, 1, tzinfo=UTC),
            "updated_at": datetime(2025, 6, 1, tzinfo=UTC),
        }
        row.update(overrides)
        return row

    def test_valid_row(self) -> None:
        row = ReceiptRow.model_validate(self._row(etag="ignored"))
        assert row.status is ReceiptStatus.COMPLETED
        assert row.total_amount == Decimal("1234.00")

    def test_bad_status_rejected(self) -> None:
        with pytest.raises(ValueError, match="status"):
            ReceiptRow.model_validate(self._row(status="archived"))

    def test_negative_total_rejected(self) -> None:
        with pytest.raises(ValueError, match="total_amount"):
            ReceiptRow.model_validate(self._row(total_amount=Decimal("-1")))

    def test_error_message_is_not_screened(self) -> None:
        message = "Vision model call failed: status_code=400, response=bad"
        row = ReceiptRow.model_validate(
            self._row(status="failed", error_message=f"  {message}  ")
        )
        assert row.error_message == message

    def test_error_message_is_bounded(self) -> None:
        with pytest.raises(ValueError, match="error_message"):
            ReceiptRow.model_validate(self._row(error_message="x" * 1001))


class TestValidateJsonPayload:
    """Tests for validate_json_payload()."""

    def test_valid_document(self, vision_payload: dict[str, Any]) -> None:
        text = json.dumps(vision_payload, ensure_ascii=False)
        response = validate_json_payload(VisionReceiptResponse, text)
        assert response.total_amount == 1234
        assert response.receipt_date == vision_payload["receiptDate"]
        assert [item.name for item in response.items] == ["コピー用紙", "ボールペン"]

    def test_malformed_json(self) -> None:
        with pytest.raises(SchemaValidationError) as exc_info:
            validate_json_payload(VisionReceiptResponse, "{totalAmount: 100}")
        assert _paths(exc_info.value) == {""}

    def test_schema_violations(self, vision_payload: dict[str, Any]) -> None:
        vision_payload["items"][0]["price"] = -1
        with pytest.raises(SchemaValidationError) as exc_info:
            validate_json_payload(VisionReceiptResponse, json.dumps(vision_payload))
        assert _paths(exc_info.value) == {"items.0.price"}


class TestStoredJson:
    """Tests for parse_stored_items() and parse_stored_strings()."""

    def test_items(self) -> None:
        items = parse_stored_items('[{"name": "ペン", "price": 120, "taxNote": "8%"}]')
        assert items[0].name == "ペン"
        assert items[0].tax_note == "8%"

    def test_empty_items(self) -> None:
        assert parse_stored_items(None) == []
        assert parse_stored_items("") == []

    def test_corrupt_items(self) -> None:
        with pytest.raises(SchemaValidationError):
            parse_stored_items("not json")
        with pytest.raises(SchemaValidationError) as exc_info:
            parse_stored_items('[{"name": "ペン", "price": -1}]')
        assert _paths(exc_info.value) == {"items.0.price"}

    def test_strings(self) -> None:
        assert parse_stored_strings('["消耗品費", "雑費"]', "accountSuggestions") == [
            "消耗品費",
            "雑費",
        ]
        assert parse_stored_strings(None, "taxNotes") == []

    def test_corrupt_strings(self) -> None:
        with pytest.raises(SchemaValidationError) as exc_info:
            parse_stored_strings("[1, 2]", "taxNotes")
        assert all(path.startswith("taxNotes") for path in _paths(exc_info.value))


class TestErrorResponse:
    """Tests for error_response()."""

    def test_schema_error_is_400_with_detail(self) -> None:
        exc = SchemaValidationError([])
        status, body = error_response(exc)
        assert status == 400
        assert body.code == "validation"

    def test_domain_error_is_400(self) -> None:
        status, body = error_response(TooOldError("Receipt date too old"))
        assert status == 400
        assert body.code == "TooOldError"
        assert body.message == "Receipt date too old"

    def test_not_found_is_404(self) -> None:
        status, body = error_response(BlobNotFoundError("missing.jpg"))
        assert status == 404
        assert body.code == "not_found"

    def test_rate_limit_is_429(self) -> None:
        status, _ = error_response(RateLimitExceededError("slow down"))
        assert status == 429

    def test_unexpected_error_hides_detail(self) -> None:
        status, body = error_response(RuntimeError("db password leaked"))
        assert status == 500
        assert body.message == "Internal server error"

    def test_unexpected_error_detail_in_development(self) -> None:
        _, body = error_response(RuntimeError("boom"), development=True)
        assert body.message == "RuntimeError: boom"

    def test_long_messages_clipped(self) -> None:
        _, body = error_response(TooOldError("x" * 800))
        assert body.message is not None
        assert len(body.message) == 500
        assert body.message.endswith("...")
