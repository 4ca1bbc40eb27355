"""Tests for receipt_ledger.cli."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from receipt_ledger.cli import build_processor, cli
from receipt_ledger.errors import ExtractionError
from receipt_ledger.repository import InMemoryReceiptRepository
from receipt_ledger.schemas import VisionReceiptResponse, validate_payload
from receipt_ledger.service import ReceiptProcessor
from receipt_ledger.store import LocalFileStore

if TYPE_CHECKING:
    from pathlib import Path

RECEIPT_ID = "3f2b8c1e-9d4a-4c6b-8e2f-1a2b3c4d5e6f"


@pytest.fixture
def extractor() -> MagicMock:
    return MagicMock()


@pytest.fixture
def processor(
    store_root: Path, extractor: MagicMock, monkeypatch: pytest.MonkeyPatch
) -> ReceiptProcessor:
    """Route every command through in-memory components."""
    instance = ReceiptProcessor(
        LocalFileStore(store_root), InMemoryReceiptRepository(), extractor=extractor
    )
    monkeypatch.setattr("receipt_ledger.cli.build_processor", lambda: instance)
    monkeypatch.delenv("APP_ENV", raising=False)
    return instance


class TestUpload:
    """Tests for the upload command."""

    def test_upload_and_process(
        self,
        processor: ReceiptProcessor,
        extractor: MagicMock,
        vision_payload: dict[str, Any],
        tmp_path: Path,
    ) -> None:
        extractor.return_value = validate_payload(VisionReceiptResponse, vision_payload)
        image = tmp_path / "scan.png"
        image.write_bytes(b"png-bytes")

        result = CliRunner().invoke(cli, ["upload", str(image), "--user", "user-123"])

        assert result.exit_code == 0, result.output
        assert "Uploaded scan.png as " in result.output
        assert "completed" in result.output
        assert "1,234 JPY" in result.output
        assert extractor.call_args[0] == (b"png-bytes", "image/png")
        assert len(processor.list_results("user-123")) == 1

    def test_upload_extraction_failure(
        self, processor: ReceiptProcessor, extractor: MagicMock, tmp_path: Path
    ) -> None:
        extractor.side_effect = ExtractionError("No JSON object found")
        image = tmp_path / "scan.jpg"
        image.write_bytes(b"jpeg-bytes")

        result = CliRunner().invoke(cli, ["upload", str(image), "--user", "user-123"])

        assert result.exit_code == 1
        (receipt,) = processor.list_results("user-123")
        assert receipt.is_failed()

    def test_upload_rejects_bad_user(
        self, processor: ReceiptProcessor, tmp_path: Path
    ) -> None:
        image = tmp_path / "scan.jpg"
        image.write_bytes(b"jpeg-bytes")

        result = CliRunner().invoke(cli, ["upload", str(image), "--user", "a/b"])

        assert result.exit_code == 1
        assert "[400]" in result.output
        assert "userId" in result.output


class TestProcess:
    """Tests for the process command."""

    def test_missing_blob_is_404(self, processor: ReceiptProcessor) -> None:
        result = CliRunner().invoke(
            cli, ["process", f"{RECEIPT_ID}.jpg", "--user", "user-123"]
        )

        assert result.exit_code == 1
        assert "[404]" in result.output

    def test_process_existing_blob(
        self,
        processor: ReceiptProcessor,
        extractor: MagicMock,
        vision_payload: dict[str, Any],
    ) -> None:
        extractor.return_value = validate_payload(VisionReceiptResponse, vision_payload)
        processor.store.save(f"{RECEIPT_ID}.jpg", b"jpeg-bytes")

        result = CliRunner().invoke(
            cli, ["process", f"{RECEIPT_ID}.jpg", "--user", "user-123"]
        )

        assert result.exit_code == 0, result.output
        assert RECEIPT_ID in result.output
        assert "completed" in result.output


class TestListAndShow:
    """Tests for the list and show commands."""

    def _process_one(
        self,
        processor: ReceiptProcessor,
        extractor: MagicMock,
        vision_payload: dict[str, Any],
    ) -> None:
        extractor.return_value = validate_payload(VisionReceiptResponse, vision_payload)
        processor.store.save(f"{RECEIPT_ID}.jpg", b"jpeg-bytes")
        CliRunner().invoke(cli, ["process", f"{RECEIPT_ID}.jpg", "--user", "user-123"])

    def test_list_empty(self, processor: ReceiptProcessor) -> None:
        result = CliRunner().invoke(cli, ["list", "--user", "user-123"])
        assert result.exit_code == 0
        assert "No receipts." in result.output

    def test_list(
        self,
        processor: ReceiptProcessor,
        extractor: MagicMock,
        vision_payload: dict[str, Any],
    ) -> None:
        self._process_one(processor, extractor, vision_payload)

        result = CliRunner().invoke(cli, ["list", "--user", "user-123"])

        assert result.exit_code == 0
        assert RECEIPT_ID in result.output

    def test_list_rejects_bad_paging(self, processor: ReceiptProcessor) -> None:
        result = CliRunner().invoke(cli, ["list", "--user", "user-123", "--limit", "0"])
        assert result.exit_code == 1
        assert "[400]" in result.output
        assert "limit" in result.output

    def test_show(
        self,
        processor: ReceiptProcessor,
        extractor: MagicMock,
        vision_payload: dict[str, Any],
    ) -> None:
        self._process_one(processor, extractor, vision_payload)

        result = CliRunner().invoke(cli, ["show", RECEIPT_ID, "--user", "user-123"])

        assert result.exit_code == 0, result.output
        assert "商品名: コピー用紙" in result.output
        assert "勘定科目: 事務用品費" in result.output
        assert "金額: 734 JPY" in result.output

    def test_show_missing(self, processor: ReceiptProcessor) -> None:
        result = CliRunner().invoke(cli, ["show", RECEIPT_ID, "--user", "user-123"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestBuildProcessor:
    """Tests for build_processor."""

    def test_wires_environment_configuration(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("RECEIPT_STORE_PATH", str(tmp_path))
        monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "5")
        monkeypatch.setenv("RECEIPT_MAX_AGE_YEARS", "10")

        processor = build_processor()

        assert isinstance(processor.store, LocalFileStore)
        assert processor.store.root == tmp_path.resolve()
        assert processor.max_age_years == 10
        assert processor.rate_limiter is not None
        assert processor.rate_limiter.max_requests == 5

    def test_limiter_budget_is_per_processor(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("RECEIPT_STORE_PATH", str(tmp_path))
        monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "1")

        first = build_processor()
        second = build_processor()

        assert first.rate_limiter is not None
        assert second.rate_limiter is not None
        assert first.rate_limiter.check("user-123")
        assert not first.rate_limiter.check("user-123")
        assert second.rate_limiter.check("user-123")
