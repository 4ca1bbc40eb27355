"""CLI entry point for receipt-ledger."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import NoReturn

import click

from receipt_ledger.config import (
    get_max_receipt_age_years,
    get_rate_limit_max_requests,
    get_store_path,
    is_development,
)
from receipt_ledger.db import get_connection, init_schema
from receipt_ledger.errors import (
    BlobNotFoundError,
    DomainError,
    ExtractionError,
    RateLimitExceededError,
    SchemaValidationError,
)
from receipt_ledger.ratelimit import RateLimiter
from receipt_ledger.receipt import Receipt
from receipt_ledger.repository import PostgresReceiptRepository
from receipt_ledger.schemas import (
    IssueUploadRequest,
    ProcessReceiptRequest,
    ReceiptResultsQuery,
    error_response,
    validate_payload,
)
from receipt_ledger.service import ReceiptProcessor
from receipt_ledger.store import LocalFileStore

_HANDLED = (
    BlobNotFoundError,
    DomainError,
    ExtractionError,
    RateLimitExceededError,
    SchemaValidationError,
)


def build_processor() -> ReceiptProcessor:
    """Wire a ReceiptProcessor from environment configuration.

    The rate limiter counts in memory, so its budget covers a single
    invocation (one ``upload`` or ``process`` run) and resets with the
    next command. Sharing it across runs needs a persistent CounterStore.
    """
    max_age_years = get_max_receipt_age_years()
    return ReceiptProcessor(
        LocalFileStore(get_store_path()),
        PostgresReceiptRepository(max_age_years=max_age_years),
        rate_limiter=RateLimiter(max_requests=get_rate_limit_max_requests()),
        max_age_years=max_age_years,
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Receipt Ledger: read receipts into bookkeeping entries."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("init-db")
def init_db() -> None:
    """Create the receipt_results table."""
    with get_connection() as conn:
        init_schema(conn)
    click.echo("Database schema ready.")


@cli.command()
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--user", "user_id", required=True, help="Owner user id.")
def upload(image: Path, user_id: str) -> None:
    """Store IMAGE and process it as a receipt."""
    processor = build_processor()
    try:
        request = validate_payload(IssueUploadRequest, {"fileName": image.name})
        target = processor.issue_upload(request)
        processor.store.save(target.blob_name, image.read_bytes())
        click.echo(f"Uploaded {image.name} as {target.blob_name}")
        _process(processor, target.blob_name, user_id)
    except _HANDLED as exc:
        _fail(exc)


@cli.command()
@click.argument("blob_name")
@click.option("--user", "user_id", required=True, help="Owner user id.")
def process(blob_name: str, user_id: str) -> None:
    """Process an already uploaded receipt image."""
    try:
        _process(build_processor(), blob_name, user_id)
    except _HANDLED as exc:
        _fail(exc)


@cli.command("list")
@click.option("--user", "user_id", required=True, help="Owner user id.")
@click.option("--limit", default="50", show_default=True)
@click.option("--offset", default="0", show_default=True)
def list_receipts(user_id: str, limit: str, offset: str) -> None:
    """List a user's receipts, newest first."""
    try:
        query = validate_payload(ReceiptResultsQuery, {"limit": limit, "offset": offset})
        receipts = build_processor().list_results(user_id, query)
    except _HANDLED as exc:
        _fail(exc)
    if not receipts:
        click.echo("No receipts.")
        return
    for receipt in receipts:
        click.echo(_summary(receipt))


@cli.command()
@click.argument("receipt_id")
@click.option("--user", "user_id", required=True, help="Owner user id.")
def show(receipt_id: str, user_id: str) -> None:
    """Show details for a specific receipt."""
    processor = build_processor()
    try:
        receipt = processor.get_result(user_id, receipt_id)
        if receipt is None:
            msg = f"Receipt {receipt_id} not found"
            raise click.ClickException(msg)
        items = processor.itemize(receipt)
    except _HANDLED as exc:
        _fail(exc)

    click.echo(_summary(receipt))
    if receipt.error_message:
        click.echo(f"  error: {receipt.error_message}")
    for item in items:
        row = item.to_csv_row()
        click.echo("  " + " | ".join(f"{label}: {value}" for label, value in row.items()))


def _process(processor: ReceiptProcessor, blob_name: str, user_id: str) -> None:
    request = validate_payload(
        ProcessReceiptRequest, {"blobName": blob_name, "userId": user_id}
    )
    receipt = processor.process(request)
    click.echo(_summary(receipt))


def _summary(receipt: Receipt) -> str:
    date = receipt.get_formatted_receipt_date() or "-"
    total = receipt.get_formatted_total_amount() or "-"
    return f"{receipt.id}  {receipt.status:<10}  {date}  {total}"


def _fail(exc: Exception) -> NoReturn:
    status, body = error_response(exc, development=is_development())
    detail = f"{body.error}: {body.message}" if body.message else body.error
    raise click.ClickException(f"[{status}] {detail}") from exc
