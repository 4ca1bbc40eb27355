"""Database connection helper and schema."""

from __future__ import annotations

import logging

import psycopg
from psycopg.rows import dict_row

from receipt_ledger.config import get_database_url

logger = logging.getLogger(__name__)

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS receipt_results (
    user_id             TEXT        NOT NULL,
    receipt_id          TEXT        NOT NULL,
    receipt_image_url   TEXT        NOT NULL,
    status              TEXT        NOT NULL,
    items               TEXT,
    total_amount        NUMERIC(14, 2),
    receipt_date        TEXT,
    account_suggestions TEXT,
    tax_notes           TEXT,
    error_message       TEXT,
    created_at          TIMESTAMPTZ NOT NULL,
    updated_at          TIMESTAMPTZ NOT NULL,
    PRIMARY KEY (user_id, receipt_id)
)
"""


def get_connection() -> psycopg.Connection[dict[str, object]]:
    """Create and return a new database connection."""
    return psycopg.connect(get_database_url(), row_factory=dict_row)


def init_schema(conn: psycopg.Connection[dict[str, object]]) -> None:
    """Create the receipt_results table if it does not exist."""
    conn.execute(SCHEMA_SQL)
    conn.commit()
    logger.info("receipt_results table is ready")
