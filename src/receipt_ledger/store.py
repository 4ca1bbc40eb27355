"""Blob store abstraction and local filesystem implementation."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Protocol

from receipt_ledger.errors import BlobNotFoundError
from receipt_ledger.schemas import ALLOWED_EXTENSIONS, validate_blob_name

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "jpg"


class BlobStore(Protocol):
    """Protocol for receipt image storage backends."""

    def save(self, blob_name: str, data: bytes) -> str: ...

    def load(self, blob_name: str) -> bytes: ...

    def exists(self, blob_name: str) -> bool: ...

    def url_for(self, blob_name: str) -> str: ...


def new_blob_name(file_name: str | None = None) -> str:
    """Return a fresh ``<uuid4>.<ext>`` blob name.

    The extension comes from ``file_name`` when it is a supported image
    type; the stem is always a new UUID so it can serve as the receipt id.
    """
    extension = DEFAULT_EXTENSION
    if file_name and "." in file_name:
        candidate = file_name.rsplit(".", 1)[-1].lower()
        if candidate in ALLOWED_EXTENSIONS:
            extension = candidate
    return f"{uuid.uuid4()}.{extension}"


def receipt_id_from_blob(blob_name: str) -> str:
    """Return the receipt id encoded as the blob name stem."""
    return blob_name.rsplit(".", 1)[0]


class LocalFileStore:
    """Local filesystem implementation of BlobStore.

    Directory layout: {root}/{blob_name}. Blob names are checked against
    the request schema so they can never escape the root.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def save(self, blob_name: str, data: bytes) -> str:
        """Write the blob and return its URL."""
        path = self._path(blob_name)
        self.root.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug("Stored blob %s (%d bytes)", blob_name, len(data))
        return self.url_for(blob_name)

    def load(self, blob_name: str) -> bytes:
        path = self._path(blob_name)
        if not path.exists():
            msg = f"Receipt image not found: {blob_name}"
            raise BlobNotFoundError(msg)
        return path.read_bytes()

    def exists(self, blob_name: str) -> bool:
        """Check whether a blob exists in the store."""
        return self._path(blob_name).exists()

    def url_for(self, blob_name: str) -> str:
        """Return an absolute ``file://`` URL for the blob."""
        return self._path(blob_name).resolve().as_uri()

    def _path(self, blob_name: str) -> Path:
        return self.root / validate_blob_name(blob_name)
