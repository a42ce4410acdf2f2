"""
FastFS upload encoding and coordination.

This module provides:
- encode_file(): split file content into FastFS units
- plan_uploads(): turn a batch of files into pending FileUpload records
- UploadCoordinator: submit each file's units in order, files concurrently

Example:
    >>> coordinator = UploadCoordinator(wallet, account_id="alice.near")
    >>> uploads = plan_uploads("site", [("index.html", html, "text/html")])
    >>> await coordinator.upload_all(uploads)
    >>> uploads[0].url
    'https://alice.near.fastfs.io/fastfs.near/site/index.html'

Invariants:
    - Files of at most CHUNK_SIZE bytes become one SimpleUnit
    - Larger files become ceil(size / CHUNK_SIZE) PartialUnits sharing a nonce
    - Units of one file are submitted strictly in offset order
    - The first failed unit stops its file; sibling files continue
    - No unit is ever retried
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .config import CHUNK_SIZE, FASTFS_METHOD, MAX_FILE_SIZE, ClientSettings
from .errors import SizeError, UploadChunkError
from .fastfs import FastfsUnit, PartialUnit, SimpleUnit, encode_unit
from .models import TransactionSubmitter
from .validate import normalize_relative_path

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"

# Nonces count seconds from this epoch so they fit in an i32.
NONCE_EPOCH = 1769376240
MAX_NONCE = 2**31 - 1


def upload_nonce(now: Optional[float] = None) -> int:
    """Derive a nonce for a multi-part upload, clamped to [1, MAX_NONCE]."""
    seconds = int(time.time() if now is None else now)
    return min(max(seconds - NONCE_EPOCH, 1), MAX_NONCE)


def encode_file(
    relative_path: str,
    data: bytes,
    mime_type: Optional[str] = None,
    *,
    nonce: Optional[int] = None,
) -> List[FastfsUnit]:
    """Split a file into FastFS units.

    Args:
        relative_path: Destination path; a leading '/' is stripped
        data: File content
        mime_type: MIME type (application/octet-stream if unset)
        nonce: Nonce for partial units (derived from the clock if unset)

    Returns:
        One SimpleUnit, or PartialUnits in offset order

    Raises:
        PathError: If the path is invalid
        SizeError: If data exceeds MAX_FILE_SIZE
    """
    path = normalize_relative_path(relative_path)
    size = len(data)
    if size > MAX_FILE_SIZE:
        raise SizeError(
            f"File '{path}' is {size} bytes, max {MAX_FILE_SIZE}",
            size=size,
            limit=MAX_FILE_SIZE,
        )
    mime_type = mime_type or DEFAULT_MIME_TYPE

    if size <= CHUNK_SIZE:
        return [SimpleUnit(relative_path=path, mime_type=mime_type, content=bytes(data))]

    if nonce is None:
        nonce = upload_nonce()
    return [
        PartialUnit(
            relative_path=path,
            offset=offset,
            full_size=size,
            mime_type=mime_type,
            content_chunk=bytes(data[offset : offset + CHUNK_SIZE]),
            nonce=nonce,
        )
        for offset in range(0, size, CHUNK_SIZE)
    ]


class FileStatus(str, Enum):
    """Upload lifecycle of one file."""

    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class FileUpload:
    """One file's upload state.

    Attributes:
        path: Normalized relative path
        mime_type: MIME type
        size: Content size in bytes
        units: Encoded units in submission order
        status: Lifecycle state
        uploaded_parts: Units submitted successfully
        tx_ids: Transaction hash per attempted unit (None for the failed one)
        url: Public URL once the upload succeeded
        error: Failure of the first failed unit
    """

    path: str
    mime_type: str
    size: int
    units: List[FastfsUnit]
    status: FileStatus = FileStatus.PENDING
    uploaded_parts: int = 0
    tx_ids: List[Optional[str]] = field(default_factory=list)
    url: Optional[str] = None
    error: Optional[UploadChunkError] = None

    @property
    def num_parts(self) -> int:
        return len(self.units)

    @property
    def progress(self) -> Tuple[int, int, FileStatus]:
        return self.uploaded_parts, self.num_parts, self.status

    @property
    def done(self) -> bool:
        return self.status in (FileStatus.SUCCESS, FileStatus.ERROR)


def plan_uploads(
    directory: str,
    files: Iterable[Tuple[str, bytes, Optional[str]]],
    *,
    nonce: Optional[int] = None,
) -> List[FileUpload]:
    """Encode a batch of (name, data, mime_type) files under directory.

    All multi-part files in the batch share one nonce.
    """
    directory = directory.strip("/")
    if nonce is None:
        nonce = upload_nonce()
    uploads = []
    for name, data, mime_type in files:
        rel = f"{directory}/{name.lstrip('/')}" if directory else name
        units = encode_file(rel, data, mime_type, nonce=nonce)
        uploads.append(
            FileUpload(
                path=units[0].relative_path,
                mime_type=mime_type or DEFAULT_MIME_TYPE,
                size=len(data),
                units=units,
            )
        )
    return uploads


ProgressCallback = Callable[[FileUpload], None]


class UploadCoordinator:
    """Submits FastFS uploads through a TransactionSubmitter.

    Attributes:
        submitter: Wallet-side transaction submitter
        account_id: Uploading account (used for public URLs)
        contract_id: FastFS contract
        gas: Gas hint per unit
        gateway: Host suffix of public URLs
    """

    def __init__(
        self,
        submitter: TransactionSubmitter,
        *,
        account_id: str,
        contract_id: str = "fastfs.near",
        gas: str = "1 Tgas",
        gateway: str = "fastfs.io",
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.submitter = submitter
        self.account_id = account_id
        self.contract_id = contract_id
        self.gas = gas
        self.gateway = gateway
        self.on_progress = on_progress

    @classmethod
    def from_settings(
        cls,
        submitter: TransactionSubmitter,
        settings: ClientSettings,
        *,
        account_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadCoordinator:
        """Build a coordinator using the FastFS contract, gas and gateway from settings."""
        return cls(
            submitter,
            account_id=account_id,
            contract_id=settings.fastfs_contract_id,
            gas=settings.fastfs_gas,
            gateway=settings.fastfs_gateway,
            on_progress=on_progress,
        )

    def public_url(self, path: str) -> str:
        return f"https://{self.account_id}.{self.gateway}/{self.contract_id}/{path}"

    def _notify(self, upload: FileUpload) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(upload)
        except Exception as e:
            logger.error(f"Progress callback failed for {upload.path}: {e}", exc_info=True)

    async def upload_file(self, upload: FileUpload) -> FileUpload:
        """Submit a file's units in order, stopping at the first failure.

        Failures are recorded on the returned FileUpload, not raised.
        Calling it again on a finished or failed upload starts over from
        the first unit.
        """
        upload.uploaded_parts = 0
        upload.tx_ids = []
        upload.error = None
        upload.url = None
        upload.status = FileStatus.UPLOADING
        self._notify(upload)

        for index, unit in enumerate(upload.units):
            try:
                tx_hash = await self.submitter.submit(
                    self.contract_id,
                    FASTFS_METHOD,
                    encode_unit(unit),
                    self.gas,
                )
            except Exception as e:
                upload.tx_ids.append(None)
                upload.error = UploadChunkError(upload.path, index, unit.offset, e)
                upload.status = FileStatus.ERROR
                logger.error(f"Upload failed: {upload.error}")
                self._notify(upload)
                return upload

            upload.tx_ids.append(tx_hash)
            upload.uploaded_parts += 1
            if upload.uploaded_parts == upload.num_parts:
                upload.status = FileStatus.SUCCESS
                upload.url = self.public_url(upload.path)
                logger.info(f"Uploaded {upload.path} ({upload.num_parts} parts): {upload.url}")
            self._notify(upload)

        return upload

    async def upload_all(self, uploads: Sequence[FileUpload]) -> List[FileUpload]:
        """Upload files concurrently; one file's failure never affects another."""
        return list(await asyncio.gather(*(self.upload_file(u) for u in uploads)))
