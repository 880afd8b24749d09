"""Piece upload and download against the storage client; one attempt each, no retries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from reputation_storage.errors import TransferError, wrap_stage_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadResult:
    piece_cid: str
    size: int


@dataclass(frozen=True)
class DownloadResult:
    piece_cid: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def upload(client: Any, data: bytes) -> UploadResult:
    logger.info("Uploading %d bytes to Filecoin", len(data))
    try:
        result = client.storage.upload(data)
    except Exception as exc:
        raise wrap_stage_error(TransferError, exc, operation="upload") from exc

    uploaded = UploadResult(piece_cid=str(result.piece_cid), size=int(result.size))
    logger.info("Upload complete: pieceCid=%s size=%d", uploaded.piece_cid, uploaded.size)
    return uploaded


def download(client: Any, piece_cid: str) -> DownloadResult:
    logger.info("Downloading pieceCid=%s", piece_cid)
    try:
        data = client.storage.download(piece_cid)
    except Exception as exc:
        raise wrap_stage_error(TransferError, exc, operation="download") from exc

    downloaded = DownloadResult(piece_cid=piece_cid, data=bytes(data))
    logger.info("Download complete: %d bytes", downloaded.size)
    return downloaded


def upload_then_download(client: Any, data: bytes) -> tuple[UploadResult, DownloadResult]:
    uploaded = upload(client, data)
    return uploaded, download(client, uploaded.piece_cid)
