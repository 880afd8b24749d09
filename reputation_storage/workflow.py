"""
Storage workflow orchestration.

Flow for POST /storage:
1. Resolve the server-held signing key (ConfigurationError when absent).
2. Create a fresh storage client handle (InitializationError on failure).
3. Fund and approve the warm storage operator when the balance is short.
4. Upload the payload, then download it back for the roundtrip/preview variants.

POST /storage/download skips funding and only downloads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from botocore.exceptions import BotoCoreError, ClientError

from reputation_storage import codec, funding, transfer
from reputation_storage.client import create_storage_client
from reputation_storage.config import (
    MISSING_KEY_HINT,
    MISSING_KEY_MESSAGE,
    Settings,
    load_settings,
    resolve_private_key,
)
from reputation_storage.errors import (
    ConfigurationError,
    FundingError,
    InitializationError,
    TransferError,
    ValidationError,
    WorkflowError,
    error_cause,
    error_message,
    wrap_stage_error,
)

logger = logging.getLogger(__name__)

VARIANT_ROUNDTRIP = "roundtrip"
VARIANT_PREVIEW = "preview"
VARIANT_UPLOAD = "upload"
VARIANTS = (VARIANT_ROUNDTRIP, VARIANT_PREVIEW, VARIANT_UPLOAD)

DEFAULT_PAYLOAD = (
    "\U0001F680 Welcome to decentralized storage on Filecoin Onchain Cloud!\n"
    "Your data is safe here.\n"
    "\U0001F30D You need to make sure to meet the minimum size\n"
    "requirement of 127 bytes per upload."
)

ClientFactory = Callable[[str, Settings], Any]


@dataclass(frozen=True)
class StorageRequest:
    payload: str
    variant: str
    from_image: bool


def build_storage_request(image_base64: Any = None, variant: Any = None) -> StorageRequest:
    if image_base64 is not None and not isinstance(image_base64, str):
        raise ValidationError("imageBase64 must be a string")
    if variant is not None and not isinstance(variant, str):
        raise ValidationError("variant must be a string")

    from_image = bool(image_base64 and image_base64.strip())
    resolved_variant = (variant or "").strip().lower()
    if not resolved_variant:
        resolved_variant = VARIANT_UPLOAD if from_image else VARIANT_ROUNDTRIP
    if resolved_variant not in VARIANTS:
        raise ValidationError(f"variant must be one of: {', '.join(VARIANTS)}")

    return StorageRequest(
        payload=image_base64 if from_image else DEFAULT_PAYLOAD,
        variant=resolved_variant,
        from_image=from_image,
    )


def _require_private_key() -> str:
    try:
        private_key = resolve_private_key()
    except (BotoCoreError, ClientError) as exc:
        raise InitializationError("Unable to read signing key from Secrets Manager", cause=exc) from exc
    if not private_key:
        logger.error("Private key not found in environment variables")
        raise ConfigurationError(MISSING_KEY_MESSAGE, hint=MISSING_KEY_HINT)
    return private_key


def _open_client(private_key: str, settings: Settings, client_factory: ClientFactory) -> Any:
    logger.info("Initializing Synapse storage client")
    try:
        client = client_factory(private_key, settings)
    except Exception as exc:
        raise wrap_stage_error(InitializationError, exc) from exc
    logger.info("Synapse storage client initialized")
    return client


def _close_client(client: Any) -> None:
    close = getattr(client, "close", None)
    if callable(close):
        close()


def _log_failure(workflow: str, exc: WorkflowError) -> None:
    logger.error("%s failed: %s", workflow, error_message(exc))
    cause = error_cause(exc)
    if cause is not None:
        logger.error("%s cause: %s", workflow, cause)
    if isinstance(exc, FundingError):
        # "unknown": the deposit was sent but not confirmed in time and may still land
        logger.error("%s funding status: %s", workflow, exc.funding_status)
    elif isinstance(exc, TransferError):
        logger.error("%s failed during %s", workflow, exc.operation)


def _threshold_for(variant: str, settings: Settings) -> int:
    if variant == VARIANT_ROUNDTRIP:
        return settings.bulk_deposit_amount
    return settings.minimal_deposit_amount


def run_storage_workflow(
    request: StorageRequest,
    settings: Settings | None = None,
    client_factory: ClientFactory = create_storage_client,
) -> dict[str, Any]:
    logger.info("Starting Synapse storage workflow (variant=%s)", request.variant)
    try:
        private_key = _require_private_key()
        settings = settings or load_settings()
        client = _open_client(private_key, settings, client_factory)
        try:
            funded = funding.ensure_funded(
                client,
                _threshold_for(request.variant, settings),
                policy=settings.funding_policy,
                wait_timeout=settings.tx_wait_timeout_seconds,
            )
            data = codec.encode(request.payload)
            if request.variant == VARIANT_UPLOAD:
                uploaded = transfer.upload(client, data)
                downloaded_text = None
            else:
                uploaded, downloaded = transfer.upload_then_download(client, data)
                downloaded_text = codec.decode(downloaded.data)
                if request.variant == VARIANT_PREVIEW:
                    downloaded_text = codec.preview(downloaded_text, settings.preview_chars)
        finally:
            _close_client(client)
    except WorkflowError as exc:
        _log_failure("Storage workflow", exc)
        raise

    body: dict[str, Any] = {
        "success": True,
        "pieceCid": uploaded.piece_cid,
        "size": uploaded.size,
        "message": "Storage workflow completed successfully!",
        "funding": funded.as_dict(),
    }
    if downloaded_text is not None:
        body["downloadedData"] = downloaded_text
    logger.info("Data storage workflow succeeded: pieceCid=%s", uploaded.piece_cid)
    return body


def run_download_workflow(
    piece_cid: str,
    settings: Settings | None = None,
    client_factory: ClientFactory = create_storage_client,
) -> dict[str, Any]:
    logger.info("Starting Filecoin download workflow")
    try:
        private_key = _require_private_key()
        settings = settings or load_settings()
        client = _open_client(private_key, settings, client_factory)
        try:
            downloaded = transfer.download(client, piece_cid)
        finally:
            _close_client(client)
        text = codec.decode(downloaded.data)
    except WorkflowError as exc:
        _log_failure("Download workflow", exc)
        raise

    return {
        "success": True,
        "data": text,
        "size": downloaded.size,
        "pieceCid": piece_cid,
        "message": "Download completed successfully!",
    }
