"""
Lambda handler for POST /storage/download.

Flow:
1. Require pieceCid in the JSON body (400 before any client is created).
2. Check the server-held signing key and create a fresh storage client.
3. Download the piece and return it decoded as UTF-8 text.
"""

from __future__ import annotations

import logging
from typing import Any

from reputation_storage.client import create_storage_client
from reputation_storage.config import configure_logging
from reputation_storage.errors import ValidationError, WorkflowError
from reputation_storage.events import (
    method_not_allowed,
    read_json_body,
    request_method,
    workflow_failure,
    workflow_success,
)
from reputation_storage.workflow import run_download_workflow

configure_logging()
logger = logging.getLogger(__name__)


class MethodNotAllowedError(ValueError):
    """Raised when an unsupported HTTP method is provided."""


def parse_input(event: dict[str, Any]) -> str:
    method = request_method(event)
    if method != "POST":
        raise MethodNotAllowedError("Only POST is supported")

    params = read_json_body(event)
    piece_cid = params.get("pieceCid")
    if not isinstance(piece_cid, str) or not piece_cid.strip():
        raise ValidationError("pieceCid is required")
    return piece_cid.strip()


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    del context
    try:
        piece_cid = parse_input(event)
        logger.info("Downloading PieceCID: %s", piece_cid)
        result = run_download_workflow(piece_cid, client_factory=create_storage_client)
        return workflow_success(result)
    except MethodNotAllowedError as exc:
        return method_not_allowed(str(exc))
    except ValidationError as exc:
        return workflow_failure(400, exc)
    except WorkflowError as exc:
        return workflow_failure(exc.status_code, exc)
    except Exception as exc:
        logger.exception("Unexpected download workflow failure")
        return workflow_failure(500, exc)
