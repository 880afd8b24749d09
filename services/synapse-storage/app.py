"""
Lambda handler for POST /storage.

Flow:
1. Parse the optional imageBase64 / variant fields from the JSON body.
2. Check the server-held signing key and create a fresh storage client.
3. Deposit USDFC and approve the warm storage operator if the balance is short.
4. Upload the payload to Filecoin and, for roundtrip/preview, download it back.

Responses:
- 200 {"success": true, "pieceCid", "size", "downloadedData"?, "message", "funding"}
- 400 {"success": false, "error"} for a malformed body
- 500 {"success": false, "error", "cause"?} for any workflow failure
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
from reputation_storage.workflow import StorageRequest, build_storage_request, run_storage_workflow

configure_logging()
logger = logging.getLogger(__name__)


class MethodNotAllowedError(ValueError):
    """Raised when an unsupported HTTP method is provided."""


def parse_input(event: dict[str, Any]) -> StorageRequest:
    method = request_method(event)
    if method != "POST":
        raise MethodNotAllowedError("Only POST is supported")

    params = read_json_body(event)
    return build_storage_request(
        image_base64=params.get("imageBase64"),
        variant=params.get("variant"),
    )


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    del context
    try:
        request = parse_input(event)
        result = run_storage_workflow(request, client_factory=create_storage_client)
        return workflow_success(result)
    except MethodNotAllowedError as exc:
        return method_not_allowed(str(exc))
    except ValidationError as exc:
        return workflow_failure(400, exc)
    except WorkflowError as exc:
        return workflow_failure(exc.status_code, exc)
    except Exception as exc:
        logger.exception("Unexpected storage workflow failure")
        return workflow_failure(500, exc)
