"""
API Gateway proxy event helpers shared by the Lambda handlers.

Storage handlers answer with the workflow envelope:
- success: {"success": true, ...workflow result}
- failure: {"success": false, "error", "cause"?, "message"?, "fundingStatus"?}
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from reputation_storage.errors import ValidationError, normalize_error

CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
}


def json_response(status_code: int, body: dict[str, Any], headers: dict[str, str] | None = None) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {**CORS_HEADERS, **(headers or {})},
        "body": json.dumps(body, default=str),
    }


def workflow_success(result: dict[str, Any]) -> dict[str, Any]:
    return json_response(200, {**result, "success": True})


def workflow_failure(status_code: int, exc: BaseException) -> dict[str, Any]:
    return json_response(status_code, normalize_error(exc))


def method_not_allowed(message: str) -> dict[str, Any]:
    return json_response(405, {"success": False, "error": "method_not_allowed", "message": message})


def request_method(event: dict[str, Any], default: str = "POST") -> str:
    method = event.get("httpMethod")
    if not method:
        # HTTP API (payload v2) events carry the method under requestContext.http
        request_context = event.get("requestContext")
        http_context = request_context.get("http") if isinstance(request_context, dict) else None
        method = http_context.get("method") if isinstance(http_context, dict) else None
    return str(method or default).upper()


def read_json_body(event: dict[str, Any]) -> dict[str, Any]:
    """Return the request body as a dict; an absent body reads as {} so every field stays optional."""
    raw_body = event.get("body")
    if isinstance(raw_body, dict):
        return raw_body
    if not raw_body:
        return {}

    text = raw_body
    if event.get("isBase64Encoded"):
        try:
            text = base64.b64decode(raw_body, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError, TypeError) as exc:
            raise ValidationError("body must be valid base64-encoded JSON") from exc

    try:
        params = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ValidationError("body must be valid JSON") from exc
    if not isinstance(params, dict):
        raise ValidationError("JSON body must be an object")
    return params


def path_parameter(event: dict[str, Any], name: str) -> str | None:
    params = event.get("pathParameters")
    value = params.get(name) if isinstance(params, dict) else None
    if not isinstance(value, str):
        return None
    return value.strip() or None
