"""
Lambda handler for GET /reviews/{address}.

Reads the review records stored for a wallet in the reputation contract and
returns them with summary statistics:
{
  "address": "0x...",
  "summary": {"averageStars", "totalReviews", "numberOfPlatforms", "oldestAccountAge"},
  "reviews": [...]
}
"""

from __future__ import annotations

import logging
import re
from typing import Any

from reputation_storage.config import configure_logging, reviews_contract_address, reviews_rpc_url
from reputation_storage.events import json_response, path_parameter, request_method
from reputation_storage.reviews import ReviewReader, build_reviews_report

configure_logging()
logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


class BadRequestError(ValueError):
    """Raised when request validation fails."""


class MethodNotAllowedError(ValueError):
    """Raised when an unsupported HTTP method is provided."""


def parse_input(event: dict[str, Any]) -> str:
    if request_method(event, default="GET") != "GET":
        raise MethodNotAllowedError("Only GET is supported")

    address = path_parameter(event, "address")
    if address is None:
        query_params = event.get("queryStringParameters") or {}
        if isinstance(query_params, dict) and isinstance(query_params.get("address"), str):
            address = query_params["address"].strip()
    if not address or not ADDRESS_PATTERN.fullmatch(address):
        raise BadRequestError("Invalid Ethereum address")
    return address


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    del context
    try:
        address = parse_input(event)
    except MethodNotAllowedError as exc:
        return json_response(405, {"error": "method_not_allowed", "message": str(exc)})
    except BadRequestError as exc:
        return json_response(400, {"error": str(exc)})

    contract_address = reviews_contract_address()
    if not contract_address:
        return json_response(500, {"error": "Contract not deployed on this network"})

    try:
        reader = ReviewReader(reviews_rpc_url(), contract_address)
        raw_reviews = reader.get_reviews(address)
        return json_response(200, build_reviews_report(address, raw_reviews))
    except Exception:
        logger.exception("Error fetching reviews")
        return json_response(500, {"error": "Failed to fetch reviews from blockchain"})
