"""
On-chain review records for a wallet and their summary statistics.

Star ratings are stored on-chain as integers with two implied decimals
(4.89 -> 489).
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from web3 import Web3

logger = logging.getLogger(__name__)

STAR_RATING_SCALE = 100
REVIEW_FIELDS = (
    "platformName",
    "starRating",
    "numberOfReviews",
    "ageOfAccount",
    "accountName",
    "pictureId",
)

REVIEWS_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "user", "type": "address"}],
        "name": "getReviews",
        "outputs": [
            {
                "components": [
                    {"internalType": "string", "name": "platformName", "type": "string"},
                    {"internalType": "uint256", "name": "starRating", "type": "uint256"},
                    {"internalType": "uint256", "name": "numberOfReviews", "type": "uint256"},
                    {"internalType": "uint256", "name": "ageOfAccount", "type": "uint256"},
                    {"internalType": "string", "name": "accountName", "type": "string"},
                    {"internalType": "string", "name": "pictureId", "type": "string"},
                ],
                "internalType": "struct YourContract.Review[]",
                "name": "",
                "type": "tuple[]",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    }
]


def format_review(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        values = [raw.get(name) for name in REVIEW_FIELDS]
    else:
        values = list(raw)
    if len(values) != len(REVIEW_FIELDS):
        raise ValueError(f"review record must have {len(REVIEW_FIELDS)} fields")

    platform_name, star_rating, number_of_reviews, age_of_account, account_name, picture_id = values
    return {
        "platformName": str(platform_name or ""),
        # the contract stores 489 for 4.89 stars; the API serves stars, not the raw integer
        "starRating": round(int(star_rating or 0) / STAR_RATING_SCALE, 2),
        "numberOfReviews": int(number_of_reviews or 0),
        "ageOfAccount": int(age_of_account or 0),
        "accountName": str(account_name or ""),
        "pictureId": str(picture_id or ""),
    }


def summarize_reviews(reviews: list[dict[str, Any]]) -> dict[str, Any]:
    count = len(reviews)
    if count == 0:
        return {"averageStars": 0, "totalReviews": 0, "numberOfPlatforms": 0, "oldestAccountAge": 0}

    average_stars = sum(review["starRating"] for review in reviews) / count
    return {
        "averageStars": round(average_stars, 1),
        "totalReviews": sum(review["numberOfReviews"] for review in reviews),
        "numberOfPlatforms": len({review["platformName"] for review in reviews}),
        "oldestAccountAge": max(review["ageOfAccount"] for review in reviews),
    }


def build_reviews_report(address: str, raw_reviews: Iterable[Any]) -> dict[str, Any]:
    reviews = [format_review(raw) for raw in raw_reviews]
    return {
        "address": address,
        "summary": summarize_reviews(reviews),
        "reviews": reviews,
    }


class ReviewReader:
    def __init__(self, rpc_url: str, contract_address: str, timeout: int = 20) -> None:
        self._web3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self._contract = self._web3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=REVIEWS_ABI,
        )

    def get_reviews(self, address: str) -> list[Any]:
        logger.info("Reading reviews for %s", address)
        return list(self._contract.functions.getReviews(Web3.to_checksum_address(address)).call())
