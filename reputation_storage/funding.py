"""
Funding guard: make sure the warm storage operator can draw from a deposited
USDFC balance before an upload, without re-depositing when the balance is
already sufficient.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from reputation_storage.client import EPOCHS_PER_MONTH, MAX_UINT256, TransactionTimeoutError
from reputation_storage.config import format_units
from reputation_storage.errors import FundingError, wrap_stage_error

logger = logging.getLogger(__name__)

POLICY_CHECK_THEN_FUND = "check"
POLICY_ALWAYS_FUND = "always"


@dataclass(frozen=True)
class FundingOutcome:
    status: str
    threshold: int
    balance: int | None = None
    transaction_hash: str | None = None

    @property
    def funded(self) -> bool:
        return self.status == "funded"

    def as_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "status": self.status,
            "threshold": str(self.threshold),
        }
        if self.balance is not None:
            body["balance"] = str(self.balance)
        if self.transaction_hash:
            body["transactionHash"] = self.transaction_hash
        return body


def needs_funding(current_balance: int, required_threshold: int) -> bool:
    return int(current_balance) < int(required_threshold)


def _deposit_and_approve(client: Any, threshold: int, wait_timeout: int | None) -> str:
    tx = client.payments.deposit_and_approve(
        threshold,
        client.warm_storage_address,
        MAX_UINT256,
        MAX_UINT256,
        EPOCHS_PER_MONTH,
    )
    tx_hash = getattr(tx, "hash", None)
    logger.info("Deposit and operator approval sent: %s", tx_hash)
    tx.wait(wait_timeout)
    return tx_hash


def ensure_funded(
    client: Any,
    threshold: int,
    policy: str = POLICY_CHECK_THEN_FUND,
    wait_timeout: int | None = None,
) -> FundingOutcome:
    if int(threshold) <= 0:
        raise ValueError("funding threshold must be greater than 0")
    if policy not in (POLICY_CHECK_THEN_FUND, POLICY_ALWAYS_FUND):
        raise ValueError(f"unknown funding policy: {policy}")

    balance: int | None = None
    try:
        if policy == POLICY_CHECK_THEN_FUND:
            balance = int(client.payments.balance())
            if not needs_funding(balance, threshold):
                logger.info(
                    "Payments balance %s USDFC covers threshold %s USDFC; skipping deposit",
                    format_units(balance),
                    format_units(threshold),
                )
                return FundingOutcome(status="sufficient", threshold=threshold, balance=balance)

        logger.info("Depositing %s USDFC and approving warm storage operator", format_units(threshold))
        tx_hash = _deposit_and_approve(client, threshold, wait_timeout)
    except TransactionTimeoutError as exc:
        raise wrap_stage_error(FundingError, exc, funding_status="unknown") from exc
    except Exception as exc:
        raise wrap_stage_error(FundingError, exc) from exc

    logger.info("USDFC deposit and warm storage approval confirmed")
    return FundingOutcome(status="funded", threshold=threshold, balance=balance, transaction_hash=tx_hash)
