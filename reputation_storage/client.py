"""
Short-lived Filecoin warm-storage client handle.

One handle binds one signing key, one RPC endpoint and one storage provider.
It is created per invocation by `create_storage_client` and never cached.

- payments: FilecoinPay balance reads and the combined
  depositWithPermitAndApproveOperator transaction (ERC-2612 permit, EIP-712).
- storage: piece upload/download against the provider HTTP API.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import requests
from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3
from web3.exceptions import TimeExhausted

from reputation_storage.config import Settings

logger = logging.getLogger(__name__)

MAX_UINT256 = 2**256 - 1
# Filecoin epochs are 30 seconds: 2880 per day, 30 days.
EPOCHS_PER_DAY = 2880
EPOCHS_PER_MONTH = EPOCHS_PER_DAY * 30
MIN_UPLOAD_SIZE = 127
MAX_UPLOAD_SIZE = 200 * 1024 * 1024
PERMIT_TTL_SECONDS = 60 * 60

PERMIT_TYPES = {
    "Permit": [
        {"name": "owner", "type": "address"},
        {"name": "spender", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ]
}

USDFC_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "owner", "type": "address"}],
        "name": "nonces",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    }
]

PAYMENTS_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "token", "type": "address"},
            {"internalType": "address", "name": "owner", "type": "address"},
        ],
        "name": "accounts",
        "outputs": [
            {"internalType": "uint256", "name": "funds", "type": "uint256"},
            {"internalType": "uint256", "name": "lockupCurrent", "type": "uint256"},
            {"internalType": "uint256", "name": "lockupRate", "type": "uint256"},
            {"internalType": "uint256", "name": "lockupLastSettledAt", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "token", "type": "address"},
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
            {"internalType": "uint256", "name": "deadline", "type": "uint256"},
            {"internalType": "uint8", "name": "v", "type": "uint8"},
            {"internalType": "bytes32", "name": "r", "type": "bytes32"},
            {"internalType": "bytes32", "name": "s", "type": "bytes32"},
            {"internalType": "address", "name": "operator", "type": "address"},
            {"internalType": "uint256", "name": "rateAllowance", "type": "uint256"},
            {"internalType": "uint256", "name": "lockupAllowance", "type": "uint256"},
            {"internalType": "uint256", "name": "maxLockupPeriod", "type": "uint256"},
        ],
        "name": "depositWithPermitAndApproveOperator",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


class SynapseClientError(Exception):
    """Raised by the client handle; carries a message and the underlying cause."""

    def __init__(self, message: str, cause: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class TransactionTimeoutError(SynapseClientError):
    """Raised when a sent transaction is not confirmed within the wait timeout."""

    def __init__(self, message: str, tx_hash: str, cause: Any = None) -> None:
        super().__init__(message, cause)
        self.tx_hash = tx_hash


@dataclass(frozen=True)
class PieceUpload:
    piece_cid: str
    size: int


class PendingTransaction:
    def __init__(self, web3: Any, tx_hash: Any, default_timeout: int) -> None:
        self._web3 = web3
        self._tx_hash = tx_hash
        self._default_timeout = default_timeout

    @property
    def hash(self) -> str:
        raw = self._tx_hash
        text = raw.hex() if hasattr(raw, "hex") else str(raw)
        return text if text.startswith("0x") else f"0x{text}"

    def wait(self, timeout: int | None = None) -> Any:
        wait_timeout = timeout if timeout is not None else self._default_timeout
        try:
            receipt = self._web3.eth.wait_for_transaction_receipt(self._tx_hash, timeout=wait_timeout)
        except TimeExhausted as exc:
            raise TransactionTimeoutError(
                f"Transaction {self.hash} was not confirmed within {wait_timeout} seconds",
                tx_hash=self.hash,
                cause=exc,
            ) from exc
        status = receipt.get("status", 0) if hasattr(receipt, "get") else getattr(receipt, "status", 0)
        if status != 1:
            raise SynapseClientError(f"Transaction {self.hash} reverted")
        return receipt


class PaymentsAPI:
    def __init__(
        self,
        web3: Any,
        account: Any,
        payments_address: str,
        token_address: str,
        chain_id: int,
        token_name: str,
        token_version: str,
        tx_wait_timeout: int,
    ) -> None:
        self._web3 = web3
        self._account = account
        self._chain_id = chain_id
        self._token_address = Web3.to_checksum_address(token_address)
        self._token_name = token_name
        self._token_version = token_version
        self._tx_wait_timeout = tx_wait_timeout
        self._payments = web3.eth.contract(address=Web3.to_checksum_address(payments_address), abi=PAYMENTS_ABI)
        self._token = web3.eth.contract(address=self._token_address, abi=USDFC_ABI)

    def balance(self) -> int:
        """Available USDFC in the payments contract, after settled lockup, in base units."""
        try:
            funds, lockup_current, lockup_rate, settled_at = self._payments.functions.accounts(
                self._token_address, self._account.address
            ).call()
            current_epoch = int(self._web3.eth.block_number)
        except Exception as exc:
            raise SynapseClientError("Failed to read payments account balance", cause=exc) from exc

        elapsed = max(current_epoch - int(settled_at), 0)
        locked = int(lockup_current) + int(lockup_rate) * elapsed
        return max(int(funds) - locked, 0)

    def _sign_permit(self, spender: str, amount: int, deadline: int) -> tuple[int, bytes, bytes]:
        nonce = int(self._token.functions.nonces(self._account.address).call())
        signable = encode_typed_data(
            domain_data={
                "name": self._token_name,
                "version": self._token_version,
                "chainId": self._chain_id,
                "verifyingContract": self._token_address,
            },
            message_types=PERMIT_TYPES,
            message_data={
                "owner": self._account.address,
                "spender": spender,
                "value": int(amount),
                "nonce": nonce,
                "deadline": int(deadline),
            },
        )
        signed = Account.sign_message(signable, self._account.key)
        return int(signed.v), int(signed.r).to_bytes(32, "big"), int(signed.s).to_bytes(32, "big")

    def deposit_and_approve(
        self,
        amount: int,
        operator: str,
        rate_allowance: int,
        lockup_allowance: int,
        max_lockup_period: int,
    ) -> PendingTransaction:
        try:
            deadline = int(time.time()) + PERMIT_TTL_SECONDS
            spender = self._payments.address
            v, r, s = self._sign_permit(spender, amount, deadline)
            tx = self._payments.functions.depositWithPermitAndApproveOperator(
                self._token_address,
                self._account.address,
                int(amount),
                deadline,
                v,
                r,
                s,
                Web3.to_checksum_address(operator),
                int(rate_allowance),
                int(lockup_allowance),
                int(max_lockup_period),
            ).build_transaction(
                {
                    "from": self._account.address,
                    "chainId": self._chain_id,
                    "nonce": self._web3.eth.get_transaction_count(self._account.address),
                }
            )
            signed_tx = self._web3.eth.account.sign_transaction(tx, private_key=self._account.key)
            tx_hash = self._web3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except Exception as exc:
            raise SynapseClientError("Failed to send deposit and operator approval transaction", cause=exc) from exc
        return PendingTransaction(self._web3, tx_hash, self._tx_wait_timeout)


class StorageAPI:
    def __init__(self, session: requests.Session, provider_url: str, timeout: int) -> None:
        self._session = session
        self._provider_url = provider_url.rstrip("/")
        self._timeout = timeout

    def upload(self, data: bytes) -> PieceUpload:
        size = len(data)
        if size < MIN_UPLOAD_SIZE:
            raise SynapseClientError(
                f"Data size {size} bytes is below the minimum upload size of {MIN_UPLOAD_SIZE} bytes"
            )
        if size > MAX_UPLOAD_SIZE:
            raise SynapseClientError(
                f"Data size {size} bytes exceeds the maximum upload size of {MAX_UPLOAD_SIZE} bytes"
            )

        try:
            response = self._session.post(
                f"{self._provider_url}/pdp/piece/upload",
                data=bytes(data),
                headers={"Content-Type": "application/octet-stream"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise SynapseClientError("Failed to upload piece to storage provider", cause=exc) from exc

        piece_cid = body.get("pieceCid") if isinstance(body, dict) else None
        if not isinstance(piece_cid, str) or not piece_cid.strip():
            raise SynapseClientError("Storage provider response is missing pieceCid", cause=body)
        try:
            reported_size = int(body.get("size", size))
        except (TypeError, ValueError):
            reported_size = size
        return PieceUpload(piece_cid=piece_cid.strip(), size=reported_size)

    def download(self, piece_cid: str) -> bytes:
        url = f"{self._provider_url}/piece/{quote(piece_cid, safe='')}"
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as exc:
            raise SynapseClientError("Failed to download piece from storage provider", cause=exc) from exc

        if response.status_code == 404:
            raise SynapseClientError(f"Piece not found: {piece_cid}")
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise SynapseClientError("Failed to download piece from storage provider", cause=exc) from exc
        return response.content


class SynapseClient:
    def __init__(self, payments: Any, storage: Any, warm_storage_address: str, address: str) -> None:
        self.payments = payments
        self.storage = storage
        self.warm_storage_address = warm_storage_address
        self.address = address

    def close(self) -> None:
        session = getattr(self.storage, "_session", None)
        if session is not None:
            session.close()


def _required(value: str | None, env_name: str) -> str:
    if not value:
        raise SynapseClientError(f"{env_name} environment variable is required")
    return value


def create_storage_client(private_key: str, settings: Settings) -> SynapseClient:
    payments_address = _required(settings.payments_address, "SYNAPSE_PAYMENTS_ADDRESS")
    usdfc_address = _required(settings.usdfc_address, "SYNAPSE_USDFC_ADDRESS")
    warm_storage_address = _required(settings.warm_storage_address, "SYNAPSE_WARM_STORAGE_ADDRESS")
    provider_url = _required(settings.provider_url, "SYNAPSE_PROVIDER_URL")

    try:
        account = Account.from_key(private_key)
    except Exception as exc:
        raise SynapseClientError("Configured private key is invalid", cause=type(exc).__name__) from exc

    web3 = Web3(Web3.HTTPProvider(settings.rpc_url, request_kwargs={"timeout": settings.http_timeout_seconds}))
    if not web3.is_connected():
        raise SynapseClientError(f"Unable to connect to Filecoin RPC endpoint ({settings.network})")

    logger.info("Storage client bound to %s on %s", account.address, settings.network)
    payments = PaymentsAPI(
        web3=web3,
        account=account,
        payments_address=payments_address,
        token_address=usdfc_address,
        chain_id=settings.chain_id,
        token_name=settings.token_name,
        token_version=settings.token_version,
        tx_wait_timeout=settings.tx_wait_timeout_seconds,
    )
    storage = StorageAPI(requests.Session(), provider_url, settings.http_timeout_seconds)
    return SynapseClient(
        payments=payments,
        storage=storage,
        warm_storage_address=Web3.to_checksum_address(warm_storage_address),
        address=account.address,
    )
