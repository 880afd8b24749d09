"""
Environment-driven settings for the storage and reputation handlers.

The signing credential is resolved separately from the rest of the settings so
that "not configured" can be reported before any other work happens.
"""

from __future__ import annotations

import base64
import logging
import os
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

import boto3

from reputation_storage.errors import ConfigurationError

logger = logging.getLogger(__name__)

PRIVATE_KEY_ENV = "SYNAPSE_PRIVATE_KEY"
PRIVATE_KEY_SECRET_ID_ENV = "SYNAPSE_PRIVATE_KEY_SECRET_ID"
NETWORK_ENV = "SYNAPSE_NETWORK"
RPC_URL_ENV = "SYNAPSE_RPC_URL"
PAYMENTS_ADDRESS_ENV = "SYNAPSE_PAYMENTS_ADDRESS"
USDFC_ADDRESS_ENV = "SYNAPSE_USDFC_ADDRESS"
WARM_STORAGE_ADDRESS_ENV = "SYNAPSE_WARM_STORAGE_ADDRESS"
PROVIDER_URL_ENV = "SYNAPSE_PROVIDER_URL"
BULK_DEPOSIT_AMOUNT_ENV = "SYNAPSE_BULK_DEPOSIT_AMOUNT"
MINIMAL_DEPOSIT_AMOUNT_ENV = "SYNAPSE_MINIMAL_DEPOSIT_AMOUNT"
FUNDING_POLICY_ENV = "SYNAPSE_FUNDING_POLICY"
HTTP_TIMEOUT_ENV = "SYNAPSE_HTTP_TIMEOUT_SECONDS"
TX_WAIT_TIMEOUT_ENV = "SYNAPSE_TX_WAIT_TIMEOUT_SECONDS"
PREVIEW_CHARS_ENV = "SYNAPSE_PREVIEW_CHARS"
TOKEN_NAME_ENV = "SYNAPSE_USDFC_TOKEN_NAME"
TOKEN_VERSION_ENV = "SYNAPSE_USDFC_TOKEN_VERSION"
REVIEWS_CONTRACT_ADDRESS_ENV = "REVIEWS_CONTRACT_ADDRESS"
REVIEWS_RPC_URL_ENV = "REVIEWS_RPC_URL"
LOG_LEVEL_ENV = "LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"

DEFAULT_NETWORK = "calibration"
NETWORKS: dict[str, dict[str, Any]] = {
    "mainnet": {"chain_id": 314, "rpc_url": "https://api.node.glif.io/rpc/v1"},
    "calibration": {"chain_id": 314159, "rpc_url": "https://api.calibration.node.glif.io/rpc/v1"},
}

TOKEN_DECIMALS = 18
DEFAULT_BULK_DEPOSIT_AMOUNT = "2.5"
DEFAULT_MINIMAL_DEPOSIT_AMOUNT = "0.1"
DEFAULT_FUNDING_POLICY = "check"
FUNDING_POLICIES = ("check", "always")
DEFAULT_HTTP_TIMEOUT_SECONDS = 60
DEFAULT_TX_WAIT_TIMEOUT_SECONDS = 180
DEFAULT_PREVIEW_CHARS = 100
DEFAULT_TOKEN_NAME = "USD for Filecoin Community"
DEFAULT_TOKEN_VERSION = "1"

MISSING_KEY_MESSAGE = "Private key not configured on server"
MISSING_KEY_HINT = (
    f"Please set {PRIVATE_KEY_ENV} (or {PRIVATE_KEY_SECRET_ID_ENV}) in the function environment"
)

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")

# (secret id, key) of the last Secrets Manager read
_PRIVATE_KEY_CACHE: tuple[str, str] | None = None


@dataclass(frozen=True)
class Settings:
    network: str
    chain_id: int
    rpc_url: str
    payments_address: str | None
    usdfc_address: str | None
    warm_storage_address: str | None
    provider_url: str | None
    bulk_deposit_amount: int
    minimal_deposit_amount: int
    funding_policy: str
    http_timeout_seconds: int
    tx_wait_timeout_seconds: int
    preview_chars: int
    token_name: str
    token_version: str


def parse_units(amount: Any, decimals: int = TOKEN_DECIMALS) -> int:
    """Convert a human token amount ("2.5") to integer base units."""
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValueError(f"{amount!r} is not a decimal amount") from exc
    if not value.is_finite() or value < 0:
        raise ValueError(f"{amount!r} must be a non-negative amount")
    scaled = value * (Decimal(10) ** decimals)
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_units(value: int, decimals: int = TOKEN_DECIMALS) -> str:
    scaled = Decimal(int(value)) / (Decimal(10) ** decimals)
    return format(scaled.normalize(), "f")


def _optional_env(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def _read_int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        parsed = int(str(raw).strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer") from exc
    if parsed < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}")
    return parsed


def _read_amount_env(name: str, default: str) -> int:
    raw = _optional_env(name) or default
    try:
        amount = parse_units(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a decimal USDFC amount") from exc
    if amount <= 0:
        raise ConfigurationError(f"{name} must be greater than 0")
    return amount


def _optional_address_env(name: str) -> str | None:
    value = _optional_env(name)
    if value is None:
        return None
    if not ADDRESS_PATTERN.fullmatch(value):
        raise ConfigurationError(f"{name} must be a 0x-prefixed 20-byte hex address")
    return value


def load_settings() -> Settings:
    network = (_optional_env(NETWORK_ENV) or DEFAULT_NETWORK).lower()
    if network not in NETWORKS:
        raise ConfigurationError(f"{NETWORK_ENV} must be one of: {', '.join(sorted(NETWORKS))}")

    funding_policy = (_optional_env(FUNDING_POLICY_ENV) or DEFAULT_FUNDING_POLICY).lower()
    if funding_policy not in FUNDING_POLICIES:
        raise ConfigurationError(f"{FUNDING_POLICY_ENV} must be either check or always")

    provider_url = _optional_env(PROVIDER_URL_ENV)
    return Settings(
        network=network,
        chain_id=int(NETWORKS[network]["chain_id"]),
        rpc_url=_optional_env(RPC_URL_ENV) or str(NETWORKS[network]["rpc_url"]),
        payments_address=_optional_address_env(PAYMENTS_ADDRESS_ENV),
        usdfc_address=_optional_address_env(USDFC_ADDRESS_ENV),
        warm_storage_address=_optional_address_env(WARM_STORAGE_ADDRESS_ENV),
        provider_url=provider_url.rstrip("/") if provider_url else None,
        bulk_deposit_amount=_read_amount_env(BULK_DEPOSIT_AMOUNT_ENV, DEFAULT_BULK_DEPOSIT_AMOUNT),
        minimal_deposit_amount=_read_amount_env(MINIMAL_DEPOSIT_AMOUNT_ENV, DEFAULT_MINIMAL_DEPOSIT_AMOUNT),
        funding_policy=funding_policy,
        http_timeout_seconds=_read_int_env(HTTP_TIMEOUT_ENV, DEFAULT_HTTP_TIMEOUT_SECONDS),
        tx_wait_timeout_seconds=_read_int_env(TX_WAIT_TIMEOUT_ENV, DEFAULT_TX_WAIT_TIMEOUT_SECONDS),
        preview_chars=_read_int_env(PREVIEW_CHARS_ENV, DEFAULT_PREVIEW_CHARS),
        token_name=_optional_env(TOKEN_NAME_ENV) or DEFAULT_TOKEN_NAME,
        token_version=_optional_env(TOKEN_VERSION_ENV) or DEFAULT_TOKEN_VERSION,
    )


def configure_logging() -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    level = logging.getLevelName(os.environ.get(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).strip().upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.getLogger("reputation_storage").setLevel(level)


def _decode_secret_value(response: dict[str, Any]) -> str:
    secret_string = response.get("SecretString")
    if isinstance(secret_string, str):
        return secret_string.strip()

    secret_binary = response.get("SecretBinary")
    if isinstance(secret_binary, (bytes, bytearray)):
        return bytes(secret_binary).decode("utf-8").strip()
    if isinstance(secret_binary, str):
        return base64.b64decode(secret_binary).decode("utf-8").strip()
    return ""


def resolve_private_key() -> str | None:
    """Return the signing key from the environment or Secrets Manager, or None if unset."""
    global _PRIVATE_KEY_CACHE

    direct = _optional_env(PRIVATE_KEY_ENV)
    if direct:
        return direct

    secret_id = _optional_env(PRIVATE_KEY_SECRET_ID_ENV)
    if not secret_id:
        return None

    if _PRIVATE_KEY_CACHE is not None and _PRIVATE_KEY_CACHE[0] == secret_id:
        return _PRIVATE_KEY_CACHE[1]

    secrets_client = boto3.client("secretsmanager")
    response = secrets_client.get_secret_value(SecretId=secret_id)
    private_key = _decode_secret_value(response)
    if not private_key:
        return None
    _PRIVATE_KEY_CACHE = (secret_id, private_key)
    return private_key


def reviews_contract_address() -> str | None:
    value = _optional_env(REVIEWS_CONTRACT_ADDRESS_ENV)
    if value is None:
        return None
    if not ADDRESS_PATTERN.fullmatch(value):
        logger.warning("%s is not a 0x-prefixed 20-byte hex address; ignoring it", REVIEWS_CONTRACT_ADDRESS_ENV)
        return None
    return value


def reviews_rpc_url() -> str:
    network = (_optional_env(NETWORK_ENV) or DEFAULT_NETWORK).lower()
    fallback = str(NETWORKS.get(network, NETWORKS[DEFAULT_NETWORK])["rpc_url"])
    return _optional_env(REVIEWS_RPC_URL_ENV) or _optional_env(RPC_URL_ENV) or fallback
