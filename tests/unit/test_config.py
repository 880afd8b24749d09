import base64
import os
import unittest
from unittest import mock

from reputation_storage import config
from reputation_storage.errors import ConfigurationError


class ParseUnitsTests(unittest.TestCase):
    def test_bulk_amount_in_base_units(self):
        self.assertEqual(config.parse_units("2.5"), 2_500_000_000_000_000_000)

    def test_integer_amount(self):
        self.assertEqual(config.parse_units(1), 10**18)

    def test_smallest_unit(self):
        self.assertEqual(config.parse_units("0.000000000000000001"), 1)

    def test_rejects_negative(self):
        with self.assertRaises(ValueError):
            config.parse_units("-1")

    def test_rejects_garbage(self):
        with self.assertRaises(ValueError):
            config.parse_units("two")

    def test_format_units(self):
        self.assertEqual(config.format_units(2_500_000_000_000_000_000), "2.5")
        self.assertEqual(config.format_units(0), "0")


class LoadSettingsTests(unittest.TestCase):
    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = config.load_settings()

        self.assertEqual(settings.network, "calibration")
        self.assertEqual(settings.chain_id, 314159)
        self.assertEqual(settings.rpc_url, config.NETWORKS["calibration"]["rpc_url"])
        self.assertEqual(settings.bulk_deposit_amount, 2_500_000_000_000_000_000)
        self.assertEqual(settings.minimal_deposit_amount, 100_000_000_000_000_000)
        self.assertEqual(settings.funding_policy, "check")
        self.assertEqual(settings.tx_wait_timeout_seconds, 180)
        self.assertEqual(settings.preview_chars, 100)
        self.assertIsNone(settings.provider_url)

    def test_overrides(self):
        env = {
            "SYNAPSE_NETWORK": "MAINNET",
            "SYNAPSE_RPC_URL": "https://rpc.example.test",
            "SYNAPSE_PROVIDER_URL": "https://sp.example.test/",
            "SYNAPSE_PAYMENTS_ADDRESS": "0x" + "ab" * 20,
            "SYNAPSE_FUNDING_POLICY": "always",
            "SYNAPSE_MINIMAL_DEPOSIT_AMOUNT": "0.25",
            "SYNAPSE_PREVIEW_CHARS": "12",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = config.load_settings()

        self.assertEqual(settings.network, "mainnet")
        self.assertEqual(settings.chain_id, 314)
        self.assertEqual(settings.rpc_url, "https://rpc.example.test")
        self.assertEqual(settings.provider_url, "https://sp.example.test")
        self.assertEqual(settings.payments_address, "0x" + "ab" * 20)
        self.assertEqual(settings.funding_policy, "always")
        self.assertEqual(settings.minimal_deposit_amount, 250_000_000_000_000_000)
        self.assertEqual(settings.preview_chars, 12)

    def test_unknown_network(self):
        with mock.patch.dict(os.environ, {"SYNAPSE_NETWORK": "devnet"}, clear=True):
            with self.assertRaises(ConfigurationError):
                config.load_settings()

    def test_unknown_funding_policy(self):
        with mock.patch.dict(os.environ, {"SYNAPSE_FUNDING_POLICY": "sometimes"}, clear=True):
            with self.assertRaises(ConfigurationError):
                config.load_settings()

    def test_zero_deposit_amount_rejected(self):
        with mock.patch.dict(os.environ, {"SYNAPSE_BULK_DEPOSIT_AMOUNT": "0"}, clear=True):
            with self.assertRaises(ConfigurationError):
                config.load_settings()

    def test_invalid_address_rejected(self):
        with mock.patch.dict(os.environ, {"SYNAPSE_USDFC_ADDRESS": "not-an-address"}, clear=True):
            with self.assertRaises(ConfigurationError):
                config.load_settings()

    def test_invalid_integer_rejected(self):
        with mock.patch.dict(os.environ, {"SYNAPSE_TX_WAIT_TIMEOUT_SECONDS": "soon"}, clear=True):
            with self.assertRaises(ConfigurationError):
                config.load_settings()


class ResolvePrivateKeyTests(unittest.TestCase):
    def setUp(self):
        self.original_cache = config._PRIVATE_KEY_CACHE
        config._PRIVATE_KEY_CACHE = None

    def tearDown(self):
        config._PRIVATE_KEY_CACHE = self.original_cache

    def test_returns_none_when_unset(self):
        with (
            mock.patch.dict(os.environ, {}, clear=True),
            mock.patch.object(config.boto3, "client") as client_mock,
        ):
            self.assertIsNone(config.resolve_private_key())
        client_mock.assert_not_called()

    def test_environment_key_wins(self):
        with (
            mock.patch.dict(
                os.environ,
                {"SYNAPSE_PRIVATE_KEY": " 0xabc123 ", "SYNAPSE_PRIVATE_KEY_SECRET_ID": "synapse/key"},
                clear=True,
            ),
            mock.patch.object(config.boto3, "client") as client_mock,
        ):
            self.assertEqual(config.resolve_private_key(), "0xabc123")
        client_mock.assert_not_called()

    def test_fetches_secret_once_and_caches(self):
        secret_client = mock.Mock()
        secret_client.get_secret_value.return_value = {"SecretString": "  0xabc123  "}

        with (
            mock.patch.dict(os.environ, {"SYNAPSE_PRIVATE_KEY_SECRET_ID": "synapse/key"}, clear=True),
            mock.patch.object(config.boto3, "client", return_value=secret_client) as client_mock,
        ):
            first = config.resolve_private_key()
            second = config.resolve_private_key()

        self.assertEqual(first, "0xabc123")
        self.assertEqual(second, "0xabc123")
        client_mock.assert_called_once_with("secretsmanager")
        secret_client.get_secret_value.assert_called_once_with(SecretId="synapse/key")

    def test_decodes_secret_binary(self):
        secret_client = mock.Mock()
        secret_client.get_secret_value.return_value = {
            "SecretBinary": base64.b64encode(b"0xfeedbeef").decode("ascii")
        }

        with (
            mock.patch.dict(os.environ, {"SYNAPSE_PRIVATE_KEY_SECRET_ID": "synapse/key"}, clear=True),
            mock.patch.object(config.boto3, "client", return_value=secret_client),
        ):
            self.assertEqual(config.resolve_private_key(), "0xfeedbeef")

    def test_raw_secret_binary_bytes(self):
        secret_client = mock.Mock()
        secret_client.get_secret_value.return_value = {"SecretBinary": b"0xfeedbeef\n"}

        with (
            mock.patch.dict(os.environ, {"SYNAPSE_PRIVATE_KEY_SECRET_ID": "synapse/key"}, clear=True),
            mock.patch.object(config.boto3, "client", return_value=secret_client),
        ):
            self.assertEqual(config.resolve_private_key(), "0xfeedbeef")

    def test_changed_secret_id_is_fetched_again(self):
        secret_client = mock.Mock()
        secret_client.get_secret_value.side_effect = [
            {"SecretString": "0xaaaa"},
            {"SecretString": "0xbbbb"},
        ]

        with mock.patch.object(config.boto3, "client", return_value=secret_client):
            with mock.patch.dict(os.environ, {"SYNAPSE_PRIVATE_KEY_SECRET_ID": "synapse/key-a"}, clear=True):
                first = config.resolve_private_key()
            with mock.patch.dict(os.environ, {"SYNAPSE_PRIVATE_KEY_SECRET_ID": "synapse/key-b"}, clear=True):
                second = config.resolve_private_key()

        self.assertEqual((first, second), ("0xaaaa", "0xbbbb"))
        self.assertEqual(
            secret_client.get_secret_value.call_args_list,
            [mock.call(SecretId="synapse/key-a"), mock.call(SecretId="synapse/key-b")],
        )

    def test_empty_secret_is_not_cached(self):
        secret_client = mock.Mock()
        secret_client.get_secret_value.return_value = {"SecretString": "   "}

        with (
            mock.patch.dict(os.environ, {"SYNAPSE_PRIVATE_KEY_SECRET_ID": "synapse/key"}, clear=True),
            mock.patch.object(config.boto3, "client", return_value=secret_client),
        ):
            self.assertIsNone(config.resolve_private_key())
            self.assertIsNone(config.resolve_private_key())

        self.assertEqual(secret_client.get_secret_value.call_count, 2)


class ReviewsConfigTests(unittest.TestCase):
    def test_contract_address_requires_valid_hex(self):
        with mock.patch.dict(os.environ, {"REVIEWS_CONTRACT_ADDRESS": "0x123"}, clear=True):
            with self.assertLogs("reputation_storage.config", level="WARNING") as logs:
                self.assertIsNone(config.reviews_contract_address())

        self.assertIn("REVIEWS_CONTRACT_ADDRESS", logs.output[0])

    def test_unset_contract_address(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertIsNone(config.reviews_contract_address())

    def test_rpc_url_falls_back_to_synapse_rpc(self):
        with mock.patch.dict(os.environ, {"SYNAPSE_RPC_URL": "https://rpc.example.test"}, clear=True):
            self.assertEqual(config.reviews_rpc_url(), "https://rpc.example.test")
