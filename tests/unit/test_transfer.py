import unittest

from fakes import FakeSynapseClient

from reputation_storage import transfer
from reputation_storage.client import SynapseClientError
from reputation_storage.errors import TransferError

PAYLOAD = ("hello world padded to more than one hundred and twenty seven bytes " * 3).encode("utf-8")


class UploadTests(unittest.TestCase):
    def test_returns_piece_cid_and_size(self):
        client = FakeSynapseClient()

        result = transfer.upload(client, PAYLOAD)

        self.assertTrue(result.piece_cid.startswith("bafkzcibd"))
        self.assertEqual(result.size, len(PAYLOAD))
        self.assertEqual(client.storage.upload_calls, [PAYLOAD])

    def test_below_minimum_size_surfaces_client_rejection(self):
        client = FakeSynapseClient()

        with self.assertRaises(TransferError) as ctx:
            transfer.upload(client, b"too small")

        self.assertEqual(ctx.exception.message, "Data size 9 bytes is below the minimum upload size of 127 bytes")
        self.assertEqual(ctx.exception.operation, "upload")
        self.assertEqual(len(client.storage.upload_calls), 1)

    def test_client_failure_is_not_retried(self):
        client = FakeSynapseClient(upload_error=SynapseClientError("provider unavailable", cause="503"))

        with self.assertRaises(TransferError) as ctx:
            transfer.upload(client, PAYLOAD)

        self.assertEqual(ctx.exception.cause, "503")
        self.assertEqual(len(client.storage.upload_calls), 1)


class DownloadTests(unittest.TestCase):
    def test_round_trip_returns_uploaded_bytes(self):
        client = FakeSynapseClient()

        uploaded = transfer.upload(client, PAYLOAD)
        downloaded = transfer.download(client, uploaded.piece_cid)

        self.assertEqual(downloaded.data, PAYLOAD)
        self.assertEqual(downloaded.size, len(PAYLOAD))
        self.assertEqual(downloaded.piece_cid, uploaded.piece_cid)

    def test_download_is_repeatable(self):
        client = FakeSynapseClient()
        uploaded = transfer.upload(client, PAYLOAD)

        first = transfer.download(client, uploaded.piece_cid)
        second = transfer.download(client, uploaded.piece_cid)

        self.assertEqual(first, second)

    def test_missing_piece_raises_transfer_error(self):
        client = FakeSynapseClient()

        with self.assertRaises(TransferError) as ctx:
            transfer.download(client, "bafkzcibdmissing")

        self.assertEqual(ctx.exception.message, "Piece not found: bafkzcibdmissing")
        self.assertEqual(ctx.exception.operation, "download")


class UploadThenDownloadTests(unittest.TestCase):
    def test_download_waits_for_upload(self):
        client = FakeSynapseClient()

        uploaded, downloaded = transfer.upload_then_download(client, PAYLOAD)

        self.assertEqual(client.log, ["upload", "download"])
        self.assertEqual(client.storage.download_calls, [uploaded.piece_cid])
        self.assertEqual(downloaded.data, PAYLOAD)

    def test_failed_upload_skips_download(self):
        client = FakeSynapseClient()

        with self.assertRaises(TransferError):
            transfer.upload_then_download(client, b"short")

        self.assertEqual(client.storage.download_calls, [])
