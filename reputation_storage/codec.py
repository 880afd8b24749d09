"""Text payload <-> bytes conversion for uploads and downloaded previews."""

from __future__ import annotations

from reputation_storage.errors import DecodeError


def encode(text: str) -> bytes:
    # base64 image payloads are stored as their text form, never decoded here
    return text.encode("utf-8")


def decode(data: bytes) -> str:
    try:
        return bytes(data).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError("Downloaded data is not valid UTF-8 text", cause=exc) from exc


def preview(text: str, limit: int) -> str:
    if limit <= 0:
        return ""
    return text[:limit]
