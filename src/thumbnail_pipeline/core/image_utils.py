"""Payload sizing, naming and formatting helpers for the thumbnail pipeline."""

import base64
from typing import Union

from .models import OutputFormat

DEFAULT_BASE_NAME = "image"

Payload = Union[bytes, str]


def strip_extension(name: str) -> str:
    """
    Remove the last extension from a file name.

    Names without a dot, or that only start with one (".hidden"), are returned
    unchanged.
    """
    index = name.rfind(".")
    if index <= 0:
        return name
    return name[:index]


def final_name(base_name: str, output_format: OutputFormat) -> str:
    """Build the display name of a thumbnail from a base name and its format."""
    return f"{base_name or DEFAULT_BASE_NAME}.{output_format.extension}"


def payload_size(payload: Payload) -> int:
    """
    Size in bytes of an encoded thumbnail.

    Binary payloads report their exact length. Text payloads are taken to be
    base64 (optionally a ``data:`` URL) and report ``round(len(body) * 0.75)``.

    Args:
        payload: Encoded thumbnail as bytes or base64 text

    Returns:
        Size of the payload in bytes
    """
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return len(payload)
    body = payload[payload.index(",") + 1 :] if "," in payload else payload
    return round(len(body) * 0.75)


def to_data_url(payload: bytes, output_format: OutputFormat) -> str:
    """Encode thumbnail bytes as a ``data:`` URL for display collaborators."""
    encoded = base64.b64encode(payload).decode("ascii")
    return f"data:{output_format.value};base64,{encoded}"


def from_data_url(data_url: str) -> bytes:
    """Decode a ``data:`` URL (or bare base64 text) back into bytes."""
    body = data_url[data_url.index(",") + 1 :] if "," in data_url else data_url
    return base64.b64decode(body)


def format_bytes(size: int) -> str:
    """Human readable byte count, e.g. ``1.5 KB``."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    exponent = 0
    while size >= 1024 ** (exponent + 1) and exponent < len(units) - 1:
        exponent += 1
    value = round(size / 1024**exponent, 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {units[exponent]}"
