"""
JSON encoder/decoder for wire format communication.

Every frame is a UTF-8 JSON object carrying a `type` discriminator.
"""

import json
from typing import Any

# Size limit to prevent resource exhaustion from malicious payloads.
MAX_FRAME_LEN = 64 * 1024


class DecodeError(Exception):
    """Error raised when a frame is not a JSON object."""


def encode(data: dict[str, Any]) -> str:
    """
    Encode a dict to a compact JSON string.
    """
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def decode(raw: str | bytes) -> dict[str, Any]:
    """
    Decode a text frame to a dict.

    Raises DecodeError if the frame is invalid JSON, not an object, or too large.
    """
    if len(raw) > MAX_FRAME_LEN:
        raise DecodeError(f"payload too large: {len(raw)} bytes (max {MAX_FRAME_LEN})")
    try:
        result = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"Invalid message format: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected object, got {type(result).__name__}")

    return result
