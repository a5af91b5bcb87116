import binascii
from typing import Any

from fido2.utils import websafe_decode, websafe_encode


def b64url_encode(value: bytes) -> str:
    """Encode bytes as base64url without padding, the WebAuthn wire format."""
    return websafe_encode(value)


def b64url_decode(value: str) -> bytes:
    """
    Decode a base64url string (padding optional).

    Raises ValueError on anything that is not valid base64url.
    """
    if not isinstance(value, str):
        raise ValueError("Expected a base64url string")
    try:
        return websafe_decode(value)
    except (binascii.Error, ValueError, UnicodeEncodeError) as exc:
        raise ValueError(f"Invalid base64url value: {exc}") from exc


def webauthn_json_bytes_to_bytes(value: Any) -> bytes:
    """
    Convert a JSON WebAuthn binary field into raw bytes.

    Supported inputs:
    - list[int]: JSON byte array
    - str: base64url (padding optional)
    """
    if isinstance(value, list):
        try:
            return bytes(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("Invalid byte array") from exc

    if isinstance(value, str):
        return b64url_decode(value)

    raise ValueError("Unsupported WebAuthn binary value type")
