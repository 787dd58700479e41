"""
Utility functions for Sphinx Bounties authentication

Shared helpers for input validation and hex handling.
"""

import re
import secrets
from typing import Optional

COMPRESSED_PUBKEY_RE = re.compile(r"^0[23][0-9a-fA-F]{64}$")
HEX_RE = re.compile(r"^(?:[0-9a-fA-F]{2})*$")


def is_valid_pubkey(pubkey: Optional[str]) -> bool:
    """
    Validate public key format.

    Args:
        pubkey: Hex-encoded 33-byte compressed secp256k1 public key

    Returns:
        True if valid format
    """
    if not pubkey or not isinstance(pubkey, str):
        return False
    return bool(COMPRESSED_PUBKEY_RE.fullmatch(pubkey))


def normalize_pubkey(pubkey: str) -> str:
    """Lowercase a public key so lookups and allow-lists compare equal."""
    return pubkey.strip().lower()


def validate_hex_format(value: Optional[str], length: int) -> bool:
    """
    Validate hexadecimal string format.

    Args:
        value: String to validate
        length: Expected hex string length

    Returns:
        True if valid hex string of specified length
    """
    if not value or not isinstance(value, str):
        return False
    return bool(re.fullmatch(r"[0-9a-fA-F]{{{}}}".format(length), value))


def decode_hex(value: Optional[str]) -> Optional[bytes]:
    """
    Decode a hex string (optionally ``0x`` prefixed) to bytes.

    Returns:
        The decoded bytes, or None for odd-length or non-hex input
    """
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if cleaned[:2].lower() == "0x":
        cleaned = cleaned[2:]
    if not cleaned or not HEX_RE.fullmatch(cleaned):
        return None
    return bytes.fromhex(cleaned)


def secure_random_hex(nbytes: int = 32) -> str:
    """
    Generate cryptographically secure random hex string.

    Args:
        nbytes: Number of random bytes

    Returns:
        Hex-encoded random string
    """
    return secrets.token_hex(nbytes)


def short_pubkey(pubkey: Optional[str]) -> str:
    """Truncated pubkey for log lines."""
    if not pubkey:
        return "-"
    return f"{pubkey[:16]}..."
