"""
LNURL-auth signature verification (secp256k1 ECDSA).

Wallets sign ``k1`` directly as the 32-byte digest with their linking key.
Malformed input and bad signatures are indistinguishable to callers: both
just return False.
"""

import logging
from typing import Optional

from coincurve import PublicKey

from sphinx_bounties.utils import decode_hex

logger = logging.getLogger(__name__)

K1_LENGTH = 32
PUBKEY_LENGTH = 33
COMPACT_SIG_LENGTH = 64
MIN_DER_LENGTH = 8
MAX_DER_LENGTH = 72


# ----------------- helpers for sig verify -----------------
def _strip_leading_zeros(x: bytes) -> bytes:
    return x.lstrip(b"\x00") or b"\x00"


def _ensure_positive_int(x: bytes) -> bytes:
    return (b"\x00" + x) if x[0] & 0x80 else x


def _encode_der_integer(x: bytes) -> bytes:
    x = _strip_leading_zeros(x)
    x = _ensure_positive_int(x)
    return b"\x02" + bytes([len(x)]) + x


def _rs_to_der(r: bytes, s: bytes) -> bytes:
    R = _encode_der_integer(r)
    S = _encode_der_integer(s)
    seq = R + S
    return b"\x30" + bytes([len(seq)]) + seq


def _normalize_signature(sig: bytes) -> Optional[bytes]:
    """Return a DER signature, converting 64-byte compact ``r||s`` form."""
    # A short DER signature can also be 64 bytes long; its header disambiguates.
    if MIN_DER_LENGTH <= len(sig) <= MAX_DER_LENGTH and sig[0] == 0x30 and sig[1] == len(sig) - 2:
        return sig
    if len(sig) == COMPACT_SIG_LENGTH:
        return _rs_to_der(sig[:32], sig[32:])
    return None


def _log_failure(reason: str, k1: str, sig: str, key: str) -> None:
    logger.info(
        "LNURL-auth verify failed: reason=%s k1_len=%d sig_len=%d key_len=%d",
        reason,
        len(k1) if isinstance(k1, str) else -1,
        len(sig) if isinstance(sig, str) else -1,
        len(key) if isinstance(key, str) else -1,
    )


def verify_signature(k1: str, sig: str, key: str) -> bool:
    """
    Verify an LNURL-auth signature.

    Args:
        k1: Challenge, 64 hex characters
        sig: DER (or 64-byte compact) signature, hex
        key: Compressed secp256k1 linking public key, 66 hex characters

    Returns:
        True only if ``sig`` is a valid signature of ``k1`` under ``key``
    """
    k1_bytes = decode_hex(k1)
    sig_bytes = decode_hex(sig)
    key_bytes = decode_hex(key)

    if k1_bytes is None or sig_bytes is None or key_bytes is None:
        _log_failure("malformed_hex", k1, sig, key)
        return False

    if len(k1_bytes) != K1_LENGTH or len(key_bytes) != PUBKEY_LENGTH or key_bytes[0] not in (2, 3):
        _log_failure("bad_length", k1, sig, key)
        return False

    der_sig = _normalize_signature(sig_bytes)
    if der_sig is None:
        _log_failure("bad_signature_encoding", k1, sig, key)
        return False

    try:
        verified = PublicKey(key_bytes).verify(der_sig, k1_bytes, hasher=None)
    except Exception as e:
        # coincurve raises on points off the curve and unparsable DER
        _log_failure(f"crypto_error:{e.__class__.__name__}", k1, sig, key)
        return False

    if not verified:
        _log_failure("invalid_signature", k1, sig, key)
    logger.debug("LNURL-auth verify → %s", verified)
    return bool(verified)
