"""
LNURL-auth encoding helpers.

Builds the wallet callback URL for a challenge, bech32-encodes it as an
LNURL (LUD-01) and produces the Sphinx app deep link.
"""

import time
from io import BytesIO
from typing import Optional
from urllib.parse import urlencode

import qrcode
from bech32 import bech32_decode, bech32_encode, convertbits

from sphinx_bounties.errors import ValidationError
from sphinx_bounties.utils import secure_random_hex

LNURL_HRP = "lnurl"
K1_BYTES = 32
VERIFY_PATH = "/api/auth/verify"


def generate_k1() -> str:
    """32 random bytes, hex-encoded (64 characters)."""
    return secure_random_hex(K1_BYTES)


def build_callback_url(base_url: str, k1: str) -> str:
    """
    Wallet callback URL for a challenge.

    Args:
        base_url: Scheme and host the wallet should call back, e.g. ``https://bounties.example``
        k1: Challenge hex

    Returns:
        ``<base>/api/auth/verify?tag=login&k1=<k1>&action=login``
    """
    query = urlencode({"tag": "login", "k1": k1, "action": "login"})
    return f"{base_url.rstrip('/')}{VERIFY_PATH}?{query}"


def encode_lnurl(url: str) -> str:
    """Encode a URL as an uppercase bech32 LNURL (uppercase keeps QR codes in alphanumeric mode)."""
    words = convertbits(url.encode("utf-8"), 8, 5)
    return bech32_encode(LNURL_HRP, words).upper()


def decode_lnurl(lnurl: str) -> str:
    """
    Decode a bech32 LNURL back to its URL.

    Raises:
        ValidationError: On a bad checksum, wrong prefix or malformed payload
    """
    # bech32_decode enforces BIP-173's 90 character limit, which LNURLs routinely exceed.
    hrp, words = _bech32_decode_unbounded(lnurl.strip())
    if hrp != LNURL_HRP or words is None:
        raise ValidationError("Invalid LNURL")

    data = convertbits(words, 5, 8, False)
    if data is None:
        raise ValidationError("Invalid LNURL")
    return bytes(data).decode("utf-8")


def _bech32_decode_unbounded(value: str):
    if len(value) <= 90:
        return bech32_decode(value)

    # Same validation as bech32_decode without the length cap: decode the
    # checksum over a re-encoded copy.
    lowered = value.lower()
    if lowered != value and value.upper() != value:
        return None, None
    pos = lowered.rfind("1")
    if pos < 1 or pos + 7 > len(lowered):
        return None, None
    hrp = lowered[:pos]
    charset = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
    try:
        data = [charset.index(c) for c in lowered[pos + 1:]]
    except ValueError:
        return None, None
    words = data[:-6]
    if bech32_encode(hrp, words) != lowered:
        return None, None
    return hrp, words


def sphinx_deep_link(host: str, k1: str, now: Optional[float] = None) -> str:
    """
    Deep link that opens the Sphinx app on the auth prompt.

    The ``ts`` parameter is informational; it is never checked when the
    challenge is completed (challenge expiry is the only time bound).
    """
    timestamp_ms = int((time.time() if now is None else now) * 1000)
    return f"sphinx.chat://?action=auth&host={host}&challenge={k1}&ts={timestamp_ms}"


def make_qr_png(data: str) -> bytes:
    """PNG QR code for ``data`` (the uppercase LNURL)."""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=2,
    )
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image()
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
