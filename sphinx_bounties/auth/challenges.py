"""
LNURL-auth challenge lifecycle: issue, poll, complete, claim.

Created on login initiation, completed at most once by a wallet callback,
polled by the browser until it sees the bound pubkey, then claimed once by
that browser for a session. Expired and used challenges are terminal.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sphinx_bounties import db_storage
from sphinx_bounties.auth.lnurl import build_callback_url, encode_lnurl, generate_k1, sphinx_deep_link
from sphinx_bounties.auth.signature import verify_signature
from sphinx_bounties.errors import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidSignatureError,
    NotFoundError,
    ValidationError,
)
from sphinx_bounties.utils import (
    is_valid_pubkey,
    normalize_pubkey,
    secure_random_hex,
    short_pubkey,
    validate_hex_format,
)

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


@dataclass(frozen=True)
class IssuedChallenge:
    k1: str
    lnurl: str
    callback_url: str
    deep_link: str
    expires_at: datetime
    # Handed to the issuing browser only (cookie), never in the JSON payload.
    claim_token: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "k1": self.k1,
            "lnurl": self.lnurl,
            "sphinxDeepLink": self.deep_link,
            "expiresAt": self.expires_at.isoformat(),
        }


@dataclass(frozen=True)
class ChallengeStatus:
    authenticated: bool
    pubkey: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"authenticated": self.authenticated, "pubkey": self.pubkey}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hash_claim_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_challenge(
    base_url: str,
    host: str,
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
    now: Optional[datetime] = None,
) -> IssuedChallenge:
    """
    Issue and persist a new login challenge.

    Args:
        base_url: Scheme + host the wallet calls back
        host: Host advertised in the Sphinx deep link
        ttl_seconds: Challenge lifetime
    """
    now = now or _utcnow()
    k1 = generate_k1()
    claim_token = secure_random_hex(32)
    expires_at = now + timedelta(seconds=ttl_seconds)

    db_storage.store_auth_challenge(k1, expires_at, claim_token_hash=hash_claim_token(claim_token))

    callback_url = build_callback_url(base_url, k1)
    return IssuedChallenge(
        k1=k1,
        lnurl=encode_lnurl(callback_url),
        callback_url=callback_url,
        deep_link=sphinx_deep_link(host, k1, now=now.timestamp()),
        expires_at=expires_at,
        claim_token=claim_token,
    )


def _load_live_challenge(k1: str, now: datetime) -> Dict[str, Any]:
    challenge = db_storage.get_auth_challenge(k1.lower()) if validate_hex_format(k1, 64) else None
    if not challenge:
        raise NotFoundError("Challenge not found")
    if challenge["expires_at"] <= now:
        raise ExpiredError("Challenge expired")
    return challenge


def check_status(k1: str, now: Optional[datetime] = None) -> ChallengeStatus:
    """
    Report whether a wallet has completed the challenge. Read-only.

    Raises:
        NotFoundError: Unknown (or malformed) k1
        ExpiredError: Challenge past its expiry
    """
    challenge = _load_live_challenge(k1, now or _utcnow())
    pubkey = challenge["pubkey"]
    return ChallengeStatus(authenticated=bool(pubkey), pubkey=pubkey or None)


def complete_challenge(k1: Any, sig: Any, key: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Verify a wallet's signature and bind its pubkey to the challenge.

    Returns:
        The logged-in user's data

    Raises:
        ValidationError: Malformed k1/key or missing signature
        NotFoundError: Unknown k1
        ExpiredError: Challenge past its expiry
        ConflictError: Challenge already completed (including losing a concurrent race)
        InvalidSignatureError: Signature does not verify
    """
    if not validate_hex_format(k1, 64):
        raise ValidationError("k1 must be 64 hex characters (32 bytes)")
    if not is_valid_pubkey(key):
        raise ValidationError("Invalid public key format")
    if not sig or not isinstance(sig, str):
        raise ValidationError("Signature is required")

    now = now or _utcnow()
    k1 = k1.lower()
    pubkey = normalize_pubkey(key)

    challenge = _load_live_challenge(k1, now)
    if challenge["used"]:
        raise ConflictError("Challenge already used")

    if not verify_signature(k1, sig.strip(), pubkey):
        raise InvalidSignatureError()

    if not db_storage.complete_auth_challenge(k1, pubkey, now=now):
        # Lost the race, or expired between the read and the update.
        current = db_storage.get_auth_challenge(k1)
        if current and not current["used"] and current["expires_at"] <= now:
            raise ExpiredError("Challenge expired")
        raise ConflictError("Challenge already used")

    logger.info(f"Challenge completed: k1={k1[:8]}... pubkey={short_pubkey(pubkey)}")
    return db_storage.record_login(pubkey)


def claim_session(k1: Any, claim_token: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Hand the session for a wallet-completed challenge to the browser that issued it.

    The wallet's callback carries the signature but not the browser's cookies,
    so the browser proves it issued the challenge with its claim token and
    then takes the session exactly once.

    Returns:
        The logged-in user's data

    Raises:
        ValidationError: Malformed k1
        NotFoundError: Unknown k1, or the bound user is gone
        ExpiredError: Challenge past its expiry
        ForbiddenError: Claim token missing or not the issuing browser's
        ConflictError: Not completed yet, or already claimed
    """
    if not validate_hex_format(k1, 64):
        raise ValidationError("k1 must be 64 hex characters (32 bytes)")

    now = now or _utcnow()
    k1 = k1.lower()
    challenge = _load_live_challenge(k1, now)

    expected = challenge["claim_token_hash"]
    if not claim_token or not expected or not hmac.compare_digest(hash_claim_token(claim_token), expected):
        raise ForbiddenError("Challenge was issued to another browser")
    if not challenge["used"]:
        raise ConflictError("Challenge not completed yet")
    if challenge["claimed"] or not db_storage.claim_auth_challenge(k1, now=now):
        raise ConflictError("Session already claimed")

    user = db_storage.get_user_by_pubkey(challenge["pubkey"])
    if user is None:
        raise NotFoundError("User not found")

    logger.info(f"Session claimed: k1={k1[:8]}... pubkey={short_pubkey(user['pubkey'])}")
    return user
