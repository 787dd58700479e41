"""Signed session tokens (HS256 JWTs) binding a pubkey to an expiry."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import jwt

from sphinx_bounties.errors import ValidationError
from sphinx_bounties.utils import is_valid_pubkey, normalize_pubkey

logger = logging.getLogger(__name__)

_SUPPORTED_ALGORITHMS = {"HS256", "HS384", "HS512"}


@dataclass(frozen=True)
class SessionClaims:
    pubkey: str
    iat: int
    exp: int
    jti: str


class SessionCodec:
    """
    Mint and validate session tokens.

    The token is self-contained: validity is a signature and expiry check,
    the server keeps no session record.

    Example:
        codec = SessionCodec(secret, validity_seconds=7 * 24 * 3600)
        token = codec.mint(pubkey)
        claims = codec.validate(token)
    """

    def __init__(
        self,
        secret: str,
        validity_seconds: int,
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("Session signing secret must not be empty")
        if validity_seconds <= 0:
            raise ValueError("validity_seconds must be positive")
        algorithm = algorithm.upper()
        if algorithm not in _SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported session token algorithm {algorithm!r}")

        self._secret = secret
        self.validity_seconds = int(validity_seconds)
        self.algorithm = algorithm
        self._clock = clock

    def __repr__(self) -> str:
        return f"<SessionCodec(alg={self.algorithm}, validity={self.validity_seconds}s)>"

    def mint(self, pubkey: str) -> str:
        """Issue a token asserting ``{pubkey, exp}``."""
        if not is_valid_pubkey(pubkey):
            raise ValidationError("Invalid public key format")

        now = int(self._clock())
        payload: Dict[str, Any] = {
            "pubkey": normalize_pubkey(pubkey),
            "iat": now,
            "exp": now + self.validity_seconds,
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def validate(self, token: Optional[str]) -> Optional[SessionClaims]:
        """
        Verify signature, expiry and claim shapes.

        Returns:
            SessionClaims, or None for any tampered, malformed or expired token
        """
        if not token or not isinstance(token, str):
            return None

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={
                    "require": ["exp", "iat", "pubkey", "jti"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as e:
            logger.debug(f"Session token rejected: {e.__class__.__name__}")
            return None

        pubkey = payload.get("pubkey")
        exp = payload.get("exp")
        iat = payload.get("iat")
        jti = payload.get("jti")
        if not is_valid_pubkey(pubkey) or not isinstance(jti, str):
            return None
        if not isinstance(exp, int) or not isinstance(iat, int) or isinstance(exp, bool):
            return None

        # Expiry is checked against the injected clock, not PyJWT's wall clock.
        if exp <= int(self._clock()):
            return None

        return SessionClaims(pubkey=normalize_pubkey(pubkey), iat=iat, exp=exp, jti=jti)


__all__ = ["SessionClaims", "SessionCodec"]
