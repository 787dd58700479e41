"""Cookie binding for session tokens and the site-wide gate marker."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from flask import Response

SAMESITE = "Lax"
COOKIE_PATH = "/"


@dataclass(frozen=True)
class CookieBinding:
    """
    One named cookie with a fixed attribute set.

    ``attach`` and ``detach`` share every attribute except value and lifetime;
    a clear with mismatched flags is silently ignored by browsers.
    """

    name: str
    max_age: int
    secure: bool = True

    def _set(self, response: Response, value: str, max_age: int) -> None:
        response.set_cookie(
            self.name,
            value,
            max_age=max_age,
            expires=0 if max_age == 0 else None,
            path=COOKIE_PATH,
            secure=self.secure,
            httponly=True,
            samesite=SAMESITE,
        )

    def attach(self, response: Response, value: str) -> None:
        self._set(response, value, self.max_age)

    def detach(self, response: Response) -> None:
        self._set(response, "", 0)

    def read(self, cookies: Mapping[str, str]) -> Optional[str]:
        """Cookie value, or None when absent or empty."""
        value = cookies.get(self.name)
        return value or None
