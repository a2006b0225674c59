"""
k8xauth.identity.token

Bearer token value object and the token sources that produce it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

from .exceptions import InvalidTokenError


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def expiry_from_jwt(token: str) -> datetime:
    """
    Read the ``exp`` claim of a JWT without verifying its signature.

    The token was issued by the platform we are running on and is verified by
    the target cloud when it is redeemed, so only the claims are needed here.

    Args:
        token: Compact serialized JWT

    Returns:
        datetime: Expiry as an aware UTC datetime

    Raises:
        InvalidTokenError: If the token cannot be decoded or has no usable exp
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.DecodeError as e:
        raise InvalidTokenError(f"Failed to decode identity token: {e}")

    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        raise InvalidTokenError("Identity token does not contain a numeric 'exp' claim")
    return datetime.fromtimestamp(exp, tz=timezone.utc)


@dataclass(frozen=True)
class IdentityToken:
    """An opaque bearer token and the moment it stops being valid."""

    access_token: str
    expiry: datetime

    def expires_within(self, margin: timedelta, now: Optional[datetime] = None) -> bool:
        """Return True if the token expires before ``now + margin``."""
        now = now or utc_now()
        return now + margin >= self.expiry


class TokenSource(ABC):
    """Produces identity tokens, refreshing them as needed."""

    @abstractmethod
    def token(self) -> IdentityToken:
        """
        Return a token that is valid at the time of the call.

        Raises:
            IdentityProviderError: If no token can be produced
        """
        pass


class StaticTokenSource(TokenSource):
    """Always returns the same token."""

    def __init__(self, token: IdentityToken):
        self._token = token

    def token(self) -> IdentityToken:
        return self._token


class ReuseTokenSource(TokenSource):
    """
    Caches the token of another source until shortly before it expires.

    Once ``now >= expiry - early_expiry`` the wrapped source is asked again.
    """

    def __init__(
        self,
        base: TokenSource,
        early_expiry: timedelta = timedelta(seconds=60),
        clock: Callable[[], datetime] = utc_now,
    ):
        self._base = base
        self._early_expiry = early_expiry
        self._clock = clock
        self._token: Optional[IdentityToken] = None

    def token(self) -> IdentityToken:
        if self._token is None or self._token.expires_within(
            self._early_expiry, now=self._clock()
        ):
            self._token = self._base.token()
        return self._token
