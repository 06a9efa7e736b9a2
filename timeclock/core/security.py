"""Bearer tokens for API clients.

Browsers carry the signed session cookie instead; both end up naming the same
``uid`` the identity provider issued.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from .config import AppSettings

ALGORITHM = "HS256"
AUDIENCE = "timeclock-api"
ISSUER = "timeclock"

ACCESS = "access"
REFRESH = "refresh"


class InvalidToken(ValueError):
    pass


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class TokenClaims(BaseModel):
    sub: str
    typ: str
    exp: datetime
    iat: datetime
    email: str | None = None


class TokenIssuer:
    """Signs and checks access/refresh pairs with one shared secret."""

    def __init__(self, secret: str, *, access_ttl: timedelta, refresh_ttl: timedelta) -> None:
        self._secret = secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "TokenIssuer":
        return cls(
            settings.JWT_SECRET,
            access_ttl=timedelta(minutes=settings.JWT_ACCESS_TTL_MIN),
            refresh_ttl=timedelta(days=settings.JWT_REFRESH_TTL_DAYS),
        )

    def _sign(self, uid: str, kind: str, ttl: timedelta, email: str | None) -> str:
        issued = datetime.now(tz=timezone.utc)
        claims = {
            "sub": uid,
            "typ": kind,
            "iat": int(issued.timestamp()),
            "exp": int((issued + ttl).timestamp()),
            "aud": AUDIENCE,
            "iss": ISSUER,
        }
        if email:
            claims["email"] = email
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def issue(self, uid: str, email: str | None = None) -> TokenPair:
        return TokenPair(
            access_token=self._sign(uid, ACCESS, self.access_ttl, email),
            refresh_token=self._sign(uid, REFRESH, self.refresh_ttl, email),
            expires_in=int(self.access_ttl.total_seconds()),
        )

    def verify(self, token: str, *, kind: str = ACCESS) -> TokenClaims:
        """Return the claims of a valid ``kind`` token or raise ``InvalidToken``."""
        try:
            raw = jwt.decode(token, self._secret, algorithms=[ALGORITHM], audience=AUDIENCE, issuer=ISSUER)
            claims = TokenClaims.model_validate(raw)
        except (JWTError, ValidationError) as exc:
            raise InvalidToken("Invalid token") from exc
        if claims.typ != kind:
            raise InvalidToken(f"Expected a {kind} token")
        return claims
