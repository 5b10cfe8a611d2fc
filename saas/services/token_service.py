"""
Token Service

Issues and validates the two token classes used by the API:

  - access tokens: short lived, presented on every request
  - refresh tokens: long lived, exchanged for a new access token

Both classes share one claim shape (user_id, tenant_id, iss, iat, exp, nbf)
and are signed with HS256. Each class has its own secret and issuer, so a
token of one class never validates as the other.

Validation runs in a fixed order and reports the first failing stage:
header, algorithm, signature, registered claims (iat, nbf, exp, iss),
claim shape. Registered claims are checked by python-jose against the
current time.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jws, jwt
from jose.exceptions import ExpiredSignatureError, JOSEError, JWSError, JWTClaimsError, JWTError

from saas.config import Settings, get_settings
from saas.constants.auth import ALGORITHM, TENANT_ID_CLAIM, TOKEN_TYPE, USER_ID_CLAIM
from saas.exceptions import (
    BadSignatureError,
    InvalidArgumentError,
    InvalidRefreshTokenError,
    InvalidTokenError,
    MalformedTokenError,
    SigningFailureError,
    TokenExpiredError,
    WrongIssuerError,
)

logger = logging.getLogger(__name__)

ACCESS_PROFILE = "access"
REFRESH_PROFILE = "refresh"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenProfile:
    """Signing parameters for one token class."""

    name: str
    secret: str
    issuer: str
    lifetime: int  # seconds

    def __repr__(self) -> str:
        return f"TokenProfile(name={self.name!r}, issuer={self.issuer!r}, lifetime={self.lifetime})"


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    tenant_id: int | str
    issuer: str
    issued_at: datetime
    expires_at: datetime
    not_before: datetime


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = TOKEN_TYPE


def _timestamp(value: datetime) -> int:
    return int(value.timestamp())


def _from_timestamp(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _check_subject(user_id: Any, tenant_id: Any) -> None:
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        raise InvalidArgumentError(f"Invalid user id: {user_id!r}", field="user_id")
    if isinstance(tenant_id, bool) or not isinstance(tenant_id, (int, str)) or tenant_id == "":
        raise InvalidArgumentError(f"Invalid tenant id: {tenant_id!r}", field="tenant_id")


class TokenService:
    def __init__(
        self,
        access: TokenProfile,
        refresh: TokenProfile,
        leeway: int = 0,
    ) -> None:
        if access.secret == refresh.secret or access.issuer == refresh.issuer:
            raise InvalidArgumentError("Access and refresh tokens must use distinct secrets and issuers")
        self.access = access
        self.refresh_profile = refresh
        self.leeway = leeway

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "TokenService":
        settings = settings or get_settings()
        return cls(
            access=TokenProfile(
                name=ACCESS_PROFILE,
                secret=settings.access_secret_key,
                issuer=settings.access_issuer,
                lifetime=settings.access_expire_seconds,
            ),
            refresh=TokenProfile(
                name=REFRESH_PROFILE,
                secret=settings.refresh_secret_key,
                issuer=settings.refresh_issuer,
                lifetime=settings.refresh_expire_seconds,
            ),
            leeway=settings.token_leeway_seconds,
        )

    # ── Issuing ──────────────────────────────────────────────────────────────

    def issue_tokens(self, user_id: int, tenant_id: int | str) -> TokenPair:
        """
        Mint an access/refresh pair for *user_id* in *tenant_id*.

        Raises:
            InvalidArgumentError: user_id or tenant_id has the wrong type
            SigningFailureError: either token could not be signed
        """
        _check_subject(user_id, tenant_id)
        access_token = self._sign(self.access, user_id, tenant_id)
        refresh_token = self._sign(self.refresh_profile, user_id, tenant_id)
        return TokenPair(access_token=access_token, refresh_token=refresh_token, expires_in=self.access.lifetime)

    def issue_access_token(self, user_id: int, tenant_id: int | str) -> str:
        _check_subject(user_id, tenant_id)
        return self._sign(self.access, user_id, tenant_id)

    # ── Validation ───────────────────────────────────────────────────────────

    def validate_access(self, token: str) -> TokenClaims:
        return self._validate(self.access, token)

    def validate_refresh(self, token: str) -> TokenClaims:
        return self._validate(self.refresh_profile, token)

    def refresh(self, refresh_token: str) -> str:
        """
        Exchange a valid refresh token for a fresh access token carrying the
        same user and tenant. The refresh token itself is not rotated.

        Raises:
            InvalidRefreshTokenError: the refresh token failed validation
        """
        try:
            claims = self.validate_refresh(refresh_token)
        except InvalidTokenError as exc:
            raise InvalidRefreshTokenError(reason=exc.error_code.value) from exc
        return self.issue_access_token(claims.user_id, claims.tenant_id)

    # ── Internals ────────────────────────────────────────────────────────────

    def _sign(self, profile: TokenProfile, user_id: int, tenant_id: int | str) -> str:
        if not profile.secret:
            raise SigningFailureError(f"No signing secret configured for {profile.name} tokens")
        now = utcnow()
        claims = {
            USER_ID_CLAIM: user_id,
            TENANT_ID_CLAIM: tenant_id,
            "iss": profile.issuer,
            "iat": _timestamp(now),
            "nbf": _timestamp(now),
            "exp": _timestamp(now + timedelta(seconds=profile.lifetime)),
        }
        try:
            return jwt.encode(claims, profile.secret, algorithm=ALGORITHM)
        except JOSEError as exc:
            logger.error("Failed to sign %s token: %s", profile.name, exc)
            raise SigningFailureError(f"Failed to sign {profile.name} token") from exc

    def _validate(self, profile: TokenProfile, token: str) -> TokenClaims:
        try:
            return self._decode(profile, token)
        except InvalidTokenError as exc:
            logger.warning("Rejected %s token: %s", profile.name, exc.error_code.value)
            raise

    def _decode(self, profile: TokenProfile, token: str) -> TokenClaims:
        if not isinstance(token, str) or not token:
            raise MalformedTokenError("Token is empty")

        try:
            header = jwt.get_unverified_header(token)
        except JOSEError as exc:
            raise MalformedTokenError("Token header could not be decoded") from exc
        if header.get("alg") != ALGORITHM:
            raise BadSignatureError(f"Unexpected signing algorithm: {header.get('alg')!r}")

        try:
            jws.verify(token, profile.secret, algorithms=[ALGORITHM])
        except JWSError as exc:
            raise BadSignatureError() from exc

        try:
            claims = jwt.decode(
                token,
                profile.secret,
                algorithms=[ALGORITHM],
                issuer=profile.issuer,
                options={"leeway": self.leeway, "require_iat": True, "require_nbf": True, "require_exp": True},
            )
        except ExpiredSignatureError as exc:
            raise TokenExpiredError() from exc
        except JWTClaimsError as exc:
            message = str(exc)
            if "not yet valid" in message:
                raise TokenExpiredError("Token is not yet valid") from exc
            if message == "Invalid issuer":
                raise WrongIssuerError(profile.issuer, jwt.get_unverified_claims(token).get("iss")) from exc
            raise MalformedTokenError(f"Token claims are invalid: {message}") from exc
        except (JWTError, TypeError, ValueError) as exc:
            # jose lets TypeError escape for non-scalar time claims
            raise MalformedTokenError("Token claims could not be decoded") from exc

        user_id = claims.get(USER_ID_CLAIM)
        tenant_id = claims.get(TENANT_ID_CLAIM)
        try:
            _check_subject(user_id, tenant_id)
        except InvalidArgumentError as exc:
            raise MalformedTokenError(f"Token carries an invalid {exc.details.get('field')} claim") from exc

        try:
            issued_at = _from_timestamp(claims["iat"])
            not_before = _from_timestamp(claims["nbf"])
            expires_at = _from_timestamp(claims["exp"])
        except (OverflowError, OSError, ValueError) as exc:
            raise MalformedTokenError("Token time claims are out of range") from exc

        return TokenClaims(
            user_id=user_id,
            tenant_id=tenant_id,
            issuer=claims["iss"],
            issued_at=issued_at,
            expires_at=expires_at,
            not_before=not_before,
        )
