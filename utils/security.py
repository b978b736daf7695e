"""
security helpers:
- Argon2 password hashing via argon2-cffi (CredentialVerifier)
- JWT access token issue/verification via PyJWT (AccessTokenCodec)
- opaque refresh token values from the OS CSPRNG
"""
from __future__ import annotations

import base64
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from utils.exceptions import InvalidAccessToken

HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")
REFRESH_TOKEN_BYTES = 64
MIN_SECRET_BYTES = 32


@dataclass(frozen=True)
class AuthSettings:
    """Token settings, frozen once the app factory has read the config."""

    secret: str
    issuer: str
    audience: str
    access_ttl: timedelta = timedelta(minutes=60)
    refresh_ttl: timedelta = timedelta(days=7)
    algorithm: str = "HS256"
    leeway: int = 0

    def __post_init__(self):
        if self.algorithm not in HMAC_ALGORITHMS:
            raise ValueError(f"Unsupported JWT algorithm: {self.algorithm}")
        if len(self.secret.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ValueError(f"JWT secret must be at least {MIN_SECRET_BYTES} bytes")
        if self.access_ttl <= timedelta(0) or self.refresh_ttl <= timedelta(0):
            raise ValueError("Token lifetimes must be positive")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "AuthSettings":
        return cls(
            secret=config["JWT_SECRET"],
            issuer=config["JWT_ISSUER"],
            audience=config["JWT_AUDIENCE"],
            access_ttl=config["ACCESS_TOKEN_EXPIRES"],
            refresh_ttl=config["REFRESH_TOKEN_EXPIRES"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            leeway=int(config.get("JWT_LEEWAY_SECONDS", 0)),
        )


def build_password_hasher(config: Mapping[str, Any]) -> PasswordHasher:
    """Argon2id hasher; unset cost parameters fall back to argon2-cffi defaults."""
    params = {
        "time_cost": config.get("ARGON2_TIME_COST"),
        "memory_cost": config.get("ARGON2_MEMORY_COST"),
        "parallelism": config.get("ARGON2_PARALLELISM"),
    }
    return PasswordHasher(**{k: int(v) for k, v in params.items() if v is not None})


class CredentialVerifier:
    """Hash and check passwords. verify() never raises."""

    def __init__(self, hasher: Optional[PasswordHasher] = None):
        self._ph = hasher or PasswordHasher()
        self._dummy_hash: Optional[str] = None

    def hash(self, password: str) -> str:
        return self._ph.hash(password)

    def verify(self, password: str, stored_hash: str) -> bool:
        if not stored_hash:
            return False
        try:
            return self._ph.verify(stored_hash, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    def needs_rehash(self, stored_hash: str) -> bool:
        try:
            return self._ph.check_needs_rehash(stored_hash)
        except InvalidHashError:
            return True

    def burn(self, password: str) -> None:
        """Spend one verification on a throwaway hash (unknown user path)."""
        if self._dummy_hash is None:
            self._dummy_hash = self._ph.hash(secrets.token_urlsafe(16))
        self.verify(password, self._dummy_hash)


@dataclass(frozen=True)
class AccessClaims:
    subject: int
    email: str
    name: str
    is_premium: bool
    token_id: str
    issued_at: datetime
    expires_at: datetime

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AccessClaims":
        """Build claims from a decoded payload. Raises ValueError when malformed."""
        sub = payload.get("sub")
        if not isinstance(sub, str) or not sub.isdigit():
            raise ValueError("subject claim missing or not a user id")
        email = payload.get("email")
        name = payload.get("name")
        is_premium = payload.get("is_premium")
        jti = payload.get("jti")
        if not isinstance(email, str) or not isinstance(name, str):
            raise ValueError("email/name claims missing")
        if not isinstance(is_premium, bool):
            raise ValueError("is_premium claim missing")
        if not isinstance(jti, str) or not jti:
            raise ValueError("jti claim missing")
        return cls(
            subject=int(sub),
            email=email,
            name=name,
            is_premium=is_premium,
            token_id=jti,
            issued_at=datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc),
            expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
        )


@dataclass(frozen=True)
class AccessToken:
    token: str
    claims: AccessClaims


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID)."""
    return str(uuid.uuid4())


def new_refresh_token_value() -> str:
    """Opaque refresh token: base64 of 64 random bytes."""
    return base64.b64encode(secrets.token_bytes(REFRESH_TOKEN_BYTES)).decode("ascii")


class AccessTokenCodec:
    """
    Stateless signed access tokens.

    The verification algorithm is pinned to the configured HMAC algorithm, so
    tokens carrying "none" or any other alg header are rejected before claims
    are read.
    """

    REQUIRED_CLAIMS = ["sub", "iss", "aud", "iat", "exp", "jti"]

    def __init__(self, settings: AuthSettings):
        self.settings = settings

    def issue(self, user) -> AccessToken:
        now = datetime.now(timezone.utc).replace(microsecond=0)
        claims = AccessClaims(
            subject=int(user.id),
            email=user.email,
            name=user.name,
            is_premium=bool(user.is_premium),
            token_id=generate_jti(),
            issued_at=now,
            expires_at=now + self.settings.access_ttl,
        )
        payload = {
            "sub": str(claims.subject),
            "email": claims.email,
            "name": claims.name,
            "is_premium": claims.is_premium,
            "jti": claims.token_id,
            "iat": int(claims.issued_at.timestamp()),
            "exp": int(claims.expires_at.timestamp()),
            "iss": self.settings.issuer,
            "aud": self.settings.audience,
        }
        token = jwt.encode(payload, self.settings.secret, algorithm=self.settings.algorithm)
        return AccessToken(token=token, claims=claims)

    def decode(self, token: str) -> AccessClaims:
        """Full validation. Raises InvalidAccessToken on any failure."""
        return self._decode(token, verify_exp=True, verify_aud=True)

    def validate(self, token: str) -> bool:
        try:
            self.decode(token)
        except InvalidAccessToken:
            return False
        return True

    def extract_user_id(self, token: str) -> Optional[int]:
        """
        Read the subject of a possibly expired token.

        Expiry and audience are not enforced; signature, algorithm and issuer
        are. Returns None when the token cannot be trusted.
        """
        try:
            return self._decode(token, verify_exp=False, verify_aud=False).subject
        except InvalidAccessToken:
            return None

    def _decode(self, token: str, verify_exp: bool, verify_aud: bool) -> AccessClaims:
        if not token or not isinstance(token, str):
            raise InvalidAccessToken()
        try:
            header = jwt.get_unverified_header(token)
            if header.get("alg") != self.settings.algorithm:
                raise InvalidAccessToken("Unexpected token algorithm")
            payload = jwt.decode(
                token,
                self.settings.secret,
                algorithms=[self.settings.algorithm],
                audience=self.settings.audience if verify_aud else None,
                issuer=self.settings.issuer,
                leeway=self.settings.leeway,
                options={
                    "require": self.REQUIRED_CLAIMS,
                    "verify_exp": verify_exp,
                    "verify_aud": verify_aud,
                },
            )
            return AccessClaims.from_payload(payload)
        except jwt.ExpiredSignatureError:
            raise InvalidAccessToken("Token expired")
        except jwt.InvalidTokenError as exc:
            raise InvalidAccessToken(f"Invalid token: {exc}")
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidAccessToken(f"Malformed token payload: {exc}")
