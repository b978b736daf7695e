"""
Refresh token rotation protocol.

A chain is a refresh token plus every token that transitively replaced it.
Each token is ACTIVE until it is rotated (replaced_by_token set), revoked
(login, logout, reuse) or expires. Every state change happens inside one
DBStorage.transaction(); the compare-and-set revoke in RefreshTokenStore
decides which of two concurrent rotations of the same token wins.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from models.base_model import utcnow
from models.db_storage import DBStorage
from models.refresh_token import LOGOUT, REPLACED_BY_LOGIN, REPLACED_BY_TOKEN, REUSED, RefreshToken
from models.stores import RefreshTokenStore, UserDirectory
from models.user import User
from utils.exceptions import InvalidCredentials, InvalidRefreshToken
from utils.security import AccessTokenCodec, AuthSettings, new_refresh_token_value

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionTokens:
    access_token: str
    refresh_token: str
    user: User
    expires_at: datetime
    token_type: str = "bearer"


class RotationCoordinator:
    def __init__(
        self,
        storage: DBStorage,
        codec: AccessTokenCodec,
        settings: AuthSettings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.codec = codec
        self.settings = settings
        self.clock = clock

    def login(self, user: User) -> SessionTokens:
        """Start a fresh chain, revoking every active token of the user."""
        now = self.clock()
        with self.storage.transaction() as session:
            locked = UserDirectory(session).find_by_id(user.id, for_update=True)
            if locked is None:
                raise InvalidCredentials()
            store = RefreshTokenStore(session)
            # insert first: the write serializes concurrent logins on SQLite,
            # where the row lock above is not available
            record = store.insert(self._mint(locked.id, now))
            revoked = 0
            for previous in store.find_active_by_user(locked.id, now):
                if previous.id != record.id and store.revoke(previous, REPLACED_BY_LOGIN, now=now):
                    revoked += 1
            locked.last_login_at = now
            tokens = self._grant(locked, record)
        logger.info("Login for user %s revoked %d previous refresh token(s)", locked.id, revoked)
        return tokens

    def refresh(self, token_value: str) -> SessionTokens:
        """Rotate a refresh token. The presented token is single-use."""
        now = self.clock()
        with self.storage.transaction() as session:
            store = RefreshTokenStore(session)
            record = store.find_by_token(token_value)
            if record is None:
                raise InvalidRefreshToken()
            if record.revoked_at is None:
                if record.is_expired(now) or not record.user.is_active:
                    raise InvalidRefreshToken()
                successor = self._mint(record.user_id, now)
                if store.revoke(record, REPLACED_BY_TOKEN, replaced_by=successor.token, now=now):
                    store.insert(successor)
                    logger.info("Rotated refresh token %s for user %s", record.id, record.user_id)
                    return self._grant(record.user, successor)
                # a concurrent rotation revoked it first
                session.refresh(record)
            revoked = self._revoke_descendants(store, record, now)
        logger.warning(
            "Revoked refresh token %s reused by user %s; revoked %d descendant(s)",
            record.id,
            record.user_id,
            revoked,
        )
        raise InvalidRefreshToken()

    def logout(self, access_token: Optional[str], refresh_token: Optional[str]) -> bool:
        """
        Revoke the caller's refresh token. The access token may be expired but
        must carry a valid signature. Returns whether anything was revoked;
        bad input is a no-op, never an error.
        """
        user_id = self.codec.extract_user_id(access_token) if access_token else None
        if user_id is None or not refresh_token:
            return False
        now = self.clock()
        with self.storage.transaction() as session:
            store = RefreshTokenStore(session)
            record = store.find_active(user_id, refresh_token, now)
            revoked = record is not None and store.revoke(record, LOGOUT, now=now)
        if revoked:
            logger.info("Logout revoked refresh token %s for user %s", record.id, user_id)
        return revoked

    def _mint(self, user_id: int, now: datetime) -> RefreshToken:
        return RefreshToken(
            token=new_refresh_token_value(),
            user_id=user_id,
            created_at=now,
            expires_at=now + self.settings.refresh_ttl,
        )

    def _grant(self, user: User, record: RefreshToken) -> SessionTokens:
        access = self.codec.issue(user)
        return SessionTokens(
            access_token=access.token,
            refresh_token=record.token,
            user=user,
            expires_at=access.claims.expires_at,
        )

    @staticmethod
    def _revoke_descendants(store: RefreshTokenStore, record: RefreshToken, now: datetime) -> int:
        revoked = 0
        for successor in store.iter_chain(record):
            if successor.is_active(now) and store.revoke(successor, REUSED, now=now):
                revoked += 1
        return revoked
