"""
SessionService: the operations the HTTP layer calls.

register / authenticate / refresh / revoke / validate, composed from the
credential verifier, the access token codec and the rotation coordinator.
"""
from __future__ import annotations

import logging
from typing import Optional

from models.db_storage import DBStorage
from models.stores import RefreshTokenStore, UserDirectory
from models.user import User
from services.rotation import RotationCoordinator, SessionTokens
from utils.exceptions import InvalidAccessToken, InvalidCredentials
from utils.security import AccessTokenCodec, CredentialVerifier

logger = logging.getLogger(__name__)


class SessionService:
    def __init__(
        self,
        storage: DBStorage,
        verifier: CredentialVerifier,
        codec: AccessTokenCodec,
        coordinator: RotationCoordinator,
        register_as_premium: bool = True,
    ):
        self.storage = storage
        self.verifier = verifier
        self.codec = codec
        self.coordinator = coordinator
        self.register_as_premium = register_as_premium

    def register(self, name: str, email: str, password: str) -> User:
        """Create a user. Raises DuplicateEmail when the email is taken."""
        user = User(
            name=name,
            email=email,
            password_hash=self.verifier.hash(password),
            is_premium=self.register_as_premium,
            is_active=True,
        )
        with self.storage.transaction() as session:
            UserDirectory(session).create(user)
        logger.info("Registered user %s (%s)", user.id, email)
        return user

    def authenticate(self, email: str, password: str) -> SessionTokens:
        """
        Check credentials and open a new session.

        Unknown email, wrong password and inactive account all raise the
        same InvalidCredentials.
        """
        with self.storage.transaction() as session:
            user = UserDirectory(session).find_by_email(email)

        if user is None:
            self.verifier.burn(password)
            logger.warning("Login failed for %s: unknown email", email)
            raise InvalidCredentials()
        if not self.verifier.verify(password, user.password_hash) or not user.is_active:
            logger.warning("Login failed for %s", email)
            raise InvalidCredentials()

        if self.verifier.needs_rehash(user.password_hash):
            self._upgrade_hash(user, password)

        tokens = self.coordinator.login(user)
        logger.info("User %s logged in", user.id)
        return tokens

    def refresh(self, refresh_token: str) -> SessionTokens:
        return self.coordinator.refresh(refresh_token)

    def revoke(self, access_token: Optional[str], refresh_token: Optional[str]) -> None:
        self.coordinator.logout(access_token, refresh_token)

    def validate(self, access_token: str, refresh_token: Optional[str] = None) -> int:
        """
        Return the user id behind a fully valid access token. When a refresh
        token is supplied it must be active and belong to the same user.
        """
        claims = self.codec.decode(access_token)
        if refresh_token:
            with self.storage.transaction() as session:
                record = RefreshTokenStore(session).find_active(
                    claims.subject, refresh_token, self.coordinator.clock()
                )
            if record is None:
                raise InvalidAccessToken("Refresh token revoked")
        return claims.subject

    def get_user(self, user_id: int) -> Optional[User]:
        with self.storage.transaction() as session:
            return UserDirectory(session).find_by_id(user_id)

    def _upgrade_hash(self, user: User, password: str) -> None:
        with self.storage.transaction() as session:
            user.password_hash = self.verifier.hash(password)
            UserDirectory(session).save(user)
        logger.info("Upgraded password hash parameters for user %s", user.id)
