"""
Session-bound data access for users and refresh tokens.

Both stores work on the session of the surrounding DBStorage.transaction();
neither commits, so everything a caller does inside one transaction is
applied or discarded together.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from models.base_model import utcnow
from models.refresh_token import REVOKE_REASONS, RefreshToken
from models.user import User
from utils.exceptions import DuplicateEmail


class UserDirectory:
    def __init__(self, session: Session):
        self.session = session

    def find_by_email(self, email: str) -> Optional[User]:
        return (
            self.session.query(User)
            .filter(User.email == email)
            .populate_existing()
            .first()
        )

    def find_by_id(self, user_id: int, for_update: bool = False) -> Optional[User]:
        query = self.session.query(User).filter(User.id == user_id).populate_existing()
        if for_update:
            # row lock on backends that support it; SQLite ignores it
            query = query.with_for_update()
        return query.first()

    def create(self, user: User) -> User:
        if self.find_by_email(user.email) is not None:
            raise DuplicateEmail()
        self.session.add(user)
        try:
            self.session.flush()
        except IntegrityError as exc:
            # lost a race against a concurrent registration
            raise DuplicateEmail() from exc
        return user

    def save(self, user: User) -> None:
        self.session.add(user)


class RefreshTokenStore:
    def __init__(self, session: Session):
        self.session = session

    def find_active_by_user(self, user_id: int, now: Optional[datetime] = None) -> List[RefreshToken]:
        now = now or utcnow()
        return (
            self.session.query(RefreshToken)
            .filter(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > now,
            )
            .populate_existing()
            .all()
        )

    def find_by_token(self, token: str) -> Optional[RefreshToken]:
        """Lookup by value, revoked rows included."""
        if not token:
            return None
        return (
            self.session.query(RefreshToken)
            .filter(RefreshToken.token == token)
            .populate_existing()
            .first()
        )

    def find_active(self, user_id: int, token: str, now: Optional[datetime] = None) -> Optional[RefreshToken]:
        record = self.find_by_token(token)
        if record is None or record.user_id != user_id or not record.is_active(now):
            return None
        return record

    def insert(self, record: RefreshToken) -> RefreshToken:
        self.session.add(record)
        self.session.flush()
        return record

    def revoke(
        self,
        record: RefreshToken,
        reason: str,
        replaced_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Revoke `record` unless it is already revoked.

        Compare-and-set on revoked_at: returns False when another transaction
        revoked the row first, which is how concurrent rotations of the same
        token are told apart.
        """
        if reason not in REVOKE_REASONS:
            raise ValueError(f"Unknown revoke reason: {reason}")
        now = now or utcnow()
        values = {
            RefreshToken.revoked_at: now,
            RefreshToken.reason_revoked: reason,
            RefreshToken.replaced_by_token: replaced_by,
        }
        updated = (
            self.session.query(RefreshToken)
            .filter(RefreshToken.id == record.id, RefreshToken.revoked_at.is_(None))
            .update(values, synchronize_session=False)
        )
        if updated != 1:
            return False
        set_committed_value(record, "revoked_at", now)
        set_committed_value(record, "reason_revoked", reason)
        set_committed_value(record, "replaced_by_token", replaced_by)
        return True

    def iter_chain(self, record: RefreshToken) -> Iterator[RefreshToken]:
        """Tokens that transitively replaced `record`, oldest first."""
        seen = {record.token}
        current = record.replaced_by_token
        while current and current not in seen:
            seen.add(current)
            successor = self.find_by_token(current)
            if successor is None or successor.user_id != record.user_id:
                return
            yield successor
            current = successor.replaced_by_token
