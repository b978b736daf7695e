"""
RefreshToken model: persisted opaque refresh tokens, so they can be rotated
and revoked.
Fields:
- token (unique lookup key, never reused)
- user_id (Integer) - FK to users.id, cascades on user delete
- expires_at, revoked_at, reason_revoked
- replaced_by_token - forward pointer to the token that superseded this one
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from models.base_model import Base, BaseModel, utcnow

REPLACED_BY_LOGIN = "Replaced by new login"
REPLACED_BY_TOKEN = "Replaced by new token"
LOGOUT = "Logout"
REUSED = "Reused-after-revocation"

REVOKE_REASONS = (REPLACED_BY_LOGIN, REPLACED_BY_TOKEN, LOGOUT, REUSED)


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    token = Column(String(128), nullable=False, unique=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    reason_revoked = Column(String(64), nullable=True)
    replaced_by_token = Column(String(128), nullable=True)

    user = relationship("User", back_populates="refresh_tokens")

    __table_args__ = (Index("ix_refresh_tokens_user_revoked", "user_id", "revoked_at"),)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def is_active(self, now: datetime | None = None) -> bool:
        return self.revoked_at is None and not self.is_expired(now)

    def __repr__(self):
        return f"<RefreshToken id={self.id} user_id={self.user_id} revoked_at={self.revoked_at}>"
