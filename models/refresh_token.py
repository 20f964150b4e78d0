"""
RefreshToken model: one row per issued refresh token, owned by exactly one user.
Fields:
- token_id: random rotation key, unique per user (the JWT's jti)
- token: the encoded refresh token, kept for audit/debugging
- is_used: flipped false -> true exactly once, by rotation
- created_at, expires_at
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"
    __table_args__ = (
        UniqueConstraint("user_id", "token_id", name="uq_refresh_tokens_user_token"),
        Index("ix_refresh_tokens_user_created", "user_id", "created_at"),
    )

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_id = Column(String(64), nullable=False)
    token = Column(Text, nullable=False)
    is_used = Column(Boolean, default=False, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    user = relationship("User", back_populates="refresh_tokens")

    def __repr__(self):
        return f"<RefreshToken user={self.user_id} token_id={self.token_id[:8]} used={self.is_used}>"
