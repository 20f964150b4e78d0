from models.base_model import Base, BaseModel
from sqlalchemy import Column, Enum, String
from sqlalchemy.orm import relationship

ROLES = ("customer", "admin", "moderator", "employee")
STAFF_ROLES = ("admin", "moderator", "employee")


class User(BaseModel, Base):
    __tablename__ = "users"
    name = Column(String(255), nullable=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(64), nullable=True)
    address = Column(String(512), nullable=True)
    passport_number = Column(String(64), nullable=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(*ROLES, name="user_role"), nullable=False, default="customer", index=True)

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RefreshToken.created_at",
    )

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")
