from sqlalchemy import Column, String, Boolean, DateTime, Text
from .base import Base, TimestampMixin, generate_uuid


class UserRole:
    ADMIN = "admin"
    DOCTOR = "doctor"
    RECEPTION = "reception"
    PHARMACY = "pharmacy"

    ALL = [ADMIN, DOCTOR, RECEPTION, PHARMACY]


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_uuid)
    username = Column(String(100), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(200), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.RECEPTION)
    is_active = Column(Boolean, default=True)

    # Token store: the one valid refresh token, cleared on logout
    refresh_token = Column(Text, nullable=True)
    last_login = Column(DateTime, nullable=True)

    @property
    def display_name(self) -> str:
        return self.full_name or self.username
