from sqlalchemy import Column, String, DateTime, Index
from sqlalchemy.sql import func
import uuid

from khata.core.database import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Shopkeeper identity anchored to a normalized wallet address"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    # Profile
    name = Column(String(100), nullable=False)
    store_name = Column(String(150), nullable=False)
    username = Column(String(50), nullable=False)
    email = Column(String(255), nullable=False)

    # Identity (lowercase, 0x-prefixed)
    wallet_address = Column(String(42), unique=True, index=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username}, wallet={self.wallet_address})>"


# Usernames are unique regardless of case
Index("uq_users_username_lower", func.lower(User.username), unique=True)
