from pydantic import EmailStr, Field, validator
from datetime import datetime
import re

from khata.core.schemas import CamelModel

WALLET_PATTERN = re.compile(r"^0x[0-9a-f]{40}$")


def normalize_wallet(address: str) -> str:
    """Lowercase and ensure the 0x prefix"""
    address = address.strip().lower()
    return address if address.startswith("0x") else f"0x{address}"


class UserSignupRequest(CamelModel):
    """Signup request"""
    name: str = Field(..., min_length=1, max_length=100)
    store_name: str = Field(..., min_length=1, max_length=150)
    username: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    wallet_address: str

    @validator("username")
    def strip_username(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Username cannot be blank")
        return v

    @validator("wallet_address")
    def validate_wallet(cls, v):
        """Store wallets lowercase with the 0x prefix"""
        v = normalize_wallet(v)
        if not WALLET_PATTERN.match(v):
            raise ValueError("Wallet address must be 40 hex characters")
        return v


class UserResponse(CamelModel):
    """Public user profile"""
    id: str
    name: str
    store_name: str
    username: str
    email: str
    wallet_address: str
    created_at: datetime


class UserEnvelope(CamelModel):
    user: UserResponse


class PartyInfo(CamelModel):
    """Display fields of the other side of a loan"""
    id: str
    name: str
    username: str
    store_name: str
    wallet_address: str
