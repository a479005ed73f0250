from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from models import AddressLabel, ItemCategory, RequestStatus, UserRole


class SignUpData(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=1)


class LoginData(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    name: str = Field(min_length=1)
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class AddressCreate(BaseModel):
    label: AddressLabel = AddressLabel.HOME
    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = Field(min_length=1)
    is_primary: bool = False


class ItemCreate(BaseModel):
    """Admin-created inventory item (goes live immediately)."""

    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    category: ItemCategory
    quantity: int = Field(default=1, ge=1)
    condition: str = "Good"
    image_url: Optional[str] = None


class RequestStatusUpdate(BaseModel):
    status: RequestStatus
    admin_notes: Optional[str] = None


class ContactMessage(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    subject: str = Field(min_length=1)
    message: str = Field(min_length=1, max_length=5000)


class DonationItemRead(BaseModel):
    id: int
    name: str
    description: str
    category: ItemCategory
    quantity: int
    condition: str
    image_url: Optional[str] = None
    is_available: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class IdentityRead(BaseModel):
    id: int
    email: EmailStr
    name: str
    role: UserRole
    is_admin: bool
