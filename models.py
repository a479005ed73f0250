from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ItemCategory(str, Enum):
    BOOK = "book"
    PENCIL = "pencil"
    SCHOOL_SUPPLIES = "school_supplies"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FULFILLED = "fulfilled"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class AddressLabel(str, Enum):
    HOME = "Home"
    WORK = "Work"
    SCHOOL = "School"
    OTHER = "Other"


CATEGORY_LABELS = {
    ItemCategory.BOOK: "Books",
    ItemCategory.PENCIL: "Stationery",
    ItemCategory.SCHOOL_SUPPLIES: "School Supplies",
}

CATEGORY_DESCRIPTIONS = {
    ItemCategory.BOOK: "Textbooks, notebooks, story books",
    ItemCategory.PENCIL: "Pens, pencils, erasers, rulers",
    ItemCategory.SCHOOL_SUPPLIES: "Bags, uniforms, other supplies",
}

CONDITIONS = ["New", "Like New", "Good", "Fair"]


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow)


class UserProfile(SQLModel, table=True):
    __tablename__ = "user_profiles"

    # same id as users.id
    id: int = Field(primary_key=True, foreign_key="users.id")
    email: str
    name: str
    role: UserRole = UserRole.USER

    # legacy contact fallback, used only when no UserAddress rows exist
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class UserAddress(SQLModel, table=True):
    __tablename__ = "user_addresses"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)

    label: AddressLabel = AddressLabel.HOME
    name: str
    phone: str
    address: str
    city: str
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str
    is_primary: bool = False

    created_at: datetime = Field(default_factory=utcnow)


class DonationItem(SQLModel, table=True):
    __tablename__ = "donation_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    donor_id: Optional[int] = Field(default=None, foreign_key="users.id")

    name: str
    description: str
    category: ItemCategory
    quantity: int = 1
    condition: str = "Good"
    image_url: Optional[str] = None
    is_available: bool = False  # pending review until an admin approves

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ItemRequest(SQLModel, table=True):
    __tablename__ = "item_requests"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    user_email: str
    user_name: str

    item_name: str
    category: ItemCategory
    quantity: int = 1
    description: str
    status: RequestStatus = RequestStatus.PENDING
    admin_notes: Optional[str] = None

    # shipping snapshot, copied by value at submission time
    shipping_name: str = ""
    shipping_phone: str = ""
    shipping_address: str = ""
    shipping_city: str = ""
    shipping_state: str = ""
    shipping_zip: str = ""
    shipping_country: str = ""

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
