"""
Database Schemas for the Lab Storefront

Each Pydantic model corresponds to a MongoDB collection. The collection name is the
snake_case of the class name.

Example: class HeroSettings -> collection "hero_settings"

`*Update` models carry the same fields, all optional, for partial admin updates.
A field may be left out of an update but a required field may not be sent as null.
"""
from typing import List, Optional, Literal
from datetime import datetime, timezone

from pydantic import BaseModel, Field, EmailStr, field_validator


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Store every datetime as naive UTC, the way pymongo hands them back."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def not_null(value):
    if value is None:
        raise ValueError("may not be null")
    return value


OrderStatus = Literal["pending", "confirmed", "sample_collected", "processing", "completed", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
PaymentMethod = Literal["online", "cod", "upi"]
CollectionType = Literal["home", "lab"]
Gender = Literal["male", "female", "other"]
BookingStatus = Literal["scheduled", "confirmed", "in_progress", "completed", "cancelled", "rescheduled"]
BannerPosition = Literal["home_hero", "home_secondary", "offers_page", "tests_page"]

# Nested value types

class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None

class BookingAddress(Address):
    landmark: Optional[str] = None

class SiteAddress(Address):
    google_map_link: Optional[str] = ""

class SocialLinks(BaseModel):
    facebook: str = ""
    instagram: str = ""
    twitter: str = ""
    linkedin: str = ""

# Users

class User(BaseModel):
    name: str
    email: EmailStr
    hashed_password: Optional[str] = Field(None, description="Unset for accounts that sign in with Google")
    google_id: Optional[str] = None
    auth_provider: Literal["local", "google"] = "local"
    is_email_verified: bool = False
    phone: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    gender: Optional[Gender] = None
    profile_image: Optional[str] = None
    address: Optional[Address] = None
    role: Literal["user", "admin"] = "user"
    is_active: bool = True
    last_login: Optional[datetime] = None

# Catalog

class Test(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    discount_price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    sample_type: Optional[str] = None
    report_time: Optional[str] = None
    parameters: List[str] = Field(default_factory=list)
    preparation_instructions: Optional[str] = None
    is_active: bool = True

class TestUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    discount_price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    sample_type: Optional[str] = None
    report_time: Optional[str] = None
    parameters: Optional[List[str]] = None
    preparation_instructions: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("name", "price", "parameters", "is_active")
    @classmethod
    def required_not_null(cls, v):
        return not_null(v)

class Package(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    tests: List[str] = Field(default_factory=list, description="Test ids")
    price: float = Field(..., ge=0)
    discount_price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    is_popular: bool = False
    is_active: bool = True

class PackageUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    tests: Optional[List[str]] = None
    price: Optional[float] = Field(None, ge=0)
    discount_price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    is_popular: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("name", "price", "tests", "is_popular", "is_active")
    @classmethod
    def required_not_null(cls, v):
        return not_null(v)

# Orders

class OrderTestLine(BaseModel):
    test_id: Optional[str] = None
    name: str
    price: float = Field(..., ge=0)
    discount_price: Optional[float] = Field(None, ge=0)

class OrderPackageLine(BaseModel):
    package_id: Optional[str] = None
    name: str
    price: float = Field(..., ge=0)
    discount_price: Optional[float] = Field(None, ge=0)

class Report(BaseModel):
    name: str
    url: str
    uploaded_at: datetime = Field(default_factory=datetime.utcnow)

class Order(BaseModel):
    user_id: str
    customer_name: str
    customer_email: EmailStr
    customer_phone: str = ""
    tests: List[OrderTestLine] = Field(default_factory=list)
    packages: List[OrderPackageLine] = Field(default_factory=list)
    subtotal: float
    discount_amount: float = 0
    coupon_code: Optional[str] = None
    total_amount: float
    collection_type: CollectionType = "home"
    collection_address: Optional[Address] = None
    preferred_date: Optional[datetime] = None
    preferred_time_slot: Optional[str] = None
    status: OrderStatus = "pending"
    payment_status: PaymentStatus = "pending"
    payment_method: Optional[PaymentMethod] = None
    payment_id: Optional[str] = None
    special_instructions: Optional[str] = None
    admin_notes: Optional[str] = None
    reports: List[Report] = Field(default_factory=list)

    @field_validator("preferred_date")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)

class Booking(BaseModel):
    order_id: str
    user_id: Optional[str] = None
    patient_name: str
    patient_age: Optional[int] = Field(None, ge=0)
    patient_gender: Optional[Gender] = None
    contact_phone: str
    booking_date: datetime
    time_slot: str
    collection_type: CollectionType = "home"
    address: Optional[BookingAddress] = None
    assigned_to: Optional[str] = None
    collector_phone: Optional[str] = None
    status: BookingStatus = "scheduled"
    sample_collected_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    rescheduled_from: Optional[datetime] = None
    special_instructions: Optional[str] = None
    admin_notes: Optional[str] = None

    @field_validator("booking_date", "sample_collected_at", "rescheduled_from")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)

# Offers

class Offer(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    coupon_code: str = Field(..., min_length=1)
    discount_type: Literal["percentage", "fixed"]
    discount_value: float = Field(..., ge=0)
    max_discount_amount: Optional[float] = Field(None, ge=0)
    min_order_value: float = Field(0, ge=0)
    start_date: datetime
    end_date: datetime
    usage_limit: Optional[int] = Field(None, ge=0)
    per_user_limit: int = Field(1, ge=0)
    usage_count: int = Field(0, ge=0)
    applicable_for: Literal["all", "tests", "packages", "specific"] = "all"
    applicable_tests: List[str] = Field(default_factory=list)
    applicable_packages: List[str] = Field(default_factory=list)
    is_active: bool = True
    is_featured: bool = False
    terms_and_conditions: Optional[str] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)

    @field_validator("coupon_code")
    @classmethod
    def upper_code(cls, v: str) -> str:
        return v.strip().upper()

class OfferUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    coupon_code: Optional[str] = Field(None, min_length=1)
    discount_type: Optional[Literal["percentage", "fixed"]] = None
    discount_value: Optional[float] = Field(None, ge=0)
    max_discount_amount: Optional[float] = Field(None, ge=0)
    min_order_value: Optional[float] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    usage_limit: Optional[int] = Field(None, ge=0)
    per_user_limit: Optional[int] = Field(None, ge=0)
    applicable_for: Optional[Literal["all", "tests", "packages", "specific"]] = None
    applicable_tests: Optional[List[str]] = None
    applicable_packages: Optional[List[str]] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    terms_and_conditions: Optional[str] = None

    @field_validator("title", "coupon_code", "discount_type", "discount_value", "min_order_value",
                     "start_date", "end_date", "per_user_limit", "applicable_for", "applicable_tests",
                     "applicable_packages", "is_active", "is_featured")
    @classmethod
    def required_not_null(cls, v):
        return not_null(v)

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)

    @field_validator("coupon_code")
    @classmethod
    def upper_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v

# Presentation

class Banner(BaseModel):
    title: str = Field(..., min_length=1)
    subtitle: Optional[str] = None
    description: Optional[str] = None
    image: str = Field(..., min_length=1)
    mobile_image: Optional[str] = None
    alt_text: Optional[str] = None
    button_text: Optional[str] = None
    button_link: Optional[str] = None
    link_target: Literal["_self", "_blank"] = "_self"
    order: int = 0
    position: BannerPosition = "home_hero"
    background_color: str = "#1e40af"
    text_color: Literal["light", "dark"] = "light"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool = True

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)

class BannerUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    subtitle: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = Field(None, min_length=1)
    mobile_image: Optional[str] = None
    alt_text: Optional[str] = None
    button_text: Optional[str] = None
    button_link: Optional[str] = None
    link_target: Optional[Literal["_self", "_blank"]] = None
    order: Optional[int] = None
    position: Optional[BannerPosition] = None
    background_color: Optional[str] = None
    text_color: Optional[Literal["light", "dark"]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None

    @field_validator("title", "image", "link_target", "order", "position", "background_color",
                     "text_color", "is_active")
    @classmethod
    def required_not_null(cls, v):
        return not_null(v)

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)

class HeroSettings(BaseModel):
    title: str = "Book Lab Tests Online"
    subtitle: str = "WITH TRUSTED DIAGNOSTICS"
    description: str = "Accurate reports • Home sample collection • Online payment"
    hero_image: str = "/uploads/hero/default-lab-hero.webp"
    image_alt: str = "Laboratory Hero Image"
    cta_text: str = ""
    cta_link: str = ""
    is_active: bool = True

class HeroSettingsUpdate(BaseModel):
    title: Optional[str] = None
    subtitle: Optional[str] = None
    description: Optional[str] = None
    hero_image: Optional[str] = None
    image_alt: Optional[str] = None
    cta_text: Optional[str] = None
    cta_link: Optional[str] = None

    # title and hero_image are dropped by the handler when blank
    @field_validator("subtitle", "description", "image_alt", "cta_text", "cta_link")
    @classmethod
    def required_not_null(cls, v):
        return not_null(v)

class SiteSettings(BaseModel):
    site_name: str = "Pravin Clinical Laboratory"
    tagline: str = "Precision in Every Report"
    contact_email: str = ""
    contact_phone: str = ""
    address: SiteAddress = Field(default_factory=SiteAddress)
    social_links: SocialLinks = Field(default_factory=SocialLinks)
    enable_bookings: bool = True
    enable_online_payment: bool = False
    maintenance_mode: bool = False

class SiteSettingsUpdate(BaseModel):
    site_name: Optional[str] = None
    tagline: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[SiteAddress] = None
    social_links: Optional[SocialLinks] = None
    enable_bookings: Optional[bool] = None
    enable_online_payment: Optional[bool] = None
    maintenance_mode: Optional[bool] = None

    @field_validator("*")
    @classmethod
    def required_not_null(cls, v):
        return not_null(v)
