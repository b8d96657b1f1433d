"""
Database Schemas for the Telugu Bookstore

Each Pydantic model corresponds to one MongoDB collection (or an embedded
sub-document). Collection name is the lowercase of the class name.
Attributes are snake_case in Python; stored and JSON field names are camelCase.
"""
import re
from datetime import datetime, timezone
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

BookCategory = Literal[
    "literature", "poetry", "devotional", "educational",
    "children", "history", "philosophy", "biography",
]
BookLanguage = Literal["Telugu", "English", "Hindi"]
Role = Literal["user", "admin"]
AddressType = Literal["home", "work", "other"]
PaymentMethod = Literal["razorpay", "cod"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
OrderStatus = Literal[
    "pending", "confirmed", "processing", "shipped",
    "out-for-delivery", "delivered", "cancelled", "returned",
]

ISBN_RE = re.compile(r"^(?=(?:\D*\d){10}(?:(?:\D*\d){3})?$)[\d-]+$")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(ObjectId())


class Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ----------------------- Books -----------------------
class Dimensions(Schema):
    length: float = Field(..., ge=0)
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)


class Review(Schema):
    id: str = Field(default_factory=_new_id)
    user: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)
    is_verified_purchase: bool = False
    created_at: datetime = Field(default_factory=_now)


class BookCreateBody(Schema):
    title: str = Field(..., min_length=1, max_length=200)
    title_telugu: Optional[str] = Field(None, max_length=200)
    author: str = Field(..., min_length=1, max_length=100)
    author_telugu: Optional[str] = Field(None, max_length=100)
    publisher: str = Field(..., min_length=1, max_length=100)
    publisher_telugu: Optional[str] = Field(None, max_length=100)
    isbn: str
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    description: str = Field(..., min_length=1, max_length=2000)
    description_telugu: Optional[str] = Field(None, max_length=2000)
    image: str = Field(..., min_length=1)
    images: List[str] = Field(default_factory=list)
    category: BookCategory
    category_telugu: Optional[str] = None
    pages: int = Field(..., ge=1)
    language: BookLanguage
    dimensions: Optional[Dimensions] = None
    weight: Optional[float] = Field(None, ge=0)
    publication_year: Optional[int] = Field(None, ge=1800)
    stock_count: int = Field(..., ge=0)
    tags: List[str] = Field(default_factory=list)
    featured: bool = False
    bestseller: bool = False
    new_arrival: bool = False

    @field_validator("isbn")
    @classmethod
    def validate_isbn(cls, v: str) -> str:
        if not ISBN_RE.match(v):
            raise ValueError("Please provide a valid ISBN")
        return v

    @field_validator("publication_year")
    @classmethod
    def validate_publication_year(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v > _now().year + 1:
            raise ValueError("Publication year cannot be in future")
        return v


class Book(BookCreateBody):
    discount: int = Field(0, ge=0, le=100)
    rating: float = Field(0, ge=0, le=5)
    review_count: int = 0
    reviews: List[Review] = Field(default_factory=list)
    in_stock: bool = True
    sales_count: int = 0
    is_active: bool = True
    created_by: Optional[str] = None

    @model_validator(mode="after")
    def derive_in_stock(self):
        self.in_stock = self.stock_count > 0
        return self


class BookUpdateBody(Schema):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    title_telugu: Optional[str] = Field(None, max_length=200)
    author: Optional[str] = Field(None, min_length=1, max_length=100)
    author_telugu: Optional[str] = Field(None, max_length=100)
    publisher: Optional[str] = Field(None, min_length=1, max_length=100)
    publisher_telugu: Optional[str] = Field(None, max_length=100)
    isbn: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    description: Optional[str] = Field(None, max_length=2000)
    description_telugu: Optional[str] = Field(None, max_length=2000)
    image: Optional[str] = None
    images: Optional[List[str]] = None
    category: Optional[BookCategory] = None
    category_telugu: Optional[str] = None
    pages: Optional[int] = Field(None, ge=1)
    language: Optional[BookLanguage] = None
    dimensions: Optional[Dimensions] = None
    weight: Optional[float] = Field(None, ge=0)
    publication_year: Optional[int] = Field(None, ge=1800)
    stock_count: Optional[int] = Field(None, ge=0)
    tags: Optional[List[str]] = None
    featured: Optional[bool] = None
    bestseller: Optional[bool] = None
    new_arrival: Optional[bool] = None

    @field_validator("isbn")
    @classmethod
    def validate_isbn(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not ISBN_RE.match(v):
            raise ValueError("Please provide a valid ISBN")
        return v


class ReviewBody(Schema):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)


# ----------------------- Users -----------------------
class AddressBody(Schema):
    type: AddressType = "home"
    name: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., pattern=r"^[1-9][0-9]{5}$")
    phone: str = Field(..., pattern=r"^[6-9]\d{9}$")
    is_default: bool = False


class Address(AddressBody):
    id: str = Field(default_factory=_new_id)


class AddressUpdateBody(Schema):
    type: Optional[AddressType] = None
    name: Optional[str] = Field(None, min_length=1)
    street: Optional[str] = Field(None, min_length=1)
    city: Optional[str] = Field(None, min_length=1)
    state: Optional[str] = Field(None, min_length=1)
    pincode: Optional[str] = Field(None, pattern=r"^[1-9][0-9]{5}$")
    phone: Optional[str] = Field(None, pattern=r"^[6-9]\d{9}$")
    is_default: Optional[bool] = None


class User(Schema):
    name: str = Field(..., min_length=1, max_length=50, description="Full name")
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(None, pattern=r"^\+?[1-9]\d{1,14}$")
    password_hash: Optional[str] = Field(None, description="Salted password hash")
    avatar: Optional[str] = None
    role: Role = "user"
    is_email_verified: bool = False
    is_phone_verified: bool = False
    addresses: List[Address] = Field(default_factory=list)
    wishlist: List[str] = Field(default_factory=list)
    last_login: Optional[datetime] = None
    is_active: bool = True

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v):
        return v.lower() if v else v

    @model_validator(mode="after")
    def require_contact(self):
        if not self.email and not self.phone_number:
            raise ValueError("User must have either email or phone number")
        return self


class RegisterBody(Schema):
    name: str = Field(..., min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(None, pattern=r"^\+?[1-9]\d{1,14}$")
    password: str = Field(..., min_length=6)

    @model_validator(mode="after")
    def require_contact(self):
        if not self.email and not self.phone_number:
            raise ValueError("Either email or phone number is required")
        return self


class LoginBody(Schema):
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    password: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def require_contact(self):
        if not self.email and not self.phone_number:
            raise ValueError("Either email or phone number is required")
        return self


class ProfileUpdateBody(Schema):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None


class PasswordChangeBody(Schema):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class RoleUpdateBody(Schema):
    role: Role


class UserStatusBody(Schema):
    is_active: bool


# ----------------------- Orders -----------------------
class ShippingAddress(Schema):
    name: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class OrderItem(Schema):
    book: str = Field(..., description="Book id")
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price when the order was placed")
    title: Optional[str] = None
    author: Optional[str] = None
    image: Optional[str] = None


class OrderSummary(Schema):
    subtotal: float
    shipping_cost: float = 0
    tax: float = 0
    discount: float = 0
    total: float


class PaymentDetails(Schema):
    method: PaymentMethod = "razorpay"
    payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    status: PaymentStatus = "pending"
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None


class TimelineEntry(Schema):
    status: str
    message: str
    timestamp: datetime = Field(default_factory=_now)
    updated_by: Optional[str] = None


class ShippingDetails(Schema):
    provider: Optional[str] = None
    tracking_id: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None


class RefundDetails(Schema):
    amount: float
    reason: Optional[str] = None
    status: Literal["pending", "processed", "failed"] = "pending"
    refund_id: Optional[str] = None
    processed_at: Optional[datetime] = None


class Order(Schema):
    id: Optional[str] = Field(None, exclude=True)
    order_number: Optional[str] = None
    user: str = Field(..., description="Owning user id")
    items: List[OrderItem] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    billing_address: Optional[ShippingAddress] = None
    order_summary: OrderSummary
    payment_details: PaymentDetails = Field(default_factory=PaymentDetails)
    order_status: OrderStatus = "pending"
    shipping_details: ShippingDetails = Field(default_factory=ShippingDetails)
    timeline: List[TimelineEntry] = Field(default_factory=list)
    customer_notes: Optional[str] = None
    admin_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    refund_details: Optional[RefundDetails] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CartLine(Schema):
    book_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)


class CreatePaymentOrderBody(Schema):
    amount: float = Field(..., ge=1, description="Client-side total in rupees")
    currency: str = Field("INR", min_length=3, max_length=3)
    items: List[CartLine] = Field(..., min_length=1)
    shipping_address: ShippingAddress


class VerifyPaymentBody(Schema):
    gateway_order_id: str = Field(
        ..., min_length=1,
        validation_alias=AliasChoices("gatewayOrderId", "razorpay_order_id", "gateway_order_id"),
    )
    gateway_payment_id: str = Field(
        ..., min_length=1,
        validation_alias=AliasChoices("gatewayPaymentId", "razorpay_payment_id", "gateway_payment_id"),
    )
    gateway_signature: str = Field(
        ..., min_length=1,
        validation_alias=AliasChoices("gatewaySignature", "razorpay_signature", "gateway_signature"),
    )
    order_id: str = Field(..., min_length=1, validation_alias=AliasChoices("orderId", "order_id"))


class PaymentFailureBody(Schema):
    order_id: str = Field(..., min_length=1)
    error: Optional[dict] = None


class StatusUpdateBody(Schema):
    status: OrderStatus
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


class CancelOrderBody(Schema):
    reason: Optional[str] = Field(None, max_length=500)
