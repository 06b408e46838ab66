from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, PositiveInt, field_validator
from pydantic.config import ConfigDict

from .utils import is_valid_phone, is_valid_username

OrderStatus = Literal["pending", "confirmed", "preparing", "ready", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
PaymentMethod = Literal["cash", "online"]


# -------------------- Users --------------------

class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None)
    address: Optional[str] = Field(default=None)
    role: Literal["customer", "admin"] = "customer"

    @field_validator("username")
    def username_chars(cls, v: str):
        if not is_valid_username(v):
            raise ValueError("Username can only contain letters, numbers, and underscores.")
        return v

    @field_validator("phone")
    def phone_format(cls, v: Optional[str]):
        if v and not is_valid_phone(v):
            raise ValueError("Please enter a valid phone number.")
        return v or None


class UserUpdate(BaseModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=50)
    email: Optional[EmailStr] = None
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("username")
    def username_chars(cls, v: Optional[str]):
        if v is not None and not is_valid_username(v):
            raise ValueError("Username can only contain letters, numbers, and underscores.")
        return v

    @field_validator("phone")
    def phone_format(cls, v: Optional[str]):
        if v and not is_valid_phone(v):
            raise ValueError("Please enter a valid phone number.")
        return v


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)
    confirm_password: str

    @field_validator("confirm_password")
    def passwords_match(cls, v: str, info):
        if info.data.get("new_password") is not None and v != info.data["new_password"]:
            raise ValueError("Passwords do not match.")
        return v


class LoginRequest(BaseModel):
    login: str = Field(..., min_length=1, description="Username or email")
    password: str


class UserRead(BaseModel):
    id: int
    username: str
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    role: str = "customer"
    status: str = "active"

    model_config = ConfigDict(from_attributes=True)


# -------------------- Catalog --------------------

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    sort_order: int = 0


class CategoryRead(BaseModel):
    id: int
    name: str
    description: str = ""
    sort_order: int = 0

    model_config = ConfigDict(from_attributes=True)


class MenuItemCreate(BaseModel):
    category_id: PositiveInt
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    price: Decimal = Field(..., gt=Decimal("0"))
    image_url: Optional[str] = None
    preparation_time: int = Field(default=15, ge=0)
    ingredients: str = ""
    allergens: str = ""
    calories: Optional[int] = Field(default=None, ge=0)
    is_featured: bool = False
    sort_order: int = 0


class MenuItemRead(BaseModel):
    id: int
    category_id: int
    category_name: str = ""
    name: str
    description: str = ""
    price: Decimal
    image_url: Optional[str] = None
    preparation_time: int
    ingredients: str = ""
    allergens: str = ""
    calories: Optional[int] = None
    availability: str
    is_featured: bool

    model_config = ConfigDict(from_attributes=True)


# -------------------- Cart --------------------

class CartItemAdd(BaseModel):
    item_id: PositiveInt
    quantity: int = Field(default=1, ge=1)


class CartItemUpdate(BaseModel):
    # zero or negative removes the line
    quantity: int


class CartLineRead(BaseModel):
    item_id: int
    name: str
    price: Decimal
    quantity: int
    line_total: Decimal


class CartRead(BaseModel):
    lines: List[CartLineRead] = []
    count: int = 0
    subtotal: Decimal
    delivery_fee: Decimal
    tax: Decimal
    total: Decimal


# -------------------- Orders --------------------

class CheckoutRequest(BaseModel):
    delivery_address: str = Field(..., min_length=1)
    phone: str
    notes: str = ""
    payment_method: PaymentMethod = "cash"

    @field_validator("delivery_address")
    def address_required(cls, v: str):
        if not v.strip():
            raise ValueError("Delivery address is required.")
        return v

    @field_validator("phone")
    def phone_format(cls, v: str):
        if not is_valid_phone(v):
            raise ValueError("Please enter a valid phone number.")
        return v


class OrderItemRead(BaseModel):
    menu_item_id: int
    item_name: str = ""
    quantity: int
    item_price: Decimal
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class StatusHistoryRead(BaseModel):
    id: int
    status: Optional[str] = None
    notes: str = ""
    changed_by: Optional[int] = None
    changed_by_name: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderRead(BaseModel):
    id: int
    user_id: int
    total_amount: Decimal
    delivery_address: str
    phone: str
    notes: str = ""
    payment_method: str
    order_status: str
    payment_status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderDetail(OrderRead):
    items: List[OrderItemRead] = []
    history: List[StatusHistoryRead] = []


class OrderStatusRead(BaseModel):
    order_id: int
    order_status: str
    payment_status: str
    updated_at: datetime


class OrderStatusUpdate(BaseModel):
    # validated by the order engine so unknown values come back as a failure, not a 422
    status: str
    note: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    payment_status: str
    note: Optional[str] = None


class StrictTransitionsToggle(BaseModel):
    value: bool
