"""
Database Schemas for BRELIS Streetwear

Each Pydantic model corresponds to a MongoDB collection (lowercased class name).
Use these models for validation when creating or updating documents.
References between documents are stored as string ids.
"""

from pydantic import BaseModel, ConfigDict, Field, EmailStr
from typing import Optional, List, Literal, Dict, Any
from datetime import datetime

Size = Literal["XS", "S", "M", "L", "XL", "XXL", "XXXL"]
Category = Literal["hoodies", "tshirts", "pants", "shorts", "jackets", "accessories"]
Fit = Literal["regular", "oversized", "slim", "relaxed"]
OrderStatus = Literal[
    "pending",
    "confirmed",
    "processing",
    "shipped",
    "delivered",
    "return_pending",
    "cancelled",
    "returned",
]
PaymentMethod = Literal["cod", "upi", "card", "wallet"]
PaymentStatus = Literal["pending", "completed", "failed", "refunded"]
LookbookCategory = Literal["Street Inspirations", "Urban Fits", "Seasonal", "Featured"]

PHONE_PATTERN = r"^[0-9]{10}$"

# ---------------------------------
# Users
# ---------------------------------

class Address(BaseModel):
    id: Optional[str] = Field(None, description="Address id within the user's address book")
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone: str = Field(..., pattern=PHONE_PATTERN, description="10-digit phone number")
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field("India")
    is_default: bool = Field(False)


class User(BaseModel):
    first_name: str = Field(..., max_length=50, description="First name")
    last_name: str = Field(..., max_length=50, description="Last name")
    email: EmailStr = Field(..., description="Email address (stored lowercased)")
    password_hash: str = Field(..., description="PBKDF2 password hash")
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[Dict[str, Any]] = Field(None, description="Primary profile address")
    addresses: List[Address] = Field(default_factory=list)
    role: Literal["user", "admin"] = Field("user")
    coins: int = Field(0, ge=0, description="Loyalty coin balance, 1 coin = 1 INR")
    is_active: bool = Field(True, description="Whether user is active")
    email_verified: bool = Field(False)
    wishlist: List[str] = Field(default_factory=list, description="Product ids")
    last_login: Optional[datetime] = None


# ---------------------------------
# Catalog
# ---------------------------------

class ProductImage(BaseModel):
    url: str
    alt: Optional[str] = None
    is_primary: bool = False


class ProductSize(BaseModel):
    size: Size
    colors: List[str] = Field(default_factory=lambda: ["black"])
    stock: int = Field(0, ge=0, description="Stock for this size")
    price: float = Field(..., ge=0, description="Price for this size in INR")


class Product(BaseModel):
    name: str = Field(..., min_length=3, max_length=100, description="Product name")
    description: str = Field(..., max_length=1000, description="Product description")
    category: Category
    subcategory: Optional[str] = None
    brand: str = Field("BRELIS")
    images: List[ProductImage] = Field(default_factory=list)
    sizes: List[ProductSize] = Field(default_factory=list, description="Size-level stock")
    base_price: float = Field(..., ge=0, description="Price in INR")
    sale_price: Optional[float] = Field(None, ge=0, description="Discounted price in INR")
    fabric: Optional[str] = None
    gsm: Optional[str] = None
    fit: Fit = "regular"
    wash_care: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    is_active: bool = Field(True)
    is_featured: bool = Field(False)
    rating: float = Field(0, ge=0, le=5)
    review_count: int = Field(0, ge=0)
    total_sold: int = Field(0, ge=0)
    sku: Optional[str] = None
    stock_version: int = Field(0, ge=0, description="Bumped on every stock write")


# ---------------------------------
# Cart and orders
# ---------------------------------

class CartItem(BaseModel):
    product_id: str
    size: Size
    quantity: int = Field(..., ge=1, le=10)
    price: float = Field(..., ge=0, description="Unit price snapshot")


class Cart(BaseModel):
    user_id: str = Field(..., description="Owner user id")
    items: List[CartItem] = Field(default_factory=list)
    coupon_code: Optional[str] = None
    discount_amount: float = Field(0, ge=0)
    coins_used: int = Field(0, ge=0)
    coins_discount: float = Field(0, ge=0)


class OrderItem(BaseModel):
    product_id: str
    name: str
    image: Optional[str] = None
    size: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at purchase time")
    total: float = Field(..., ge=0)


class ShippingAddress(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field("India")


class Payment(BaseModel):
    method: PaymentMethod
    status: PaymentStatus = "pending"
    amount: float = Field(..., ge=0)
    transaction_id: Optional[str] = None
    upi_id: Optional[str] = None
    gateway: Optional[str] = None


class Order(BaseModel):
    order_number: str
    user_id: str
    items: List[OrderItem]
    shipping_address: ShippingAddress
    status: OrderStatus = "pending"
    payment: Payment
    subtotal: float = Field(..., ge=0)
    shipping_cost: float = Field(0, ge=0)
    discount_amount: float = Field(0, ge=0)
    coupon_code: Optional[str] = None
    coins_used: int = Field(0, ge=0)
    coins_discount: float = Field(0, ge=0)
    coins_earned: int = Field(0, ge=0)
    total: float = Field(..., ge=0)
    notes: Optional[str] = Field(None, max_length=500)
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[Literal["customer", "admin", "system"]] = None
    cancellation_reason: Optional[str] = None
    coins_credited: bool = False
    coins_debited: bool = False
    coins_refunded: bool = False
    stock_restored: bool = False


class CoinTransaction(BaseModel):
    """
    Coin ledger, append-only
    Collection name: "cointransaction"
    """
    user_id: str
    type: Literal["earned", "redeemed"]
    amount: int = Field(..., ge=1)
    description: str
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    balance_after: int = Field(..., ge=0, description="User balance right after this entry")


# ---------------------------------
# Content
# ---------------------------------

class Review(BaseModel):
    user_id: str
    product_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)
    is_verified: bool = False
    helpful: int = 0
    reported: bool = False


class Lookbook(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    image: str = Field(..., description="Image URL")
    products: List[str] = Field(default_factory=list)
    category: LookbookCategory = "Street Inspirations"
    is_active: bool = True
    sort_order: int = 0
    tags: List[str] = Field(default_factory=list)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None


# ---------------------------------
# Store settings (single document, typed sections)
# ---------------------------------

class SettingsSection(BaseModel):
    model_config = ConfigDict(extra="forbid")


class GeneralSettings(SettingsSection):
    store_name: str = "BRELIS Streetwear"
    store_description: str = "Premium streetwear fashion brand"
    contact_email: str = "brelisbrelis1@gmail.com"
    contact_phone: str = "+91 9381032323"
    address: str = "123 Fashion Street"
    city: str = "Mumbai"
    state: str = "Maharashtra"
    pincode: str = "400001"
    country: str = "India"
    currency: Literal["INR", "USD", "EUR"] = "INR"
    timezone: str = "Asia/Kolkata"


class PaymentSettings(SettingsSection):
    phonepe_merchant_id: Optional[str] = None
    phonepe_merchant_key: Optional[str] = None
    phonepe_environment: Literal["UAT", "PROD"] = "UAT"
    upi_enabled: bool = True
    cod_enabled: bool = True
    min_order_amount: float = Field(100, ge=0)
    max_order_amount: float = Field(50000, ge=0)


class EmailSettings(SettingsSection):
    email_service: Literal["gmail", "smtp"] = "gmail"
    email_host: str = "smtp.gmail.com"
    email_port: int = Field(587, ge=1, le=65535)
    email_user: Optional[str] = None
    email_pass: Optional[str] = None
    email_from: str = "BRELIS Streetwear <noreply@brelis.in>"
    email_secure: bool = False


class SecuritySettings(SettingsSection):
    rate_limit_window: int = Field(900000, ge=60000, description="Milliseconds")
    rate_limit_max_requests: int = Field(100, ge=1)
    session_timeout: int = Field(604800, ge=60, description="Bearer token lifetime in seconds")
    require_two_factor: bool = False


class SystemSettings(SettingsSection):
    environment: Literal["development", "staging", "production"] = "development"
    frontend_url: str = "http://localhost:5173"
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None


class NotificationSettings(SettingsSection):
    email_notifications: bool = True
    order_notifications: bool = True
    user_notifications: bool = True
    system_notifications: bool = True
    notification_email: str = "admin@brelis.in"


class StoreSettings(BaseModel):
    general: GeneralSettings = Field(default_factory=GeneralSettings)
    payment: PaymentSettings = Field(default_factory=PaymentSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    system: SystemSettings = Field(default_factory=SystemSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    updated_by: Optional[str] = None
    last_updated: Optional[datetime] = None
