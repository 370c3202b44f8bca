from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Optional, List
from decimal import Decimal
from datetime import datetime
from shared.security_config import password_problems, sanitize_input
from storefront.models import MAX_LINE_QUANTITY

PRODUCT_STATUSES = ("Active", "Inactive", "Draft")


def split_csv(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        items = value
    else:
        items = str(value).split(",")
    return [sanitize_input(item) for item in items if sanitize_input(item)]


# --- Registration / Login ---

class RegisterStep1(BaseModel):
    email: EmailStr
    phone: str = Field(..., pattern=r"^\+?\d{10,15}$")
    password: str = Field(..., min_length=8)

    @field_validator('password')
    def password_complexity(cls, v):
        problems = password_problems(v)
        if problems:
            raise ValueError('Password needs ' + ', '.join(problems))
        return v

    @field_validator('email', 'phone', mode='before')
    def strip_identity(cls, v):
        return sanitize_input(v)


class RegisterStep2(BaseModel):
    state: str = Field(..., min_length=1, max_length=100)
    district: str = Field(..., min_length=1, max_length=100)
    area_name: str = Field(..., min_length=1, max_length=200)
    pincode: str = Field(..., pattern=r"^\d{6}$")

    @field_validator('state', 'district', 'area_name', 'pincode', mode='before')
    def sanitize_fields(cls, v):
        return sanitize_input(v)


class LoginForm(BaseModel):
    identifier: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator('identifier', mode='before')
    def sanitize_identifier(cls, v):
        return sanitize_input(v)


# --- Cart / Checkout ---

class CartItemAdd(BaseModel):
    quantity: int = Field(..., gt=0, le=MAX_LINE_QUANTITY)
    size: str = ""
    color: str = ""

    @field_validator('size', 'color', mode='before')
    def sanitize_fields(cls, v):
        return sanitize_input(v) or ""


class CompleteOrderForm(BaseModel):
    upi_transaction_id: str = Field(..., pattern=r"^\d{12}$")

    @field_validator('upi_transaction_id', mode='before')
    def sanitize_txn(cls, v):
        return sanitize_input(v)


class CartTotals(BaseModel):
    subtotal: Decimal
    item_count: int
    mrp_total: Decimal
    savings: Decimal


# --- Products ---

class ProductForm(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1)
    brand: Optional[str] = None
    sku: Optional[str] = None
    product_code: Optional[str] = None
    price: Decimal = Field(..., gt=0)
    mrp: Optional[Decimal] = Field(None, ge=0)
    discount: Optional[Decimal] = Field(None, ge=0, le=100)
    stock: int = Field(0, ge=0)
    low_stock_alert: int = Field(0, ge=0)
    delivery_charge: Decimal = Field(Decimal(0), ge=0)
    free_delivery: bool = False
    sizes: List[str] = []
    colors: List[str] = []
    variants: List[str] = []
    short_description: Optional[str] = None
    full_description: Optional[str] = None
    key_features: List[str] = []
    material: Optional[str] = None
    dimensions: Optional[str] = None
    weight: Optional[str] = None
    warranty: Optional[str] = None
    tags: List[str] = []
    status: str = "Active"
    launch_date: Optional[datetime] = None
    return_policy: Optional[str] = None
    bank_offers: Optional[str] = None
    special_offer: Optional[str] = None

    @field_validator(
        'name', 'category', 'brand', 'sku', 'product_code', 'short_description',
        'full_description', 'material', 'dimensions', 'weight', 'warranty',
        'return_policy', 'bank_offers', 'special_offer', mode='before'
    )
    def sanitize_fields(cls, v):
        v = sanitize_input(v)
        return v if v != "" else None

    @field_validator('mrp', 'discount', 'launch_date', mode='before')
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator('delivery_charge', mode='before')
    def blank_to_zero(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return Decimal(0)
        return v

    @field_validator('low_stock_alert', mode='before')
    def blank_alert(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0
        return v

    @field_validator('sizes', 'colors', 'variants', 'key_features', 'tags', mode='before')
    def split_lists(cls, v):
        return split_csv(v)

    @field_validator('status', mode='before')
    def check_status(cls, v):
        v = sanitize_input(v) or "Active"
        if v not in PRODUCT_STATUSES:
            raise ValueError(f"Status must be one of {', '.join(PRODUCT_STATUSES)}")
        return v

    @model_validator(mode='after')
    def derive_discount(self):
        if self.discount is None and self.mrp and self.mrp > self.price:
            self.discount = ((self.mrp - self.price) / self.mrp * 100).quantize(Decimal("1"))
        return self

    def to_document(self) -> dict:
        doc = self.model_dump()
        for field in ("price", "mrp", "discount", "delivery_charge"):
            if doc[field] is not None:
                doc[field] = float(doc[field])
        return doc


class ProductResponse(BaseModel):
    id: str
    name: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = []
    price: float
    mrp: Optional[float] = None
    discount: Optional[float] = None
    main_image: Optional[str] = None
    stock: int
    status: str


# --- Admin ---

class Page(BaseModel):
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return max(1, -(-self.total // self.limit))

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.pages


class DashboardStats(BaseModel):
    total_users: int
    total_orders: int
    total_products: int
    total_revenue: float
    recent_orders: list
    recent_users: list
    low_stock_products: list
