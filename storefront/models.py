from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, EmailStr, Field
from bson import ObjectId

ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"

ORDER_SOURCE_CART = "cart"
ORDER_SOURCE_BUY_NOW = "buy_now"

# Upper bound for one cart line, merged quantities included
MAX_LINE_QUANTITY = 1000

# The UPI transaction id is typed in by the customer and never checked against a gateway
PAYMENT_UNVERIFIED = "unverified_claim"


def new_line_id() -> str:
    return str(ObjectId())


class Address(BaseModel):
    state: str = ""
    district: str = ""
    area_name: str = ""
    pincode: str = ""


class LineSnapshot(BaseModel):
    """Product fields copied at a point in time; later product edits do not reach it."""
    product_id: str
    name: str
    price: float
    mrp: Optional[float] = None
    discount: Optional[float] = None
    main_image: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    quantity: int
    size: str = ""
    color: str = ""

    def key(self) -> tuple:
        return (self.product_id, self.size, self.color)


class CartLineDB(LineSnapshot):
    line_id: str = Field(default_factory=new_line_id)
    added_at: datetime = Field(default_factory=datetime.utcnow)


class OrderLineDB(LineSnapshot):
    pass


class UserDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    email: EmailStr
    phone: str
    password_hash: str
    role: str = ROLE_CUSTOMER
    state: str = ""
    district: str = ""
    area_name: str = ""
    pincode: str = ""
    cart: List[CartLineDB] = []
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True

    @property
    def address(self) -> Address:
        return Address(
            state=self.state,
            district=self.district,
            area_name=self.area_name,
            pincode=self.pincode,
        )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class ProductDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    name: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    sku: Optional[str] = None
    product_code: Optional[str] = None
    price: float = 0
    mrp: Optional[float] = None
    discount: Optional[float] = None
    stock: int = 0
    low_stock_alert: int = 0
    delivery_charge: float = 0
    free_delivery: bool = False
    sizes: List[str] = []
    colors: List[str] = []
    variants: List[str] = []
    main_image: Optional[str] = None
    additional_images: List[str] = []
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
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.low_stock_alert


class UserDetails(BaseModel):
    email: str
    phone: str
    address: Address


class OrderDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    user_id: str
    user_details: UserDetails
    products: List[OrderLineDB]
    total_amount: float
    upi_transaction_id: str
    payment_status: str = PAYMENT_UNVERIFIED
    source: str = ORDER_SOURCE_CART
    order_date: datetime = Field(default_factory=datetime.utcnow)
    # Nothing moves an order out of Pending yet
    status: str = "Pending"

    class Config:
        populate_by_name = True

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.products)
