"""
Response Schemas for the storefront API

Each Pydantic model mirrors a table in models.py and is built straight from
the ORM object (from_attributes). Secrets such as the password hash never
appear here.

We expose:
- User (public fields only)
- Product
- Order with its items, each item embedding its product
- AdminConfig
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ProductType = Literal["physical", "digital"]
OrderStatus = Literal["pending", "confirmed", "shipped", "delivered"]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class User(ORMModel):
    id: str
    email: str
    name: str
    role: str = Field("user", description="user or admin")


class Product(ORMModel):
    id: str
    name: str
    description: str
    price: Decimal = Field(..., description="Unit price, 2 decimals")
    image_url: str
    type: ProductType
    age_range: str
    category: str
    stock: Optional[int] = Field(None, description="None for unlimited (digital)")
    is_active: bool = True
    created_at: Optional[datetime] = None


class OrderItem(ORMModel):
    id: str
    order_id: str
    product_id: str
    quantity: int
    price: Decimal = Field(..., description="Frozen unit price at order time")
    product: Product


class Order(ORMModel):
    id: str
    user_id: Optional[str] = None
    total: Decimal
    status: str = Field("pending", description="pending | confirmed | shipped | delivered")
    customer_name: str
    customer_email: str
    customer_phone: str
    shipping_address: str
    created_at: datetime
    items: List[OrderItem] = Field(default_factory=list)


class AdminConfig(ORMModel):
    smtp_email: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[str] = None
    mp_access_token: Optional[str] = None
    mp_public_key: Optional[str] = None
    updated_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    user: User
    access_token: str
    token_type: str = "bearer"
