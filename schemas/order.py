from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, model_validator
from typing import List, Optional

from models.order import OrderStatus, OrderType

MAX_LINE_QUANTITY = 10_000


class OrderItemIn(BaseModel):
    product_id: int
    quantity: int = Field(ge=1, le=MAX_LINE_QUANTITY)
    special_instructions: Optional[str] = Field(default=None, max_length=500)


class OrderCreate(BaseModel):
    customer_id: Optional[int] = None
    items: List[OrderItemIn] = Field(min_length=1)
    order_type: OrderType = OrderType.PICKUP
    scheduled_time: Optional[datetime] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    payment_method: Optional[str] = Field(default=None, max_length=50)

    @model_validator(mode="after")
    def check_delivery_address(self):
        if self.order_type == OrderType.DELIVERY and not (self.delivery_address or "").strip():
            raise ValueError("Delivery address is required for delivery orders")
        return self


class OrderStatusUpdate(BaseModel):
    # Omitted status advances the order to its next state; unknown values are rejected by the status machine
    status: Optional[str] = None


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    special_instructions: Optional[str] = None

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    order_number: str
    customer_id: Optional[int] = None
    total_amount: Decimal
    status: OrderStatus
    order_type: OrderType
    scheduled_time: Optional[datetime] = None
    delivery_address: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemOut]

    class Config:
        from_attributes = True


class OrderSummary(BaseModel):
    id: int
    order_number: str
    customer_id: Optional[int] = None
    total_amount: Decimal
    status: OrderStatus
    order_type: OrderType
    created_at: datetime
    item_count: int = 0


class OrderStats(BaseModel):
    total_orders: int
    total_revenue: Decimal
    average_order_value: Decimal
    completed_orders: int
    cancelled_orders: int
