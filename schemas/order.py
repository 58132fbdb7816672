from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AnyHttpUrl, BaseModel, EmailStr, Field

PaymentMethodLiteral = Literal["pix", "cartao", "dinheiro"]


class CustomerIn(BaseModel):
    name: str = Field(min_length=3, max_length=150)
    phone: str = Field(min_length=10, max_length=30)
    email: Optional[EmailStr] = None


class AddressIn(BaseModel):
    street: str = Field(min_length=3, max_length=255)
    number: str = Field(min_length=1, max_length=20)
    complement: Optional[str] = None
    neighborhood: str = Field(min_length=2, max_length=150)
    city: str = Field(min_length=2, max_length=150)
    zip_code: str = Field(min_length=5, max_length=20)
    reference_point: Optional[str] = None


class OrderItemIn(BaseModel):
    product_id: int
    # Positive-quantity rule is enforced when the order is priced
    quantity: int
    notes: Optional[str] = None


class OrderCreate(BaseModel):
    customer: CustomerIn
    address: AddressIn
    items: List[OrderItemIn]
    coupon_code: Optional[str] = None
    payment_method: PaymentMethodLiteral
    change_for: Optional[float] = None
    notes: Optional[str] = None


class CustomerOrderCreate(OrderCreate):
    device_info: Optional[Dict[str, Any]] = None


class OrderStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None


class PaymentProofUpdate(BaseModel):
    payment_proof_url: AnyHttpUrl


class OrderCancelRequest(BaseModel):
    reason: Optional[str] = None


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    unit_price: float
    total_price: float
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class StatusHistoryOut(BaseModel):
    status: str
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OrderCustomerOut(BaseModel):
    id: int
    name: str
    phone: str
    email: Optional[str] = None

    class Config:
        from_attributes = True


class OrderAddressOut(BaseModel):
    id: int
    street: str
    number: str
    complement: Optional[str] = None
    neighborhood: str
    city: str
    zip_code: str
    reference_point: Optional[str] = None

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    store_id: int
    status: str
    payment_method: str
    payment_status: str
    payment_proof_url: Optional[str] = None
    change_for: Optional[float] = None
    subtotal: float
    delivery_fee: float
    discount: float
    total: float
    notes: Optional[str] = None
    origin: str
    coupon_id: Optional[int] = None
    canceled_by: Optional[str] = None
    canceled_reason: Optional[str] = None
    created_at: datetime
    customer: OrderCustomerOut
    address: OrderAddressOut
    items: List[OrderItemOut]
    status_history: List[StatusHistoryOut] = []

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class OrderList(BaseModel):
    orders: List[OrderOut]
    pagination: Pagination


class CustomerOrderReceipt(BaseModel):
    order: OrderOut
    token: str
    estimated_time: int


class CustomerOrderStatus(BaseModel):
    id: int
    status: str
    payment_status: str
    total: float
    created_at: datetime
    updated_at: datetime
    estimated_time_remaining: int
    can_cancel: bool
    history: List[StatusHistoryOut]
