from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from schemas.order import OrderAddressOut, OrderCustomerOut


class IdentifyRequest(BaseModel):
    name: str = Field(min_length=3, max_length=150)
    phone: str = Field(min_length=10, max_length=30)
    email: Optional[EmailStr] = None


class RecentOrderOut(BaseModel):
    id: int
    status: str
    total: float
    created_at: datetime

    class Config:
        from_attributes = True


class IdentifyResponse(BaseModel):
    customer: OrderCustomerOut
    is_new: bool
    addresses: List[OrderAddressOut]
    recent_orders: List[RecentOrderOut]
    token: str
