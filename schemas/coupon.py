from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class CouponCreate(BaseModel):
    code: str = Field(min_length=3, max_length=50)
    discount_type: Literal["percentage", "fixed"]
    discount_value: float = Field(gt=0)
    min_order_value: Optional[float] = Field(default=None, ge=0)
    max_discount_amount: Optional[float] = Field(default=None, gt=0)
    valid_from: datetime
    valid_until: datetime
    usage_limit: Optional[int] = Field(default=None, gt=0)
    is_active: bool = True

    @field_validator("valid_from", "valid_until")
    @classmethod
    def as_naive_utc(cls, v: datetime) -> datetime:
        return _naive_utc(v)

    @model_validator(mode="after")
    def check_window(self):
        if self.valid_until < self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("percentage discount cannot exceed 100")
        return self


class CouponUpdate(BaseModel):
    min_order_value: Optional[float] = Field(default=None, ge=0)
    max_discount_amount: Optional[float] = Field(default=None, gt=0)
    valid_until: Optional[datetime] = None
    usage_limit: Optional[int] = Field(default=None, gt=0)
    is_active: Optional[bool] = None

    @field_validator("valid_until", "is_active")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("cannot be null")
        return _naive_utc(v) if isinstance(v, datetime) else v


class CouponOut(BaseModel):
    id: int
    code: str
    discount_type: str
    discount_value: float
    min_order_value: Optional[float] = None
    max_discount_amount: Optional[float] = None
    valid_from: datetime
    valid_until: datetime
    usage_limit: Optional[int] = None
    usage_count: int
    is_active: bool

    class Config:
        from_attributes = True
