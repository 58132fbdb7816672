from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from schemas.order import PaymentMethodLiteral


class StoreCreate(BaseModel):
    name: str = Field(min_length=3, max_length=150)
    address: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    theme: str = "default"
    payment_methods: List[PaymentMethodLiteral] = ["dinheiro", "cartao"]
    business_hours: Optional[Dict[str, Any]] = None


class StoreUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=3, max_length=150)
    address: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    theme: Optional[str] = None
    payment_methods: Optional[List[PaymentMethodLiteral]] = None
    business_hours: Optional[Dict[str, Any]] = None

    @field_validator("name", "theme")
    @classmethod
    def not_null(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("cannot be null")
        return v


class StoreStatusUpdate(BaseModel):
    status: Literal["active", "inactive"]


class StoreOut(BaseModel):
    id: int
    name: str
    slug: str
    address: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    theme: str
    payment_methods: Optional[List[str]] = None
    business_hours: Optional[Dict[str, Any]] = None
    status: str

    class Config:
        from_attributes = True
