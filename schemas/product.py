from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional

ProductStatus = Literal["active", "inactive", "out_of_stock"]


class ProductCreate(BaseModel):
    name: str = Field(min_length=3, max_length=200)
    slug: Optional[str] = None
    description: Optional[str] = None
    price: float = Field(gt=0)
    discount_price: Optional[float] = Field(default=None, gt=0)
    image_url: Optional[str] = None
    category_id: Optional[int] = None
    status: ProductStatus = "active"
    is_featured: bool = False


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, gt=0)
    discount_price: Optional[float] = Field(default=None, gt=0)
    image_url: Optional[str] = None
    category_id: Optional[int] = None

    @field_validator("name", "price")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("cannot be null")
        return v


class ProductStatusUpdate(BaseModel):
    status: ProductStatus


class ProductFeaturedUpdate(BaseModel):
    is_featured: bool


class ProductOut(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    price: float
    discount_price: Optional[float] = None
    image_url: Optional[str] = None
    category_id: Optional[int] = None
    status: str
    is_featured: bool

    class Config:
        from_attributes = True
