from pydantic import BaseModel, Field, field_validator
from typing import Optional


class CategoryCreate(BaseModel):
    name: str = Field(min_length=2, max_length=150)
    description: Optional[str] = None
    display_order: int = 0


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=150)
    description: Optional[str] = None
    display_order: Optional[int] = None

    @field_validator("name", "display_order")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("cannot be null")
        return v


class CategoryOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    display_order: int

    class Config:
        from_attributes = True
