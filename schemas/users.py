from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr


class UserOut(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    plan_active: str
    plan_expire_at: Optional[datetime] = None
    subscription_status: Optional[str] = None

    class Config:
        from_attributes = True
