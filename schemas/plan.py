from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel


class PlanLimits(BaseModel):
    products: Optional[int] = None
    categories: Optional[int] = None


class UsageOut(BaseModel):
    current: int
    limit: Optional[int] = None
    percentage: int


class PlanUsage(BaseModel):
    products: UsageOut
    categories: UsageOut


class PlanOut(BaseModel):
    id: str
    name: str
    description: str
    limits: PlanLimits
    features: List[str]


class CurrentPlanOut(PlanOut):
    status: str
    subscription_status: Optional[str] = None
    expires_at: Optional[datetime] = None
    days_remaining: Optional[int] = None
    usage: Optional[PlanUsage] = None


class PlanListItem(PlanOut):
    is_current: bool


class PlanList(BaseModel):
    plans: List[PlanListItem]
    current_plan: str


class SubscribeRequest(BaseModel):
    plan: Literal["vitrine", "prateleira", "mercado"]


class CheckoutOut(BaseModel):
    checkout_url: str
