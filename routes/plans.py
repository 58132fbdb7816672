from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from core.errors import ValidationError
from core.tenancy import get_current_user
from models.store import Store
from models.user import User
from schemas.plan import CheckoutOut, CurrentPlanOut, PlanList, SubscribeRequest
from services import entitlements
from services.plan_catalog import tier_for_checkout_plan
from services.stripe_billing import stripe_billing

router = APIRouter(prefix="/plans", tags=["plans"])


@router.get("/current", response_model=CurrentPlanOut)
def current_plan(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    store = db.query(Store).filter(Store.user_id == user.id).one_or_none()
    return entitlements.plan_info(db, user, store.id if store else None)


@router.get("/all", response_model=PlanList)
def all_plans(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    current = entitlements.get_effective_tier(db, user.id)
    return {"plans": entitlements.list_plans(current), "current_plan": current.id}


@router.post("/subscribe", response_model=CheckoutOut)
def subscribe(data: SubscribeRequest, user: User = Depends(get_current_user)):
    tier = tier_for_checkout_plan(data.plan)
    if tier is None:
        raise ValidationError("Invalid plan", plan=data.plan)
    return {"checkout_url": stripe_billing.create_checkout_session(user, tier)}
