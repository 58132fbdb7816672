from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from core.tenancy import get_current_store
from models.store import Store
from schemas.dashboard import InsightsOut
from services import insights

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/insights", response_model=InsightsOut)
def dashboard_insights(store: Store = Depends(get_current_store), db: Session = Depends(get_db)):
    """Order, revenue and customer figures for the merchant's store."""
    return {"insights": insights.dashboard_insights(db, store.id)}
