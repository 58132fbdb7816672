from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from core.tenancy import get_current_store, get_current_user
from models.store import Store
from models.user import User
from schemas.store import StoreCreate, StoreOut, StoreStatusUpdate, StoreUpdate
from services import stores as store_service

router = APIRouter(prefix="/stores", tags=["stores"])


@router.post("/", response_model=StoreOut, status_code=201)
def create_store(data: StoreCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return store_service.create_store(db, user, data.dict())


@router.get("/", response_model=StoreOut)
def get_store(store: Store = Depends(get_current_store)):
    return store


@router.put("/", response_model=StoreOut)
def update_store(data: StoreUpdate, store: Store = Depends(get_current_store), db: Session = Depends(get_db)):
    return store_service.update_store(db, store, data.dict(exclude_unset=True))


@router.patch("/status", response_model=StoreOut)
def update_store_status(data: StoreStatusUpdate, store: Store = Depends(get_current_store), db: Session = Depends(get_db)):
    return store_service.set_store_status(db, store, data.status)
