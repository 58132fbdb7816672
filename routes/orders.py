from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.db import get_db
from core.tenancy import get_current_user
from models.user import User
from schemas.order import OrderCreate, OrderList, OrderOut, OrderStatusUpdate, PaymentProofUpdate
from services import orders as order_service

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/", response_model=OrderList)
def list_orders(
    status: Optional[str] = None,
    payment_method: Optional[str] = None,
    payment_status: Optional[str] = None,
    customer_phone: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return order_service.list_orders(
        db,
        user,
        status=status,
        payment_method=payment_method,
        payment_status=payment_status,
        customer_phone=customer_phone,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(data: OrderCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return order_service.create_order(db, user, data)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return order_service.get_order(db, order_id, user)


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: int, data: OrderStatusUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return order_service.update_status(db, order_id, data.status, data.notes, user)


@router.patch("/{order_id}/payment-proof", response_model=OrderOut)
def update_payment_proof(
    order_id: int, data: PaymentProofUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return order_service.update_payment_proof(db, order_id, str(data.payment_proof_url), user)


@router.post("/{order_id}/confirm-payment", response_model=OrderOut)
def confirm_payment(order_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return order_service.confirm_payment(db, order_id, user)
