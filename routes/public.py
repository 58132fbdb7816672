"""Storefront endpoints used by shoppers. No merchant authentication."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from core.config import settings
from core.db import get_db
from core.errors import ValidationError
from core.tenancy import get_current_customer
from models.category import ProductCategory
from models.customer import Customer
from models.product import Product
from schemas.category import CategoryOut
from schemas.customer import IdentifyRequest, IdentifyResponse
from schemas.order import (
    CustomerOrderCreate,
    CustomerOrderReceipt,
    CustomerOrderStatus,
    OrderCancelRequest,
    OrderOut,
)
from schemas.product import ProductOut
from schemas.store import StoreOut
from schemas.upload import UploadOut, UploadRequest
from services import orders as order_service
from services import rate_limit
from services.cloudinary import cloudinary_service
from services.stores import get_active_store, get_active_store_by_slug

router = APIRouter(prefix="/public", tags=["storefront"])


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.get("/stores/{slug}", response_model=StoreOut)
def get_storefront(slug: str, db: Session = Depends(get_db)):
    return get_active_store_by_slug(db, slug)


@router.get("/stores/{store_id}/products", response_model=List[ProductOut])
def list_storefront_products(store_id: int, category_id: Optional[int] = None, db: Session = Depends(get_db)):
    store = get_active_store(db, store_id)
    qs = db.query(Product).filter(Product.store_id == store.id, Product.status == "active")
    if category_id:
        qs = qs.filter(Product.category_id == category_id)
    return qs.order_by(Product.is_featured.desc(), Product.name).all()


@router.get("/stores/{store_id}/categories", response_model=List[CategoryOut])
def list_storefront_categories(store_id: int, db: Session = Depends(get_db)):
    store = get_active_store(db, store_id)
    return (
        db.query(ProductCategory)
        .filter(ProductCategory.store_id == store.id)
        .order_by(ProductCategory.display_order, ProductCategory.name)
        .all()
    )


@router.post("/stores/{store_id}/identify", response_model=IdentifyResponse)
def identify(store_id: int, data: IdentifyRequest, request: Request, db: Session = Depends(get_db)):
    rate_limit.hit("identify", f"{store_id}:{_client_ip(request)}", settings.IDENTIFY_RATE_LIMIT)
    return order_service.identify_customer(db, store_id, data.name, data.phone, data.email)


@router.post("/stores/{store_id}/orders", response_model=CustomerOrderReceipt, status_code=201)
def place_order(store_id: int, data: CustomerOrderCreate, request: Request, db: Session = Depends(get_db)):
    identity = rate_limit.order_identity(data.customer.phone, _client_ip(request))
    rate_limit.hit("order", f"{store_id}:{identity}", settings.ORDER_RATE_LIMIT)
    return order_service.create_customer_order(db, store_id, data)


@router.get("/orders/{order_id}/status", response_model=CustomerOrderStatus)
def order_status(order_id: int, customer: Customer = Depends(get_current_customer), db: Session = Depends(get_db)):
    return order_service.order_status_for_customer(db, order_id, customer)


@router.post("/orders/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    data: Optional[OrderCancelRequest] = None,
    customer: Customer = Depends(get_current_customer),
    db: Session = Depends(get_db),
):
    return order_service.cancel_order(db, order_id, customer, data.reason if data else None)


@router.post("/uploads/payment-proof", response_model=UploadOut, status_code=201)
def upload_payment_proof(data: UploadRequest, customer: Customer = Depends(get_current_customer)):
    ok, asset, error = cloudinary_service.upload(data.file, "payment_proofs")
    if not ok:
        raise ValidationError(error or "Upload failed")
    return asset
