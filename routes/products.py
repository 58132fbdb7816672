from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlalchemy.orm import Session

from core.db import get_db, guarded_write
from core.errors import NotFoundError, ValidationError
from core.tenancy import get_current_store, get_current_user, require_feature
from models.category import ProductCategory
from models.product import Product
from models.store import Store
from models.user import User
from schemas.product import ProductCreate, ProductFeaturedUpdate, ProductOut, ProductStatusUpdate, ProductUpdate
from services import entitlements
from services.stores import slugify

router = APIRouter(prefix="/products", tags=["products"])


def _get_product(db: Session, store: Store, product_id: int) -> Product:
    product = db.query(Product).filter(Product.store_id == store.id, Product.id == product_id).one_or_none()
    if not product:
        raise NotFoundError("Product not found", product_id=product_id)
    return product


def _check_category(db: Session, store: Store, category_id: Optional[int]) -> None:
    if not category_id:
        return
    category = (
        db.query(ProductCategory)
        .filter(ProductCategory.id == category_id, ProductCategory.store_id == store.id)
        .one_or_none()
    )
    if not category:
        raise NotFoundError("Category not found for this store", category_id=category_id)


@router.get("/", response_model=List[ProductOut])
def list_products(
    category_id: Optional[int] = None,
    status: Optional[str] = None,
    store: Store = Depends(get_current_store),
    db: Session = Depends(get_db),
):
    qs = db.query(Product).filter(Product.store_id == store.id)
    if category_id:
        qs = qs.filter(Product.category_id == category_id)
    if status:
        qs = qs.filter(Product.status == status)
    return qs.order_by(Product.name).all()


@router.post("/", response_model=ProductOut, status_code=201)
def create_product(
    data: ProductCreate,
    store: Store = Depends(get_current_store),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    # Feature lookup may commit a downgrade, so it runs before the count is locked
    if data.is_featured:
        entitlements.require_feature(db, "promotions", user.id)
    check = entitlements.require_create_limit(db, "product", store.id, user.id)

    slug = slugify(data.slug or data.name)
    # Ensure slug not already used in this store
    existing = db.query(Product).filter(Product.store_id == store.id, Product.slug == slug).one_or_none()
    if existing:
        raise ValidationError("Slug already exists in this store", slug=slug)
    _check_category(db, store, data.category_id)

    product = Product(store_id=store.id, **{**data.dict(), "slug": slug})
    with guarded_write(db, "create product", store_id=store.id):
        db.add(product)
        db.flush()
        entitlements.enforce_limit_after_insert(db, "product", store.id, check)
        db.commit()
        db.refresh(product)
    return product


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: int, store: Store = Depends(get_current_store), db: Session = Depends(get_db)):
    return _get_product(db, store, product_id)


@router.put("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: int, data: ProductUpdate, store: Store = Depends(get_current_store), db: Session = Depends(get_db)
):
    product = _get_product(db, store, product_id)
    changes = data.dict(exclude_unset=True)
    if "category_id" in changes:
        _check_category(db, store, changes["category_id"])
    for key, value in changes.items():
        setattr(product, key, value)
    with guarded_write(db, "update product", product_id=product.id):
        db.commit()
        db.refresh(product)
    return product


@router.patch("/{product_id}/status", response_model=ProductOut)
def update_product_status(
    product_id: int, data: ProductStatusUpdate, store: Store = Depends(get_current_store), db: Session = Depends(get_db)
):
    product = _get_product(db, store, product_id)
    product.status = data.status
    with guarded_write(db, "update product status", product_id=product.id):
        db.commit()
        db.refresh(product)
    return product


@router.patch(
    "/{product_id}/featured",
    response_model=ProductOut,
    dependencies=[Depends(require_feature("promotions"))],
)
def update_product_featured(
    product_id: int, data: ProductFeaturedUpdate, store: Store = Depends(get_current_store), db: Session = Depends(get_db)
):
    product = _get_product(db, store, product_id)
    product.is_featured = data.is_featured
    with guarded_write(db, "feature product", product_id=product.id):
        db.commit()
        db.refresh(product)
    return product


@router.delete("/{product_id}", status_code=204)
def delete_product(product_id: int, store: Store = Depends(get_current_store), db: Session = Depends(get_db)):
    product = _get_product(db, store, product_id)
    try:
        db.delete(product)
        db.commit()
    except SQLIntegrityError:
        db.rollback()
        raise ValidationError("Product appears in orders, set it inactive instead", product_id=product_id)
    return None
