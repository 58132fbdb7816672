from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db, guarded_write
from core.errors import NotFoundError
from core.tenancy import get_current_store, get_current_user
from models.category import ProductCategory
from models.product import Product
from models.store import Store
from models.user import User
from schemas.category import CategoryCreate, CategoryOut, CategoryUpdate
from services import entitlements

router = APIRouter(prefix="/products/categories", tags=["categories"])


def _get_category(db: Session, store: Store, category_id: int) -> ProductCategory:
    category = (
        db.query(ProductCategory)
        .filter(ProductCategory.store_id == store.id, ProductCategory.id == category_id)
        .one_or_none()
    )
    if not category:
        raise NotFoundError("Category not found", category_id=category_id)
    return category


@router.get("/", response_model=List[CategoryOut])
def list_categories(store: Store = Depends(get_current_store), db: Session = Depends(get_db)):
    return (
        db.query(ProductCategory)
        .filter(ProductCategory.store_id == store.id)
        .order_by(ProductCategory.display_order, ProductCategory.name)
        .all()
    )


@router.post("/", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryCreate,
    store: Store = Depends(get_current_store),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    check = entitlements.require_create_limit(db, "category", store.id, user.id)
    category = ProductCategory(store_id=store.id, **data.dict())
    with guarded_write(db, "create category", store_id=store.id):
        db.add(category)
        db.flush()
        entitlements.enforce_limit_after_insert(db, "category", store.id, check)
        db.commit()
        db.refresh(category)
    return category


@router.put("/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int, data: CategoryUpdate, store: Store = Depends(get_current_store), db: Session = Depends(get_db)
):
    category = _get_category(db, store, category_id)
    for key, value in data.dict(exclude_unset=True).items():
        setattr(category, key, value)
    with guarded_write(db, "update category", category_id=category.id):
        db.commit()
        db.refresh(category)
    return category


@router.delete("/{category_id}", status_code=204)
def delete_category(category_id: int, store: Store = Depends(get_current_store), db: Session = Depends(get_db)):
    category = _get_category(db, store, category_id)
    with guarded_write(db, "delete category", category_id=category.id):
        db.query(Product).filter(Product.category_id == category.id).update({Product.category_id: None})
        db.delete(category)
        db.commit()
    return None
