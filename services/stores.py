import logging
import re
import time
import unicodedata
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from core.db import guarded_write
from core.errors import NotFoundError, ValidationError
from models.store import Store
from models.user import User

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_METHODS = ["dinheiro", "cartao"]


def slugify(text: str) -> str:
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = text.strip().lower()
    text = re.sub(r"[^a-z0-9]+", "-", text)
    return text.strip("-")


def unique_store_slug(db: Session, name: str, exclude_store_id: Optional[int] = None) -> str:
    """Slug for ``name``; a slug taken by another store gets a timestamp fragment appended."""
    base = slugify(name) or "loja"
    taken = db.query(Store.id).filter(Store.slug == base)
    if exclude_store_id is not None:
        taken = taken.filter(Store.id != exclude_store_id)
    if taken.first() is None:
        return base
    return f"{base}-{str(int(time.time() * 1000))[-6:]}"


def get_owner_store(db: Session, user: User) -> Store:
    store = db.query(Store).filter(Store.user_id == user.id).one_or_none()
    if not store:
        raise NotFoundError("Store not found. Create a store first.")
    return store


def get_active_store(db: Session, store_id: int) -> Store:
    store = db.query(Store).filter(Store.id == store_id, Store.status == "active").one_or_none()
    if not store:
        raise NotFoundError("Store not found or inactive", store_id=store_id)
    return store


def get_active_store_by_slug(db: Session, slug: str) -> Store:
    store = db.query(Store).filter(Store.slug == slug, Store.status == "active").one_or_none()
    if not store:
        raise NotFoundError("Store not found or inactive", slug=slug)
    return store


def accepted_payment_methods(store: Store) -> list:
    return list(store.payment_methods or DEFAULT_PAYMENT_METHODS)


def create_store(db: Session, user: User, data: Dict[str, Any]) -> Store:
    if db.query(Store.id).filter(Store.user_id == user.id).first() is not None:
        raise ValidationError("User already has a store")

    store = Store(
        user_id=user.id,
        name=data["name"].strip(),
        slug=unique_store_slug(db, data["name"]),
        address=data.get("address"),
        neighborhood=data.get("neighborhood"),
        city=data.get("city"),
        logo_url=data.get("logo_url"),
        banner_url=data.get("banner_url"),
        theme=data.get("theme") or "default",
        payment_methods=data.get("payment_methods") or list(DEFAULT_PAYMENT_METHODS),
        business_hours=data.get("business_hours"),
        status="active",
    )
    with guarded_write(db, "create store", user_id=user.id):
        db.add(store)
        db.commit()
        db.refresh(store)
    logger.info("Store %s (%s) created for user %s", store.id, store.slug, user.id)
    return store


def update_store(db: Session, store: Store, changes: Dict[str, Any]) -> Store:
    if "name" in changes and changes["name"]:
        changes["name"] = changes["name"].strip()
        if changes["name"] != store.name:
            store.slug = unique_store_slug(db, changes["name"], exclude_store_id=store.id)
    for key, value in changes.items():
        setattr(store, key, value)
    with guarded_write(db, "update store", store_id=store.id):
        db.commit()
        db.refresh(store)
    return store


def set_store_status(db: Session, store: Store, status: str) -> Store:
    if status not in ("active", "inactive"):
        raise ValidationError("Invalid store status", allowed=["active", "inactive"])
    store.status = status
    with guarded_write(db, "update store status", store_id=store.id):
        db.commit()
        db.refresh(store)
    return store
