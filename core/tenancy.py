from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from core.db import get_db
from models.customer import Customer
from models.store import Store
from models.user import User
from security import jwt as jwt_utils
from services import entitlements
from services.stores import get_owner_store


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return authorization.split(" ", 1)[1]


def get_current_user(
    db: Session = Depends(get_db), authorization: Optional[str] = Header(default=None, alias="Authorization")
) -> User:
    token = _bearer_token(authorization)
    try:
        payload = jwt_utils.decode_access(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    user_id = payload.get("sub")
    user = db.query(User).filter(User.id == int(user_id)).one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_current_customer(
    db: Session = Depends(get_db), authorization: Optional[str] = Header(default=None, alias="Authorization")
) -> Customer:
    """Resolve the storefront shopper from a customer token."""
    token = _bearer_token(authorization)
    try:
        payload = jwt_utils.decode_customer(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    customer = (
        db.query(Customer)
        .filter(Customer.id == int(payload.get("sub")), Customer.store_id == payload.get("store_id"))
        .one_or_none()
    )
    if not customer:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Customer not found")
    return customer


def get_current_store(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> Store:
    """The store owned by the authenticated merchant."""
    return get_owner_store(db, user)


def require_feature(feature: str):
    """Dependency factory gating a route on a plan feature."""
    def _check_feature(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> User:
        entitlements.require_feature(db, feature, user.id)
        return user
    return _check_feature
