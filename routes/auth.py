import jwt
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db, guarded_write
from core.tenancy import get_current_user
from models.user import User
from schemas.auth import RegisterRequest, LoginRequest, TokenPair, RefreshTokenRequest
from schemas.users import UserOut
from security.password import hash_password, password_needs_rehash, verify_password
from security import jwt as jwt_utils
from services.plan_catalog import FREE_TIER_ID

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_pair(user: User) -> TokenPair:
    access = jwt_utils.create_access_token(str(user.id), {"email": user.email})
    refresh = jwt_utils.create_refresh_token(str(user.id))
    return TokenPair(access_token=access, refresh_token=refresh)


@router.post("/register", response_model=UserOut, status_code=201)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    existing = db.query(User).filter(User.email == data.email).one_or_none()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")
    user = User(
        first_name=data.first_name,
        last_name=data.last_name,
        email=data.email,
        password_hash=hash_password(data.password),
        phone=data.phone,
        plan_active=FREE_TIER_ID,
    )
    with guarded_write(db, "register user"):
        db.add(user)
        db.commit()
        db.refresh(user)
    return user


@router.post("/login", response_model=TokenPair)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email).one_or_none()
    if not user or not verify_password(data.password, user.password_hash):
        raise HTTPException(status_code=400, detail="Invalid credentials")
    if password_needs_rehash(user.password_hash):
        with guarded_write(db, "rehash password", user_id=user.id):
            user.password_hash = hash_password(data.password)
            db.commit()
    return _token_pair(user)


@router.post("/refresh-token", response_model=TokenPair)
def refresh_token(data: RefreshTokenRequest, db: Session = Depends(get_db)):
    try:
        payload = jwt_utils.decode_refresh(data.refresh_token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    user_id = payload.get("sub")
    user = db.query(User).filter(User.id == int(user_id)).one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return _token_pair(user)


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user
