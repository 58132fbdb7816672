"""Merchant password hashing (bcrypt via passlib)."""
from passlib.context import CryptContext

# bcrypt only reads the first 72 bytes
BCRYPT_MAX_LENGTH = 72

_pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__default_rounds=12, bcrypt__min_rounds=12
)


def hash_password(password: str) -> str:
    return _pwd_context.hash(password[:BCRYPT_MAX_LENGTH])


def verify_password(password: str, password_hash: str) -> bool:
    return _pwd_context.verify(password[:BCRYPT_MAX_LENGTH], password_hash)


def password_needs_rehash(password_hash: str) -> bool:
    """True when ``password_hash`` was made with outdated scheme settings."""
    return _pwd_context.needs_update(password_hash)
