"""
Password hashing helpers.
"""
import os

from passlib.context import CryptContext

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=int(os.getenv("BCRYPT_ROUNDS", "12")),
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a password against its hash; malformed hashes never verify."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False
