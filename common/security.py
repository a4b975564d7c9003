"""
Storefront API - Security Utilities
====================================
JWT bearer tokens and password hashing.
"""

import logging
from datetime import timedelta
from typing import Optional

from jose import jwt, JWTError
from passlib.context import CryptContext

from config.settings import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from common.helpers import now_utc

logger = logging.getLogger("storefront.security")

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


# ==========================================
# Passwords
# ==========================================

def hash_password(plain_password: str) -> str:
    return pwd_context.hash(plain_password)


def check_password(plain_password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(plain_password, password_hash)
    except ValueError:
        logger.warning("Unrecognized password hash format")
        return False


# ==========================================
# JWT Tokens
# ==========================================

def create_token(user) -> str:
    """Create a bearer token carrying the user's id, email and role."""
    if not user or not user.role:
        raise ValueError("Cannot issue token: user role is missing.")
    to_encode = {
        "sub": str(user.id),
        "email": user.email,
        "role": getattr(user.role, "value", user.role),
        "exp": now_utc() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode a JWT token. Returns payload or None (bad signature, expired, malformed)."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    """'Bearer <token>' -> '<token>'."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[7:].strip()
    return token or None
