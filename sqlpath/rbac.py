"""
sqlpath/rbac.py
Authentication and admin access control

Learners and admins share one account table; admin routes require
User.is_admin. Tier-based limits are not enforced here but by the
access gate (sqlpath/services/access_gate.py).
"""
import os
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from jose import JWTError, jwt
from passlib.context import CryptContext

from sqlpath.database import get_db
from sqlpath.orm.user import User
from sqlpath.errors import ErrorCode

logger = logging.getLogger(__name__)

# ================= CONFIG =================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=10,
)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login/form")


# ================= PASSWORDS =================

def normalize_password(password: str) -> str:
    """
    bcrypt only supports 72 bytes.
    Truncate after UTF-8 encoding.
    """
    encoded = password.encode("utf-8")
    if len(encoded) > 72:
        encoded = encoded[:72]
    return encoded.decode("utf-8", errors="ignore")


def hash_password(password: str) -> str:
    return pwd_context.hash(normalize_password(password))


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(normalize_password(plain), hashed)


async def hash_password_async(password: str) -> str:
    """bcrypt blocks; run it off the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, hash_password, password)


async def verify_password_async(plain: str, hashed: str) -> bool:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, verify_password, plain, hashed)


# ================= TOKEN UTILS =================

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token with email (sub), user_id and admin flag"""
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({
        "exp": expire,
        "type": "access"
    })
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def token_for_user(user: User) -> str:
    return create_access_token({
        "sub": user.email,
        "user_id": user.id,
        "is_admin": bool(user.is_admin),
    })


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate JWT token"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


# ================= AUTH DEPENDENCIES =================

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get current authenticated user from JWT access token.
    Returns 401 if token is invalid or expired.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "success": False,
            "error": "Unauthorized",
            "message": "Invalid or expired token",
            "code": ErrorCode.AUTH_INVALID
        },
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        raise credentials_exception

    email = payload.get("sub")
    if not email:
        raise credentials_exception

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if not user or not user.is_active:
        raise credentials_exception

    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Admin console guard."""
    if not current_user.is_admin:
        logger.warning(f"Non-admin user {current_user.id} attempted an admin operation")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "success": False,
                "error": "Forbidden",
                "message": "Admin access required",
                "code": ErrorCode.ADMIN_REQUIRED
            }
        )
    return current_user
