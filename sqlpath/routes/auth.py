"""
sqlpath/routes/auth.py
Registration, login and current account, rate limited per client IP
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordRequestForm
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from sqlpath.database import get_db
from sqlpath.errors import ErrorCode
from sqlpath.orm.user import User
from sqlpath.rbac import get_current_user, token_for_user, hash_password_async, verify_password_async
from sqlpath.schemas.progress import UserRegister, UserLogin, Token, StandardResponse, ok

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])
limiter = Limiter(key_func=get_remote_address)


def _invalid_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "success": False,
            "error": "Unauthorized",
            "message": "Invalid email or password",
            "code": ErrorCode.AUTH_INVALID
        }
    )


async def _authenticate(db: AsyncSession, email: str, password: str) -> User:
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    password_valid = False
    if user and user.is_active:
        password_valid = await verify_password_async(password, user.password_hash)

    if not user or not password_valid:
        logger.warning(f"Invalid credentials for email: {email}")
        raise _invalid_credentials()
    return user


# ================= ROUTES =================

@router.post("/register", response_model=Token, status_code=201)
@limiter.limit("10/minute")
async def register(
    request: Request,  # Required by slowapi
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    """New learners start on the free plan."""
    logger.info(f"Registration attempt for email: {user_data.email}")

    result = await db.execute(select(User).where(User.email == user_data.email))
    if result.scalar_one_or_none():
        logger.warning(f"Email already registered: {user_data.email}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "success": False,
                "error": "Bad Request",
                "message": "Email already registered",
                "code": ErrorCode.INVALID_INPUT,
                "details": {"field": "email"}
            }
        )

    user = User(
        email=user_data.email,
        username=user_data.username,
        password_hash=await hash_password_async(user_data.password),
        subscription_plan="free",
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info(f"User registered successfully: {user.email} (id={user.id})")
    return Token(access_token=token_for_user(user), user_id=user.id, is_admin=bool(user.is_admin))


@router.post("/login", response_model=Token)
@limiter.limit("30/minute")
async def login(
    request: Request,  # Required by slowapi
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db),
):
    user = await _authenticate(db, credentials.email, credentials.password)
    logger.info(f"User logged in: {user.email}")
    return Token(access_token=token_for_user(user), user_id=user.id, is_admin=bool(user.is_admin))


@router.post("/login/form", response_model=Token)
@limiter.limit("30/minute")
async def login_form(
    request: Request,  # Required by slowapi
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    """OAuth2 form login (used by the docs' Authorize button)."""
    user = await _authenticate(db, form_data.username, form_data.password)
    return Token(access_token=token_for_user(user), user_id=user.id, is_admin=bool(user.is_admin))


@router.get("/me", response_model=StandardResponse)
async def me(current_user: User = Depends(get_current_user)):
    return ok("Current user", user=current_user.to_dict())
