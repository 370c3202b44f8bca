"""
Per-request identity.

The session is a signed token in an HttpOnly cookie carrying the user id and
role. Every request resolves its own user from that cookie; admins are
ordinary users whose record has role "admin".
"""
import logging
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Request, Response
from pymongo.errors import DuplicateKeyError

from storefront.models import UserDB, ROLE_ADMIN, ROLE_CUSTOMER
from storefront.schemas import RegisterStep1, RegisterStep2
from shared.utils import (
    settings, pwd_context, get_password_hash, verify_password,
    create_access_token, verify_token, from_mongo, str_to_oid,
    UnauthorizedException, ForbiddenException, DuplicateIdentityException,
    NotFoundException,
)

logger = logging.getLogger("storefront")


# --- Dependencies ---
def get_db(request: Request):
    return request.app.mongodb


async def get_optional_user(request: Request, db=Depends(get_db)) -> Optional[UserDB]:
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        return None
    try:
        payload = verify_token(token, purpose="session")
    except UnauthorizedException:
        return None
    sub = payload.get("sub")
    if not sub:
        return None
    try:
        oid = str_to_oid(sub)
    except NotFoundException:
        return None
    doc = await db.users.find_one({"_id": oid})
    if not doc:
        return None
    user = from_mongo(UserDB, doc)
    request.state.user_id = user.id
    return user


async def get_current_user(user: Optional[UserDB] = Depends(get_optional_user)) -> UserDB:
    if user is None:
        raise UnauthorizedException("Please log in to continue")
    return user


async def require_admin(user: UserDB = Depends(get_current_user)) -> UserDB:
    if not user.is_admin:
        raise ForbiddenException("Administrator access required")
    return user


# --- Sessions ---
def issue_session(response: Response, user: UserDB):
    token = create_access_token(
        data={"sub": user.id, "role": user.role},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=settings.COOKIE_SECURE,
    )


def clear_session(response: Response):
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    response.delete_cookie(settings.BUY_NOW_COOKIE_NAME)


async def authenticate(db, identifier: str, password: str) -> UserDB:
    """Single login path for customers and admins; email or phone identifies the account."""
    doc = await db.users.find_one({"$or": [{"email": identifier.lower()}, {"phone": identifier}]})
    if not doc:
        # Keep timing similar whether or not the account exists
        pwd_context.dummy_verify()
        raise UnauthorizedException("Incorrect email/phone or password")
    user = from_mongo(UserDB, doc)
    if not verify_password(password, user.password_hash):
        raise UnauthorizedException("Incorrect email/phone or password")
    return user


# --- Registration ---
async def ensure_identity_available(db, email: str, phone: str):
    existing = await db.users.find_one({"$or": [{"email": email.lower()}, {"phone": phone}]})
    if existing:
        raise DuplicateIdentityException()


def create_registration_token(step1: RegisterStep1) -> str:
    """Carries step one to step two; only the password hash leaves the server."""
    return create_access_token(
        data={
            "email": step1.email.lower(),
            "phone": step1.phone,
            "password_hash": get_password_hash(step1.password),
        },
        expires_delta=timedelta(minutes=settings.REGISTRATION_TOKEN_EXPIRE_MINUTES),
        purpose="register",
    )


def read_registration_token(token: str) -> dict:
    try:
        return verify_token(token, purpose="register")
    except UnauthorizedException:
        raise UnauthorizedException("Your registration session expired, please start again")


async def create_user(db, identity: dict, address: RegisterStep2, role: str = ROLE_CUSTOMER) -> UserDB:
    user = UserDB(
        email=identity["email"],
        phone=identity["phone"],
        password_hash=identity["password_hash"],
        role=role,
        **address.model_dump(),
    )
    try:
        result = await db.users.insert_one(user.model_dump(by_alias=True, exclude={"id"}))
    except DuplicateKeyError:
        raise DuplicateIdentityException()
    user.id = str(result.inserted_id)
    logger.info("User registered", extra={"user_id": user.id})
    return user


async def seed_admin(db) -> Optional[UserDB]:
    """Create the configured admin account on startup if it does not exist yet."""
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        return None
    email = settings.ADMIN_EMAIL.lower()
    doc = await db.users.find_one({"email": email})
    if doc:
        return from_mongo(UserDB, doc)
    user = UserDB(
        email=email,
        phone=settings.ADMIN_PHONE or "0000000000",
        password_hash=get_password_hash(settings.ADMIN_PASSWORD),
        role=ROLE_ADMIN,
    )
    result = await db.users.insert_one(user.model_dump(by_alias=True, exclude={"id"}))
    user.id = str(result.inserted_id)
    logger.info("Admin account created", extra={"user_id": user.id})
    return user
