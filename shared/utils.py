from datetime import datetime, timedelta
from typing import Optional, Generic, TypeVar, Awaitable, Callable, List
import asyncio
import logging
import uuid

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException, status
from motor.motor_asyncio import AsyncIOMotorClient
from passlib.context import CryptContext
from pydantic import BaseModel
from pydantic_settings import BaseSettings
from pymongo.errors import ConnectionFailure
from jose import JWTError, jwt

logger = logging.getLogger("storefront")

# --- Configuration ---
class Settings(BaseSettings):
    MONGO_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "ecommerce"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12
    REGISTRATION_TOKEN_EXPIRE_MINUTES: int = 15
    BUY_NOW_EXPIRE_MINUTES: int = 30
    SESSION_COOKIE_NAME: str = "session"
    BUY_NOW_COOKIE_NAME: str = "buy_now"
    COOKIE_SECURE: bool = False
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024
    ADMIN_EMAIL: Optional[str] = None
    ADMIN_PHONE: Optional[str] = None
    ADMIN_PASSWORD: Optional[str] = None
    LOGIN_RATE_LIMIT: str = "5/minute"
    REGISTER_RATE_LIMIT: str = "10/minute"
    READ_RETRY_ATTEMPTS: int = 3
    CORS_ORIGINS: List[str] = []
    RECENT_ITEMS_LIMIT: int = 5
    PAGE_SIZE: int = 20

    class Config:
        env_file = ".env"

settings = Settings()

# --- Database ---
def get_db_client(url: str = settings.MONGO_URL) -> AsyncIOMotorClient:
    return AsyncIOMotorClient(url)

T = TypeVar("T")

def from_mongo(model_cls: type, doc: dict):
    """Build a model from a raw document, turning the ObjectId into its hex string."""
    doc = dict(doc)
    if "_id" in doc:
        doc["_id"] = str(doc["_id"])
    return model_cls(**doc)

async def with_read_retry(operation: Callable[[], Awaitable[T]], attempts: Optional[int] = None) -> T:
    """
    Run an idempotent read, retrying on transient connection failures.
    Writes must not go through here.
    """
    attempts = attempts or settings.READ_RETRY_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except ConnectionFailure:
            if attempt == attempts:
                raise
            logger.warning("Transient database failure, retrying read", extra={"attempt": attempt})
            await asyncio.sleep(0.1 * attempt)

# --- Authentication ---
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None, purpose: str = "session") -> str:
    """Sign `data` with an expiry and a purpose claim; a token is only accepted for its own purpose."""
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {"jti": uuid.uuid4().hex, **data}
    claims.update({"exp": datetime.utcnow() + lifetime, "purpose": purpose})
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def verify_token(token: str, purpose: str = "session") -> dict:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise UnauthorizedException("Could not validate credentials")
    if payload.get("purpose") != purpose:
        raise UnauthorizedException("Could not validate credentials")
    return payload

# --- Response Models ---
class SuccessResponse(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None

class ErrorResponse(BaseModel):
    success: bool = False
    error: str

class HealthResponse(BaseModel):
    service: str
    status: str
    timestamp: datetime
    version: str
    database: Optional[str] = None


# --- Exceptions ---
class AppException(HTTPException):
    def __init__(
        self,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        detail: str = "An error occurred",
        headers: Optional[dict] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)

class ValidationException(AppException):
    def __init__(self, detail: str = "Invalid input"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class NotFoundException(AppException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

class UnauthorizedException(AppException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)

class ForbiddenException(AppException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

class DuplicateIdentityException(AppException):
    def __init__(self, detail: str = "An account with this email or phone already exists"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)

class PersistenceException(AppException):
    def __init__(self, detail: str = "We could not save your changes, please try again"):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)

# --- Helpers ---
def str_to_oid(id: str) -> ObjectId:
    try:
        return ObjectId(id)
    except (InvalidId, TypeError):
        raise NotFoundException("Invalid ID format")
