from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import PyMongoError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.utils import get_db_client, settings, ErrorResponse
from shared.logging_config import setup_logging, RequestLoggingMiddleware
from shared.security_config import setup_rate_limiting, SecurityHeadersMiddleware

from storefront.auth import seed_admin
from storefront.rendering import STATIC_DIR, render, describe_errors
from storefront.routes import admin, api, shop
from storefront.uploads import upload_dir

# Setup Logging
logger = setup_logging("storefront")

app = FastAPI(title="Storefront")

# Security Setup
setup_rate_limiting(app)
app.add_middleware(SecurityHeadersMiddleware, https_only=settings.COOKIE_SECURE)
app.add_middleware(RequestLoggingMiddleware, service_name="storefront")

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")

app.include_router(shop.router)
app.include_router(api.router)
app.include_router(admin.router)


async def ensure_indexes(db):
    await db.users.create_index("email", unique=True)
    await db.users.create_index("phone", unique=True)
    await db.users.create_index("created_at")
    await db.orders.create_index("user_id")
    await db.orders.create_index("order_date")
    await db.products.create_index("created_at")


@app.on_event("startup")
async def startup_db_client():
    app.mongodb_client = get_db_client()
    app.mongodb = app.mongodb_client[settings.DATABASE_NAME]
    await ensure_indexes(app.mongodb)
    await seed_admin(app.mongodb)
    upload_dir()

@app.on_event("shutdown")
async def shutdown_db_client():
    app.mongodb_client.close()


# --- Error handling ---

def wants_json(request: Request) -> bool:
    path = request.url.path
    return path.startswith("/api/") or path == "/health"


def error_response(request: Request, status_code: int, message: str, headers: dict = None):
    if wants_json(request):
        return JSONResponse(
            ErrorResponse(error=message).model_dump(),
            status_code=status_code,
            headers=headers,
        )
    if status_code == 401:
        response = render(request, "login.html", status_code=401, error=message)
    else:
        response = render(request, "error.html", status_code=status_code, message=message)
    if headers:
        response.headers.update(headers)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(request, exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning("Rate limit hit", extra={"path": request.url.path, "reason": str(exc.detail)})
    return error_response(request, 429, "Too many attempts, please wait a minute and try again")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(request, 400, describe_errors(exc))


@app.exception_handler(PyMongoError)
async def persistence_exception_handler(request: Request, exc: PyMongoError):
    logger.error("Database operation failed", exc_info=exc)
    return error_response(request, 503, "The store is temporarily unavailable, please try again shortly")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", exc_info=exc)
    return error_response(request, 500, "Something went wrong on our side")
