import json
import logging
import sys
import time
import traceback
import uuid
from datetime import datetime
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

# Never written to the access log in clear
SENSITIVE_HEADERS = {"authorization", "cookie", "set-cookie", "x-api-key"}

# Asset requests are logged at DEBUG so page traffic stays readable
QUIET_PREFIXES = ("/static/", "/uploads/")

# Attributes every LogRecord has; anything else arrived through `extra`
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with caller supplied `extra` fields merged in."""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.utcnow().isoformat(),
            "service": self.service_name,
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                entry[key] = value

        if record.exc_info:
            entry["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(entry, default=str)


def setup_logging(service_name: str, level: int = logging.INFO) -> logging.Logger:
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(service_name))
    root.addHandler(handler)

    # uvicorn's own access log would duplicate RequestLoggingMiddleware
    logging.getLogger("uvicorn.access").propagate = False
    return logging.getLogger(service_name)


def masked_headers(request: Request) -> dict:
    return {
        name: "***" if name.lower() in SENSITIVE_HEADERS else value
        for name, value in request.headers.items()
    }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, service_name: str):
        super().__init__(app)
        self.logger = logging.getLogger(service_name)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self.log_request(request, 500, started, exc_info=sys.exc_info())
            raise

        self.log_request(request, response.status_code, started)
        response.headers["X-Request-ID"] = request_id
        return response

    def log_request(self, request: Request, status_code: int, started: float, exc_info=None):
        path = request.url.path
        extra = {
            "request_id": request.state.request_id,
            "method": request.method,
            "path": path,
            "status_code": status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            "headers": masked_headers(request),
            # Filled in by the session dependency when the request carried a valid cookie
            "user_id": getattr(request.state, "user_id", None),
        }

        if status_code >= 500:
            self.logger.error("Request failed", extra=extra, exc_info=exc_info)
        elif status_code >= 400:
            self.logger.warning("Request rejected", extra=extra)
        elif path.startswith(QUIET_PREFIXES):
            self.logger.debug("Asset served", extra=extra)
        else:
            self.logger.info("Request served", extra=extra)
