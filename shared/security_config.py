import re
import unicodedata
from typing import List

from fastapi import FastAPI, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

# --- Rate Limiting ---
# Applied per client address to the login and registration posts
limiter = Limiter(key_func=get_remote_address)


def setup_rate_limiting(app: FastAPI):
    # RateLimitExceeded is rendered by the app's own error handlers
    app.state.limiter = limiter


# --- Security Headers ---
# Pages load only the local stylesheet and uploaded images, and forms post back to the same origin
CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "img-src 'self' data:",
    "object-src 'none'",
    "frame-ancestors 'none'",
    "form-action 'self'",
])

BASE_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, https_only: bool = False):
        super().__init__(app)
        self.headers = dict(BASE_HEADERS)
        if https_only:
            self.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        # Pages carry per-user cart and order data
        if response.headers.get("content-type", "").startswith("text/html"):
            response.headers["Cache-Control"] = "no-store"
        return response


# --- Input Hygiene ---
def sanitize_input(text):
    """
    Normalize free text before it is stored: trim it and drop control
    characters other than newline and tab.

    Nothing is HTML-escaped here. Templates escape on output, so the stored
    value stays the literal text the user typed.
    """
    if not isinstance(text, str):
        return text
    kept = (ch for ch in text if ch in "\n\t" or unicodedata.category(ch) != "Cc")
    return "".join(kept).strip()


PASSWORD_RULES = (
    (re.compile(r".{8,}", re.S), "at least 8 characters"),
    (re.compile(r"[A-Z]"), "an uppercase letter"),
    (re.compile(r"[a-z]"), "a lowercase letter"),
    (re.compile(r"\d"), "a digit"),
)


def password_problems(password: str) -> List[str]:
    return [label for rule, label in PASSWORD_RULES if not rule.search(password or "")]