from decimal import Decimal
from pathlib import Path
from typing import Type, TypeVar

from fastapi import Request
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, ValidationError

from shared.utils import ValidationException

TEMPLATES_DIR = Path(__file__).parent / "templates"
STATIC_DIR = Path(__file__).parent / "static"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

F = TypeVar("F", bound=BaseModel)


def inr(value) -> str:
    if value is None:
        return "-"
    return "₹{:,.2f}".format(Decimal(str(value)))


def short_date(value) -> str:
    return value.strftime("%d %b %Y") if value else "-"


templates.env.filters["inr"] = inr
templates.env.filters["short_date"] = short_date


def render(request: Request, name: str, status_code: int = 200, **context):
    context.setdefault("user", None)
    return templates.TemplateResponse(request, name, context, status_code=status_code)


def describe_errors(exc: ValidationError) -> str:
    """Readable summary of a form validation failure without echoing submitted values."""
    parts = []
    for err in exc.errors():
        field = ".".join(str(loc) for loc in err.get("loc", ()) if loc != "body")
        message = err.get("msg", "is invalid")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        parts.append(f"{field}: {message}" if field else message)
    return "; ".join(parts) or "Invalid input"


def validate_form(schema: Type[F], data: dict) -> F:
    try:
        return schema(**data)
    except ValidationError as exc:
        raise ValidationException(describe_errors(exc))
