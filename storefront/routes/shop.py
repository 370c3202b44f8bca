"""Customer-facing pages: registration, login, catalog, cart and checkout."""
import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import RedirectResponse

from shared.security_config import limiter
from shared.utils import (
    settings, AppException, NotFoundException, ValidationException,
)
from storefront import auth
from storefront.auth import get_current_user, get_db, get_optional_user
from storefront.cart import add_to_cart, compute_totals, remove_from_cart
from storefront.catalog import get_product, search_products
from storefront.checkout import (
    buy_now_line, complete_order, decode_buy_now, encode_buy_now, list_user_orders,
)
from storefront.models import UserDB, ORDER_SOURCE_BUY_NOW
from storefront.rendering import render, validate_form
from storefront.schemas import (
    CartItemAdd, CompleteOrderForm, LoginForm, RegisterStep1, RegisterStep2,
)

logger = logging.getLogger("storefront")

router = APIRouter()


def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


def landing_for(user: UserDB) -> str:
    return "/admin" if user.is_admin else "/home"


# --- Landing / Registration ---

@router.get("/")
async def index(request: Request, user: Optional[UserDB] = Depends(get_optional_user)):
    return render(request, "index.html", user=user)


@router.get("/register")
async def register_page(request: Request):
    return render(request, "register.html")


@router.post("/register-step1")
@limiter.limit(settings.REGISTER_RATE_LIMIT)
async def register_step1(
    request: Request,
    email: str = Form(""),
    phone: str = Form(""),
    password: str = Form(""),
    db=Depends(get_db),
):
    try:
        step1 = validate_form(RegisterStep1, {"email": email, "phone": phone, "password": password})
        await auth.ensure_identity_available(db, step1.email, step1.phone)
    except AppException as e:
        return render(request, "register.html", status_code=e.status_code,
                      error=e.detail, email=email, phone=phone)

    return render(request, "register_step2.html",
                  token=auth.create_registration_token(step1), email=step1.email)


@router.post("/register-step2")
@limiter.limit(settings.REGISTER_RATE_LIMIT)
async def register_step2(
    request: Request,
    token: str = Form(""),
    state: str = Form(""),
    district: str = Form(""),
    area_name: str = Form(""),
    pincode: str = Form(""),
    db=Depends(get_db),
):
    try:
        identity = auth.read_registration_token(token)
    except AppException as e:
        return render(request, "register.html", status_code=e.status_code, error=e.detail)

    try:
        address = validate_form(RegisterStep2, {
            "state": state, "district": district, "area_name": area_name, "pincode": pincode,
        })
    except ValidationException as e:
        return render(request, "register_step2.html", status_code=e.status_code,
                      error=e.detail, token=token, email=identity["email"],
                      state=state, district=district, area_name=area_name, pincode=pincode)

    try:
        user = await auth.create_user(db, identity, address)
    except AppException as e:
        return render(request, "register.html", status_code=e.status_code, error=e.detail)
    return render(request, "register_success.html", status_code=201, email=user.email)


# --- Login / Logout ---

@router.get("/login")
async def login_page(request: Request, user: Optional[UserDB] = Depends(get_optional_user)):
    if user:
        return redirect(landing_for(user))
    return render(request, "login.html")


@router.post("/login")
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    identifier: str = Form(""),
    password: str = Form(""),
    db=Depends(get_db),
):
    try:
        credentials = validate_form(LoginForm, {"identifier": identifier, "password": password})
        user = await auth.authenticate(db, credentials.identifier, credentials.password)
    except AppException as e:
        logger.warning("Login failed", extra={"reason": e.detail})
        return render(request, "login.html", status_code=e.status_code,
                      error=e.detail, identifier=identifier)

    response = redirect(landing_for(user))
    auth.issue_session(response, user)
    return response


@router.get("/logout")
async def logout():
    response = redirect("/")
    auth.clear_session(response)
    return response


# --- Catalog ---

@router.get("/home")
async def home(
    request: Request,
    search: str = Query("", max_length=100),
    user: UserDB = Depends(get_current_user),
    db=Depends(get_db),
):
    products = await search_products(db, search)
    response = render(request, "home.html", user=user, products=products, search=search,
                      cart_count=compute_totals(user.cart).item_count)
    # Leaving for the catalog abandons any pending buy-now checkout
    response.delete_cookie(settings.BUY_NOW_COOKIE_NAME)
    return response


@router.get("/viewproduct/{product_id}")
async def view_product(
    request: Request,
    product_id: str,
    user: UserDB = Depends(get_current_user),
    db=Depends(get_db),
):
    product = await get_product(db, product_id)
    if not product:
        raise NotFoundException("Product not found")
    return render(request, "product.html", user=user, product=product,
                  cart_count=compute_totals(user.cart).item_count)


# --- Cart ---

@router.post("/addtocart/{product_id}")
async def add_to_cart_route(
    product_id: str,
    quantity: str = Form("1"),
    size: str = Form(""),
    color: str = Form(""),
    user: UserDB = Depends(get_current_user),
    db=Depends(get_db),
):
    item = validate_form(CartItemAdd, {"quantity": quantity, "size": size, "color": color})
    await add_to_cart(db, user.id, product_id, item.quantity, item.size, item.color)
    return redirect("/cart")


@router.get("/cart")
async def cart_page(request: Request, user: UserDB = Depends(get_current_user)):
    response = render(request, "cart.html", user=user, cart=user.cart, totals=compute_totals(user.cart))
    response.delete_cookie(settings.BUY_NOW_COOKIE_NAME)
    return response


@router.get("/removefromcart/{line_id}")
async def remove_from_cart_route(
    line_id: str,
    user: UserDB = Depends(get_current_user),
    db=Depends(get_db),
):
    await remove_from_cart(db, user.id, line_id)
    return redirect("/cart")


# --- Checkout ---

@router.post("/buynow/{product_id}")
async def buy_now(
    product_id: str,
    quantity: str = Form("1"),
    size: str = Form(""),
    color: str = Form(""),
    user: UserDB = Depends(get_current_user),
    db=Depends(get_db),
):
    item = validate_form(CartItemAdd, {"quantity": quantity, "size": size, "color": color})
    line = await buy_now_line(db, product_id, item.quantity, item.size, item.color)

    response = redirect("/checkout")
    response.set_cookie(
        settings.BUY_NOW_COOKIE_NAME,
        encode_buy_now(user.id, line),
        max_age=int(timedelta(minutes=settings.BUY_NOW_EXPIRE_MINUTES).total_seconds()),
        httponly=True,
        samesite="lax",
        secure=settings.COOKIE_SECURE,
    )
    return response


@router.get("/checkout")
async def checkout(request: Request, user: UserDB = Depends(get_current_user)):
    express = decode_buy_now(request.cookies.get(settings.BUY_NOW_COOKIE_NAME), user.id)
    lines = [express] if express else user.cart
    if not lines:
        return redirect("/cart")
    return render(request, "checkout.html", user=user, lines=lines, totals=compute_totals(lines),
                  mode=ORDER_SOURCE_BUY_NOW if express else "cart")


@router.post("/completeorder")
async def complete_order_route(
    request: Request,
    upi_transaction_id: str = Form(""),
    mode: str = Form("cart"),
    user: UserDB = Depends(get_current_user),
    db=Depends(get_db),
):
    form = validate_form(CompleteOrderForm, {"upi_transaction_id": upi_transaction_id})

    express = None
    if mode == ORDER_SOURCE_BUY_NOW:
        express = decode_buy_now(request.cookies.get(settings.BUY_NOW_COOKIE_NAME), user.id)
        if express is None:
            raise ValidationException("Your buy now session expired, please choose the product again")

    order = await complete_order(db, user.id, form.upi_transaction_id, express_line=express)
    response = render(request, "order_confirmation.html", status_code=201, user=user, order=order)
    response.delete_cookie(settings.BUY_NOW_COOKIE_NAME)
    return response


@router.get("/orders")
async def my_orders(request: Request, user: UserDB = Depends(get_current_user), db=Depends(get_db)):
    orders = await list_user_orders(db, user.id)
    return render(request, "orders.html", user=user, orders=orders)
