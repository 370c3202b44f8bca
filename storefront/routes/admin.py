"""Admin panel: dashboard, users, orders and product management."""
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from shared.utils import str_to_oid, NotFoundException, ValidationException
from storefront.auth import get_db, require_admin
from storefront.catalog import get_product
from storefront.models import UserDB
from storefront.rendering import render, validate_form
from storefront.reporting import (
    dashboard_stats, get_user_detail, list_orders, list_products, list_users,
)
from storefront.schemas import ProductForm
from storefront.uploads import discard_uploads, has_file, image_extension, save_upload

logger = logging.getLogger("storefront")

router = APIRouter(prefix="/admin")

MAX_ADDITIONAL_IMAGES = 5

PRODUCT_FIELDS = tuple(ProductForm.model_fields)


def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


def product_form_data(form) -> dict:
    data = {}
    for field in PRODUCT_FIELDS:
        value = form.get(field)
        if isinstance(value, str):
            data[field] = value
    # Unchecked checkboxes are simply missing from the post
    data["free_delivery"] = form.get("free_delivery") in ("on", "true", "1")
    return data


def uploaded_images(form):
    """Pick the posted image files and check them all before anything is written."""
    main = form.get("main_image")
    main = main if has_file(main) else None
    extra = [f for f in form.getlist("additional_images") if has_file(f)]
    if len(extra) > MAX_ADDITIONAL_IMAGES:
        raise ValidationException(f"At most {MAX_ADDITIONAL_IMAGES} additional images can be uploaded")
    for upload in ([main] if main else []) + extra:
        image_extension(upload)
    return main, extra


async def save_images(main, extra, saved: list):
    """Store the images, recording every filename in `saved` as soon as it is on disk."""
    main_name = None
    if main is not None:
        main_name = await save_upload(main)
        saved.append(main_name)
    extra_names = []
    for upload in extra:
        name = await save_upload(upload)
        saved.append(name)
        extra_names.append(name)
    return main_name, extra_names


# --- Dashboard & reports ---

@router.get("")
async def dashboard(request: Request, user: UserDB = Depends(require_admin), db=Depends(get_db)):
    stats = await dashboard_stats(db)
    return render(request, "admin/dashboard.html", user=user, stats=stats)


@router.get("/users")
async def users(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: UserDB = Depends(require_admin),
    db=Depends(get_db),
):
    items, pagination = await list_users(db, page, limit)
    return render(request, "admin/users.html", user=user, users=items, pagination=pagination)


@router.get("/userdetails/{user_id}")
async def user_details(
    request: Request,
    user_id: str,
    user: UserDB = Depends(require_admin),
    db=Depends(get_db),
):
    customer, orders = await get_user_detail(db, user_id)
    return render(request, "admin/user_detail.html", user=user, customer=customer, orders=orders)


@router.get("/orders")
async def orders(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: UserDB = Depends(require_admin),
    db=Depends(get_db),
):
    items, pagination = await list_orders(db, page, limit)
    return render(request, "admin/orders.html", user=user, orders=items, pagination=pagination)


@router.get("/products")
async def products(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: UserDB = Depends(require_admin),
    db=Depends(get_db),
):
    items, pagination = await list_products(db, page, limit)
    return render(request, "admin/products.html", user=user, products=items, pagination=pagination)


# --- Product management ---

@router.get("/addproduct")
async def add_product_page(request: Request, user: UserDB = Depends(require_admin)):
    return render(request, "admin/product_form.html", user=user, product=None, action="/admin/addproduct")


@router.post("/addproduct")
async def add_product(request: Request, user: UserDB = Depends(require_admin), db=Depends(get_db)):
    form = await request.form()
    product = validate_form(ProductForm, product_form_data(form))
    main, extra = uploaded_images(form)
    if main is None:
        raise ValidationException("A main image is required")

    doc = product.to_document()
    doc["created_at"] = datetime.utcnow()
    doc["updated_at"] = None

    saved = []
    try:
        doc["main_image"], doc["additional_images"] = await save_images(main, extra, saved)
        result = await db.products.insert_one(doc)
    except Exception:
        discard_uploads(saved)
        raise
    logger.info("Product created", extra={"product_id": str(result.inserted_id), "user_id": user.id})
    return redirect("/admin/products")


@router.get("/editproduct/{product_id}")
async def edit_product_page(
    request: Request,
    product_id: str,
    user: UserDB = Depends(require_admin),
    db=Depends(get_db),
):
    product = await get_product(db, product_id)
    if not product:
        raise NotFoundException("Product not found")
    return render(request, "admin/product_form.html", user=user, product=product,
                  action=f"/admin/updateproduct/{product.id}")


@router.post("/updateproduct/{product_id}")
async def update_product(
    request: Request,
    product_id: str,
    user: UserDB = Depends(require_admin),
    db=Depends(get_db),
):
    existing = await get_product(db, product_id)
    if not existing:
        raise NotFoundException("Product not found")

    form = await request.form()
    product = validate_form(ProductForm, product_form_data(form))
    main, extra = uploaded_images(form)

    update = product.to_document()
    update["updated_at"] = datetime.utcnow()

    saved = []
    try:
        main_name, extra_names = await save_images(main, extra, saved)
        if main_name:
            update["main_image"] = main_name
        # A new set of additional images replaces the old set
        if extra_names:
            update["additional_images"] = extra_names
        await db.products.update_one({"_id": str_to_oid(product_id)}, {"$set": update})
    except Exception:
        discard_uploads(saved)
        raise
    logger.info("Product updated", extra={"product_id": product_id, "user_id": user.id})
    return redirect("/admin/products")


@router.post("/deleteproduct/{product_id}")
async def delete_product(product_id: str, user: UserDB = Depends(require_admin), db=Depends(get_db)):
    existing = await get_product(db, product_id)
    if not existing:
        raise NotFoundException("Product not found")

    # Image files stay: cart and order snapshots still point at them
    await db.products.delete_one({"_id": str_to_oid(product_id)})
    logger.info("Product deleted", extra={"product_id": product_id, "user_id": user.id})
    return redirect("/admin/products")
