"""
Per-user cart.

Cart lines live embedded in the user document. A line is identified by
(product_id, size, color): adding the same combination again bumps the
quantity instead of creating a second line. Line prices are a snapshot taken
when the line is first added.
"""
import logging
from decimal import Decimal
from typing import List

from storefront.catalog import get_product
from storefront.models import CartLineDB, ProductDB, UserDB, MAX_LINE_QUANTITY
from storefront.schemas import CartTotals
from shared.utils import (
    from_mongo, str_to_oid, NotFoundException, ValidationException, PersistenceException,
)

logger = logging.getLogger("storefront")

# A merge loses its race only when a concurrent write changes the same line in between
MERGE_ATTEMPTS = 3


def snapshot_line(product: ProductDB, quantity: int, size: str = "", color: str = "") -> CartLineDB:
    return CartLineDB(
        product_id=product.id,
        name=product.name or "",
        price=product.price,
        mrp=product.mrp,
        discount=product.discount,
        main_image=product.main_image,
        brand=product.brand,
        category=product.category,
        quantity=quantity,
        size=size or "",
        color=color or "",
    )


def compute_totals(cart) -> CartTotals:
    subtotal = Decimal(0)
    mrp_total = Decimal(0)
    item_count = 0
    for line in cart:
        price = Decimal(str(line.price))
        subtotal += price * line.quantity
        mrp = Decimal(str(line.mrp)) if line.mrp else price
        mrp_total += mrp * line.quantity
        item_count += line.quantity
    return CartTotals(
        subtotal=subtotal,
        item_count=item_count,
        mrp_total=mrp_total,
        savings=max(mrp_total - subtotal, Decimal(0)),
    )


def check_variant(product: ProductDB, size: str, color: str):
    if size and product.sizes and size not in product.sizes:
        raise ValidationException(f"Size '{size}' is not available for this product")
    if color and product.colors and color not in product.colors:
        raise ValidationException(f"Color '{color}' is not available for this product")


def check_quantity(quantity):
    if not isinstance(quantity, int) or quantity <= 0:
        raise ValidationException("Quantity must be a positive whole number")
    if quantity > MAX_LINE_QUANTITY:
        raise ValidationException(f"At most {MAX_LINE_QUANTITY} of one item can be ordered")


async def load_user(db, user_id: str) -> UserDB:
    doc = await db.users.find_one({"_id": str_to_oid(user_id)})
    if not doc:
        raise NotFoundException("User not found")
    return from_mongo(UserDB, doc)


async def get_cart(db, user_id: str) -> List[CartLineDB]:
    user = await load_user(db, user_id)
    return user.cart


def _line_match(line: CartLineDB) -> dict:
    return {"product_id": line.product_id, "size": line.size, "color": line.color}


async def _merge_into_cart(db, oid, line: CartLineDB) -> bool:
    """One atomic write: bump a matching line, or push the line if none matches."""
    match = _line_match(line)
    bumped = await db.users.update_one(
        {"_id": oid, "cart": {"$elemMatch": {**match, "quantity": {"$lte": MAX_LINE_QUANTITY - line.quantity}}}},
        {"$inc": {"cart.$.quantity": line.quantity}}
    )
    if bumped.matched_count:
        return True
    pushed = await db.users.update_one(
        {"_id": oid, "cart": {"$not": {"$elemMatch": match}}},
        {"$push": {"cart": line.model_dump()}}
    )
    return pushed.matched_count == 1


async def add_to_cart(db, user_id: str, product_id: str, quantity: int, size: str = "", color: str = "") -> List[CartLineDB]:
    check_quantity(quantity)

    product = await get_product(db, product_id)
    if not product:
        raise NotFoundException("Product not found")
    check_variant(product, size, color)

    # No stock check; stock is not reserved or decremented
    oid = str_to_oid(user_id)
    line = snapshot_line(product, quantity, size, color)
    # Never rewrites the whole cart, so a checkout clearing lines meanwhile is not undone
    for _ in range(MERGE_ATTEMPTS):
        if await _merge_into_cart(db, oid, line):
            break
        user = await load_user(db, user_id)
        existing = next((held for held in user.cart if held.key() == line.key()), None)
        if existing and existing.quantity + quantity > MAX_LINE_QUANTITY:
            raise ValidationException(f"At most {MAX_LINE_QUANTITY} of one item can be ordered")
    else:
        raise PersistenceException("We could not update your cart, please try again")

    logger.info("Cart updated", extra={"user_id": user_id, "product_id": product_id})
    return await get_cart(db, user_id)


async def remove_from_cart(db, user_id: str, line_id: str) -> None:
    await db.users.update_one(
        {"_id": str_to_oid(user_id)},
        {"$pull": {"cart": {"line_id": line_id}}}
    )
