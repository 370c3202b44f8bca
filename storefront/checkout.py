"""
Checkout and order materialization.

An order is a frozen copy of the user's identity, address and cart lines at
the moment of purchase. Completing an order and emptying the cart happen as
one logical step: the order is inserted first, then exactly the ordered lines
are pulled from the cart; if that second write fails the order is deleted
again so neither change survives on its own.

Buy-now is an express path: the synthesized single line travels in a signed
cookie and never overwrites the stored cart, so abandoning the checkout
leaves the cart as it was.

The UPI transaction id is whatever the customer typed. Nothing here verifies
that a payment happened; orders record it as an unverified claim.
"""
import logging
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional

from pymongo.errors import PyMongoError

from storefront.cart import check_quantity, check_variant, load_user, snapshot_line
from storefront.catalog import get_product
from storefront.models import (
    CartLineDB, OrderDB, OrderLineDB, UserDB, UserDetails,
    ORDER_SOURCE_BUY_NOW, ORDER_SOURCE_CART, PAYMENT_UNVERIFIED,
)
from shared.utils import (
    settings, create_access_token, verify_token, from_mongo, str_to_oid,
    NotFoundException, ValidationException, PersistenceException,
    UnauthorizedException,
)

logger = logging.getLogger("storefront")


# --- Buy now ---

async def buy_now_line(db, product_id: str, quantity: int, size: str = "", color: str = "") -> CartLineDB:
    check_quantity(quantity)
    product = await get_product(db, product_id)
    if not product:
        raise NotFoundException("Product not found")
    check_variant(product, size, color)
    return snapshot_line(product, quantity, size, color)


def encode_buy_now(user_id: str, line: CartLineDB) -> str:
    return create_access_token(
        {"sub": user_id, "line": line.model_dump(mode="json")},
        expires_delta=timedelta(minutes=settings.BUY_NOW_EXPIRE_MINUTES),
        purpose="buy_now",
    )


def decode_buy_now(token: Optional[str], user_id: str) -> Optional[CartLineDB]:
    """Return the pending express line for this user, or None when absent, expired or foreign."""
    if not token:
        return None
    try:
        payload = verify_token(token, purpose="buy_now")
    except UnauthorizedException:
        return None
    if payload.get("sub") != user_id:
        return None
    return CartLineDB(**payload["line"])


# --- Orders ---

def order_total(lines) -> Decimal:
    total = Decimal(0)
    for line in lines:
        total += Decimal(str(line.price)) * line.quantity
    return total


def build_order(user: UserDB, lines: List[CartLineDB], upi_transaction_id: str, source: str = ORDER_SOURCE_CART) -> OrderDB:
    products = [
        OrderLineDB(**line.model_dump(exclude={"line_id", "added_at"}))
        for line in lines
    ]
    return OrderDB(
        user_id=user.id,
        user_details=UserDetails(email=user.email, phone=user.phone, address=user.address),
        products=products,
        total_amount=float(order_total(products)),
        upi_transaction_id=upi_transaction_id,
        payment_status=PAYMENT_UNVERIFIED,
        source=source,
    )


async def complete_order(db, user_id: str, upi_transaction_id: str, express_line: Optional[CartLineDB] = None) -> OrderDB:
    user = await load_user(db, user_id)

    if express_line is not None:
        lines, source = [express_line], ORDER_SOURCE_BUY_NOW
    else:
        lines, source = user.cart, ORDER_SOURCE_CART
    if not lines:
        raise ValidationException("Your cart is empty")

    order = build_order(user, lines, upi_transaction_id, source)
    order_doc = order.model_dump(by_alias=True, exclude={"id"})

    try:
        result = await db.orders.insert_one(order_doc)
    except PyMongoError:
        logger.exception("Order insert failed", extra={"user_id": user_id})
        raise PersistenceException("We could not place your order, your cart has not been changed")
    order.id = str(result.inserted_id)

    if source == ORDER_SOURCE_CART:
        await _clear_ordered_lines(db, user_id, order, [line.line_id for line in lines])

    logger.info("Order placed", extra={"user_id": user_id, "order_id": order.id})
    return order


async def _clear_ordered_lines(db, user_id: str, order: OrderDB, line_ids: List[str]):
    # Only the ordered lines are pulled, so a line added meanwhile stays in the cart
    try:
        result = await db.users.update_one(
            {"_id": str_to_oid(user_id)},
            {"$pull": {"cart": {"line_id": {"$in": line_ids}}}}
        )
        cleared = result.matched_count == 1
    except PyMongoError:
        logger.exception("Clearing cart after order failed", extra={"user_id": user_id, "order_id": order.id})
        cleared = False

    if cleared:
        return

    try:
        await db.orders.delete_one({"_id": str_to_oid(order.id)})
        logger.warning("Order rolled back", extra={"user_id": user_id, "order_id": order.id, "reason": "cart not cleared"})
    except PyMongoError:
        # Needs manual reconciliation: order exists but the cart still holds its lines
        logger.critical("Order rollback failed", exc_info=True, extra={"user_id": user_id, "order_id": order.id})
    raise PersistenceException("We could not place your order, your cart has not been changed")


async def list_user_orders(db, user_id: str) -> List[OrderDB]:
    cursor = db.orders.find({"user_id": user_id}).sort("order_date", -1)
    return [from_mongo(OrderDB, doc) async for doc in cursor]

