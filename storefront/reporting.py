"""
Admin reporting: dashboard aggregates and the paginated admin lists.

Everything is a fresh read; nothing is cached between views.
"""
import asyncio
from typing import List, Tuple

from storefront.models import OrderDB, ProductDB, UserDB
from storefront.schemas import DashboardStats, Page
from shared.utils import settings, from_mongo, str_to_oid, with_read_retry, NotFoundException


async def _fetch(cursor, model_cls) -> list:
    return [from_mongo(model_cls, doc) async for doc in cursor]


async def total_revenue(db) -> float:
    cursor = db.orders.aggregate([
        {"$group": {"_id": None, "total": {"$sum": "$total_amount"}}}
    ])
    results = [doc async for doc in cursor]
    return float(results[0]["total"]) if results else 0.0


async def low_stock_products(db) -> List[ProductDB]:
    cursor = db.products.find({}).sort("stock", 1)
    products = await _fetch(cursor, ProductDB)
    return [p for p in products if p.is_low_stock]


async def dashboard_stats(db, recent: int = None) -> DashboardStats:
    recent = recent or settings.RECENT_ITEMS_LIMIT

    async def gather():
        return await asyncio.gather(
            db.users.count_documents({}),
            db.orders.count_documents({}),
            db.products.count_documents({}),
            total_revenue(db),
            _fetch(db.orders.find({}).sort("order_date", -1).limit(recent), OrderDB),
            _fetch(db.users.find({}).sort("created_at", -1).limit(recent), UserDB),
            low_stock_products(db),
        )

    users, orders, products, revenue, recent_orders, recent_users, low_stock = await with_read_retry(gather)
    return DashboardStats(
        total_users=users,
        total_orders=orders,
        total_products=products,
        total_revenue=revenue,
        recent_orders=recent_orders,
        recent_users=recent_users,
        low_stock_products=low_stock,
    )


async def _paginate(collection, model_cls, sort_field: str, page: int, limit: int) -> Tuple[list, Page]:
    async def fetch():
        total = await collection.count_documents({})
        cursor = collection.find({}).sort(sort_field, -1).skip((page - 1) * limit).limit(limit)
        return await _fetch(cursor, model_cls), total

    items, total = await with_read_retry(fetch)
    return items, Page(page=page, limit=limit, total=total)


async def list_users(db, page: int = 1, limit: int = None) -> Tuple[List[UserDB], Page]:
    return await _paginate(db.users, UserDB, "created_at", page, limit or settings.PAGE_SIZE)


async def list_orders(db, page: int = 1, limit: int = None) -> Tuple[List[OrderDB], Page]:
    return await _paginate(db.orders, OrderDB, "order_date", page, limit or settings.PAGE_SIZE)


async def list_products(db, page: int = 1, limit: int = None) -> Tuple[List[ProductDB], Page]:
    return await _paginate(db.products, ProductDB, "created_at", page, limit or settings.PAGE_SIZE)


async def get_user_detail(db, user_id: str) -> Tuple[UserDB, List[OrderDB]]:
    async def fetch():
        doc = await db.users.find_one({"_id": str_to_oid(user_id)})
        if not doc:
            raise NotFoundException("User not found")
        cursor = db.orders.find({"user_id": user_id}).sort("order_date", -1)
        return from_mongo(UserDB, doc), await _fetch(cursor, OrderDB)

    return await with_read_retry(fetch)
