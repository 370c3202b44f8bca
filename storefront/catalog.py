"""
Catalog search.

A case-insensitive substring filter over name, brand, category and tags,
followed by a relevance re-sort: products whose name contains the query come
first, then brand matches, then category matches, then everything else
(tag-only matches). Within a tier the catalog order is kept.
"""
import re
from typing import List, Optional, Iterable

from storefront.models import ProductDB
from shared.utils import from_mongo, with_read_retry, str_to_oid

SEARCH_FIELDS = ("name", "brand", "category", "tags")
RANKED_FIELDS = ("name", "brand", "category")

# Catalog order is insertion order
CATALOG_SORT = [("_id", 1)]


def build_search_query(q: Optional[str]) -> dict:
    q = (q or "").strip()
    if not q:
        return {}
    pattern = {"$regex": re.escape(q), "$options": "i"}
    return {"$or": [{field: pattern} for field in SEARCH_FIELDS]}


def _contains(value, needle: str) -> bool:
    if value is None:
        return False
    if isinstance(value, (list, tuple)):
        return any(_contains(v, needle) for v in value)
    if not isinstance(value, str):
        return False
    return needle in value.lower()


def field_matches(product: ProductDB, field: str, q: str) -> bool:
    return _contains(getattr(product, field, None), q.lower())


def product_matches(product: ProductDB, q: Optional[str]) -> bool:
    q = (q or "").strip()
    if not q:
        return True
    return any(field_matches(product, field, q) for field in SEARCH_FIELDS)


def relevance_tier(product: ProductDB, q: str) -> int:
    for tier, field in enumerate(RANKED_FIELDS):
        if field_matches(product, field, q):
            return tier
    return len(RANKED_FIELDS)


def rank_by_relevance(products: Iterable[ProductDB], q: Optional[str]) -> List[ProductDB]:
    products = list(products)
    q = (q or "").strip()
    if not q:
        return products
    # sorted() is stable, so ties keep catalog order
    return sorted(products, key=lambda p: relevance_tier(p, q))


def filter_products(products: Iterable[ProductDB], q: Optional[str]) -> List[ProductDB]:
    return rank_by_relevance([p for p in products if product_matches(p, q)], q)


async def search_products(db, q: Optional[str]) -> List[ProductDB]:
    query = build_search_query(q)

    async def fetch():
        cursor = db.products.find(query).sort(CATALOG_SORT)
        return [from_mongo(ProductDB, doc) async for doc in cursor]

    products = await with_read_retry(fetch)
    return rank_by_relevance(products, q)


async def get_product(db, product_id: str) -> Optional[ProductDB]:
    doc = await db.products.find_one({"_id": str_to_oid(product_id)})
    return from_mongo(ProductDB, doc) if doc else None
