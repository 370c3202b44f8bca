from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Query, Request
from pymongo.errors import PyMongoError

from shared.utils import SuccessResponse, HealthResponse, PersistenceException
from storefront.auth import get_db
from storefront.catalog import search_products
from storefront.schemas import ProductResponse

router = APIRouter()


@router.get("/api/search", response_model=SuccessResponse[List[ProductResponse]])
async def api_search(q: str = Query("", max_length=100), db=Depends(get_db)):
    products = await search_products(db, q)
    return SuccessResponse(data=[ProductResponse(**p.model_dump()) for p in products])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    try:
        await request.app.mongodb_client.admin.command("ping")
    except PyMongoError:
        raise PersistenceException("Database unreachable")

    return HealthResponse(
        service="storefront",
        status="healthy",
        timestamp=datetime.utcnow(),
        version="1.0.0",
        database="connected",
    )
