"""
Checkout API Endpoints
Checkout, transaction history, daily stats and the product read used by POS clients
"""

from fastapi import APIRouter, Depends, Query, Request, status
from typing import List, Optional

from checkout import CheckoutEngine
from schemas import (
    CheckoutRequest, CheckoutResponse, TransactionResponse,
    StatsResponse, ProductResponse
)

router = APIRouter(prefix="/api", tags=["checkout"])


def get_checkout_engine(request: Request) -> CheckoutEngine:
    return request.app.state.checkout_engine


@router.post("/transactions", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    body: CheckoutRequest,
    engine: CheckoutEngine = Depends(get_checkout_engine)
):
    """
    Checkout a cart.
    403 when the tenant's subscription has expired (no transaction, no stock change).
    """
    transaction_id = await engine.checkout(body.tenant_id, body.items, body.total)
    return CheckoutResponse(id=transaction_id)


@router.get("/transactions", response_model=List[TransactionResponse])
async def get_transactions(
    tenant_id: Optional[int] = Query(None, alias="tenantId"),
    engine: CheckoutEngine = Depends(get_checkout_engine)
):
    """Tenant transactions, newest first"""
    return await engine.list_transactions(tenant_id)


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    tenant_id: Optional[int] = Query(None, alias="tenantId"),
    engine: CheckoutEngine = Depends(get_checkout_engine)
):
    return await engine.daily_stats(tenant_id)


@router.get("/products", response_model=List[ProductResponse])
async def get_products(
    tenant_id: Optional[int] = Query(None, alias="tenantId"),
    engine: CheckoutEngine = Depends(get_checkout_engine)
):
    products = await engine.list_products(tenant_id)
    return [ProductResponse.model_validate(p) for p in products]
