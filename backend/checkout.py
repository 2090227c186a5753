"""
Checkout Engine

Validates a cart against the Subscription Gate, records the transaction and
decrements stock for every line item. Also serves the transaction history and
daily stats read by the POS dashboard.
"""

import json
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, func

from config import settings
from database import LedgerStore
from exceptions import NotFound, SubscriptionExpired, ValidationError
from models import Product, Transaction
from repositories import get_tenant, require_tenant_id
from schemas import CartItem, StatsResponse, TransactionResponse
import subscription_gate
from timezone_utils import utcnow, local_date, local_day_bounds

logger = logging.getLogger(__name__)

TOTAL_TOLERANCE = 0.005


class CheckoutEngine:
    """Server-of-record checkout. Replayed offline requests go through here too."""

    def __init__(self, store: LedgerStore, verify_client_total: Optional[bool] = None, timezone_name: Optional[str] = None):
        self.store = store
        self.verify_client_total = settings.VERIFY_CLIENT_TOTAL if verify_client_total is None else verify_client_total
        self.timezone_name = timezone_name or settings.TIMEZONE

    async def checkout(
        self,
        tenant_id: Optional[int],
        items: List[CartItem],
        client_total: float,
        now: Optional[datetime] = None
    ) -> int:
        """
        Record a sale and adjust stock.

        Raises:
            ValidationError: missing tenantId, empty cart or (when enabled) total mismatch
            NotFound: unknown tenant, or a product not owned by the tenant
            SubscriptionExpired: gate reports the tenant inactive; nothing is written

        Returns:
            The new transaction id
        """
        tenant_id = require_tenant_id(tenant_id)
        if not items:
            raise ValidationError("Cart is empty")
        now = now or utcnow()

        async with self.store.session() as db:
            async with db.begin():
                tenant = await get_tenant(db, tenant_id)

                if not subscription_gate.is_active(tenant, now):
                    logger.warning(f"Checkout blocked for tenant {tenant_id}: subscription expired {tenant.expiry_date}")
                    raise SubscriptionExpired()

                product_ids = {item.id for item in items}
                result = await db.execute(
                    select(Product.id).where(
                        Product.id.in_(product_ids),
                        Product.tenant_id == tenant_id
                    )
                )
                owned = set(result.scalars().all())
                missing = product_ids - owned
                if missing:
                    raise NotFound(f"Product {min(missing)} not found")

                self._check_total(tenant_id, items, client_total)

                transaction = Transaction(
                    tenant_id=tenant_id,
                    total=client_total,
                    items=json.dumps([item.model_dump(exclude_none=True) for item in items]),
                    timestamp=now
                )
                db.add(transaction)
                await db.flush()

                # Unconditional decrement: stock may go negative when oversold
                for item in items:
                    await db.execute(
                        update(Product)
                        .where(Product.id == item.id, Product.tenant_id == tenant_id)
                        .values(stock=Product.stock - item.quantity)
                    )

                transaction_id = transaction.id

        logger.info(f"Checkout #{transaction_id} recorded for tenant {tenant_id}: {len(items)} line(s), total {client_total:.2f}")
        return transaction_id

    def _check_total(self, tenant_id: int, items: List[CartItem], client_total: float):
        computed = round(sum(item.price * item.quantity for item in items), 2)
        if abs(computed - client_total) <= TOTAL_TOLERANCE:
            return
        if self.verify_client_total:
            raise ValidationError(f"Total {client_total:.2f} does not match cart total {computed:.2f}")
        logger.warning(f"Tenant {tenant_id} submitted total {client_total:.2f}, cart sums to {computed:.2f}; keeping client total")

    async def list_transactions(self, tenant_id: Optional[int]) -> List[TransactionResponse]:
        tenant_id = require_tenant_id(tenant_id)
        async with self.store.session() as db:
            result = await db.execute(
                select(Transaction)
                .where(Transaction.tenant_id == tenant_id)
                .order_by(Transaction.timestamp.desc(), Transaction.id.desc())
            )
            return [
                TransactionResponse(
                    id=t.id,
                    tenant_id=t.tenant_id,
                    total=t.total,
                    items=t.cart_items,
                    timestamp=t.timestamp
                )
                for t in result.scalars().all()
            ]

    async def daily_stats(self, tenant_id: Optional[int], now: Optional[datetime] = None) -> StatsResponse:
        """Today's revenue and transaction count in the server-local calendar"""
        tenant_id = require_tenant_id(tenant_id)
        now = now or utcnow()
        start, end = local_day_bounds(local_date(now, self.timezone_name), self.timezone_name)

        async with self.store.session() as db:
            result = await db.execute(
                select(func.sum(Transaction.total), func.count(Transaction.id)).where(
                    Transaction.tenant_id == tenant_id,
                    Transaction.timestamp >= start,
                    Transaction.timestamp < end
                )
            )
            daily_total, count = result.one()

        return StatsResponse(daily_total=daily_total or 0, transaction_count=count or 0)

    async def list_products(self, tenant_id: Optional[int]) -> List[Product]:
        tenant_id = require_tenant_id(tenant_id)
        async with self.store.session() as db:
            result = await db.execute(
                select(Product).where(Product.tenant_id == tenant_id).order_by(Product.id)
            )
            return list(result.scalars().all())
