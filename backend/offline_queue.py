"""
Offline Queue & Replayer - client-side checkout buffering

This module handles:
1. Buffering checkouts while the device is offline (or the server is unreachable)
2. Optimistic local projection of buffered sales and stock, marked stale
3. Sequential replay against POST /api/transactions when connectivity returns
4. Wholesale refresh of products, stats and transactions after a full drain

Queued requests are removed only after the server confirms them. Failed
requests stay queued in their original order and are retried on the next
online transition; there is no backoff between passes.
"""

import json
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx

from config import settings
from exceptions import (
    PosError, ValidationError, SubscriptionExpired, NotFound, TransientNetworkFailure
)
from schemas import CartItem, CheckoutRequest
from timezone_utils import utcnow

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {502, 503, 504}


@dataclass
class QueuedCheckout:
    """A checkout request not yet confirmed by the server"""
    client_id: str
    payload: Dict[str, Any]
    enqueued_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {"clientId": self.client_id, "payload": self.payload, "enqueuedAt": self.enqueued_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueuedCheckout":
        return cls(client_id=data["clientId"], payload=data["payload"], enqueued_at=data["enqueuedAt"])


class OfflineQueueStore:
    """
    Client-local persistence: one JSON file per tenant holding the ordered queue.
    Files are replaced atomically so a crash mid-write never truncates the queue.
    """

    def __init__(self, directory: Union[str, Path, None] = None):
        self.directory = Path(directory or settings.OFFLINE_QUEUE_DIR)

    def path(self, tenant_id: int) -> Path:
        return self.directory / f"offline_queue_{tenant_id}.json"

    def load(self, tenant_id: int) -> List[QueuedCheckout]:
        path = self.path(tenant_id)
        if not path.exists():
            return []
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return [QueuedCheckout.from_dict(entry) for entry in data.get("entries", [])]

    def save(self, tenant_id: int, entries: List[QueuedCheckout]):
        self.directory.mkdir(parents=True, exist_ok=True)
        data = {"tenantId": tenant_id, "entries": [entry.to_dict() for entry in entries]}

        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".queue_{tenant_id}_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path(tenant_id))
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def append(self, tenant_id: int, entry: QueuedCheckout):
        entries = self.load(tenant_id)
        entries.append(entry)
        self.save(tenant_id, entries)

    def remove(self, tenant_id: int, client_id: str):
        entries = [e for e in self.load(tenant_id) if e.client_id != client_id]
        self.save(tenant_id, entries)


# ==================== OPTIMISTIC PROJECTION ====================

@dataclass
class TransactionProjection:
    id: Union[int, str]  # Temporary "offline-..." id until the server confirms
    total: float
    items: List[Dict[str, Any]]
    timestamp: str
    is_offline: bool = False


@dataclass
class ProjectionCache:
    """
    Client view of products, transactions and stats.

    Optimistic changes flip ``stale`` on; only a wholesale refresh from the
    server turns it off. Server state is never merged field by field.
    """
    products: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    transactions: List[TransactionProjection] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=lambda: {"dailyTotal": 0, "transactionCount": 0})
    stale: bool = False

    def apply_offline_checkout(self, entry: QueuedCheckout):
        payload = entry.payload
        self.transactions.insert(0, TransactionProjection(
            id=entry.client_id,
            total=payload["total"],
            items=payload["items"],
            timestamp=entry.enqueued_at,
            is_offline=True
        ))
        for item in payload["items"]:
            product = self.products.get(item["id"])
            if product is not None:
                product["stock"] = product.get("stock", 0) - item["quantity"]

        self.stats = {
            "dailyTotal": self.stats.get("dailyTotal", 0) + payload["total"],
            "transactionCount": self.stats.get("transactionCount", 0) + 1,
        }
        self.stale = True

    def confirm(self, client_id: str, server_id: int):
        for projection in self.transactions:
            if projection.id == client_id:
                projection.id = server_id
                projection.is_offline = False
                return

    def replace_all(self, products: List[Dict[str, Any]], transactions: List[Dict[str, Any]], stats: Dict[str, Any]):
        self.products = {p["id"]: p for p in products}
        self.transactions = [
            TransactionProjection(
                id=t["id"], total=t["total"], items=t["items"], timestamp=t["timestamp"], is_offline=False
            )
            for t in transactions
        ]
        self.stats = stats
        self.stale = False


# ==================== CHECKOUT CLIENT ====================

@dataclass
class CheckoutOutcome:
    transaction_id: Union[int, str]
    offline: bool


@dataclass
class ReplayReport:
    replayed: Dict[str, int] = field(default_factory=dict)  # client_id -> server transaction id
    pending: List[str] = field(default_factory=list)        # client_ids still queued, in order
    refreshed: bool = False

    @property
    def drained(self) -> bool:
        return not self.pending


class OfflineCheckoutClient:
    """
    Tenant-scoped POS client. Live checkouts go straight to the server; when the
    device is offline or the server is unreachable they are queued and replayed.
    """

    def __init__(
        self,
        tenant_id: int,
        http: httpx.AsyncClient,
        queue: Optional[OfflineQueueStore] = None,
        online: bool = True,
        cache: Optional[ProjectionCache] = None
    ):
        self.tenant_id = tenant_id
        self.http = http
        self.queue = queue or OfflineQueueStore()
        self.online = online
        self.cache = cache or ProjectionCache()
        self._replaying = False

    @property
    def pending(self) -> List[QueuedCheckout]:
        return self.queue.load(self.tenant_id)

    async def checkout(self, items: List[CartItem], total: float) -> CheckoutOutcome:
        """
        Checkout a cart. Always "succeeds" from the cashier's point of view unless
        the server rejects it outright (expired subscription, bad cart).
        """
        payload = CheckoutRequest(tenant_id=self.tenant_id, total=total, items=items).model_dump(by_alias=True, exclude_none=True)

        if not self.online:
            return self._buffer(payload)

        try:
            transaction_id = await self._submit(payload)
        except TransientNetworkFailure as e:
            logger.warning(f"Checkout for tenant {self.tenant_id} could not reach the server ({e.message}); buffering offline")
            return self._buffer(payload)

        if self.queue.load(self.tenant_id):
            await self.replay()
        return CheckoutOutcome(transaction_id=transaction_id, offline=False)

    def _buffer(self, payload: Dict[str, Any]) -> CheckoutOutcome:
        entry = QueuedCheckout(
            client_id=f"offline-{uuid.uuid4().hex}",
            payload=payload,
            enqueued_at=utcnow().isoformat()
        )
        self.queue.append(self.tenant_id, entry)
        self.cache.apply_offline_checkout(entry)
        logger.info(f"📦 Buffered checkout {entry.client_id} for tenant {self.tenant_id} ({len(self.pending)} queued)")
        return CheckoutOutcome(transaction_id=entry.client_id, offline=True)

    async def set_online(self, online: bool) -> Optional[ReplayReport]:
        """
        Connectivity signal from the environment.

        Going online starts a replay pass. So does an online signal while
        already online if checkouts are still queued, e.g. ones buffered
        after a live request could not reach the server.
        """
        was_online = self.online
        self.online = online
        if not online:
            return None
        if not was_online:
            logger.info(f"🌐 Tenant {self.tenant_id} back online")
            return await self.replay()
        return await self.resume()

    async def resume(self) -> Optional[ReplayReport]:
        """Replay a queue left over from a previous session, if already online"""
        if self.online and self.pending:
            return await self.replay()
        return None

    async def replay(self) -> Optional[ReplayReport]:
        """
        One sequential pass over the queue in enqueue order.

        Returns None if a pass is already in flight for this client.
        """
        if self._replaying:
            logger.info(f"Replay already in progress for tenant {self.tenant_id}; skipping")
            return None

        self._replaying = True
        try:
            return await self._replay_pass()
        finally:
            self._replaying = False

    async def _replay_pass(self) -> ReplayReport:
        report = ReplayReport()
        entries = self.queue.load(self.tenant_id)
        if not entries:
            return report

        logger.info(f"🔁 Replaying {len(entries)} queued checkout(s) for tenant {self.tenant_id}")

        for entry in entries:
            try:
                server_id = await self._submit(entry.payload)
            except PosError as e:
                logger.warning(f"⚠️ Replay of {entry.client_id} failed, keeping it queued: {e}")
                continue

            self.queue.remove(self.tenant_id, entry.client_id)
            self.cache.confirm(entry.client_id, server_id)
            report.replayed[entry.client_id] = server_id
            logger.info(f"✅ Replayed {entry.client_id} as transaction #{server_id}")

        # Re-read the queue: checkouts may have been buffered while the pass awaited the network
        report.pending = [entry.client_id for entry in self.queue.load(self.tenant_id)]

        if report.drained:
            try:
                await self.refresh()
                report.refreshed = True
            except PosError as e:
                logger.warning(f"Queue drained but refresh failed; local view stays stale: {e}")
        else:
            logger.info(f"{len(report.pending)} checkout(s) remain queued for tenant {self.tenant_id}")

        return report

    async def refresh(self):
        """Replace the local view wholesale with the server of record"""
        params = {"tenantId": self.tenant_id}
        products = await self._get("/products", params)
        transactions = await self._get("/transactions", params)
        stats = await self._get("/stats", params)
        self.cache.replace_all(products, transactions, stats)

    # ==================== TRANSPORT ====================

    async def _submit(self, payload: Dict[str, Any]) -> int:
        response = await self._request("POST", "/transactions", json=payload)
        try:
            return int(response.json()["id"])
        except (ValueError, KeyError, TypeError):
            raise TransientNetworkFailure(f"Unexpected checkout response ({response.status_code}) from {self.http.base_url}")

    async def _get(self, path: str, params: Dict[str, Any]) -> Any:
        response = await self._request("GET", path, params=params)
        try:
            return response.json()
        except ValueError:
            raise TransientNetworkFailure(f"Unexpected response ({response.status_code}) for {path}")

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self.http.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise TransientNetworkFailure(f"{type(e).__name__}: {e}")

        if response.status_code < 400:
            return response
        raise error_from_response(response)


def error_from_response(response: httpx.Response) -> PosError:
    """
    Map an error response back onto the domain error taxonomy.

    The API always answers errors with a ``{"detail": ...}`` object; any other
    body came from something in between (proxy, captive portal) and counts as
    a network failure.
    """
    code = response.status_code
    if code in TRANSIENT_STATUS_CODES:
        return TransientNetworkFailure(f"Server unavailable ({code})")

    try:
        body = response.json()
    except ValueError:
        body = None
    if not isinstance(body, dict) or "detail" not in body:
        return TransientNetworkFailure(f"Unexpected {code} response, not from the POS API")

    detail = body["detail"]
    if code == 403:
        return SubscriptionExpired(detail)
    if code == 404:
        return NotFound(detail)
    if code in (400, 422):
        return ValidationError(str(detail))
    return PosError(str(detail), status_code=code)


def create_client(
    tenant_id: int,
    base_url: Optional[str] = None,
    queue_dir: Optional[str] = None,
    online: bool = True
) -> OfflineCheckoutClient:
    """Build a client against the configured API"""
    http = httpx.AsyncClient(
        base_url=base_url or settings.API_BASE_URL,
        timeout=settings.CLIENT_TIMEOUT_SECONDS
    )
    return OfflineCheckoutClient(tenant_id, http, OfflineQueueStore(queue_dir), online=online)
