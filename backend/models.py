from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Boolean, Text, UniqueConstraint, Index
from sqlalchemy.orm import relationship
import enum
import json

from database import Base
from timezone_utils import utcnow


class SubscriptionPlan(str, enum.Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


# Renewal increment per plan. The plan never expires a tenant by itself.
PLAN_DURATION_DAYS = {
    SubscriptionPlan.MONTHLY: 30,
    SubscriptionPlan.QUARTERLY: 90,
    SubscriptionPlan.ANNUAL: 365,
}


class NotificationType(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    ERROR = "error"
    SUCCESS = "success"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"    # PendingPayment terminal state
    COMPLETED = "completed"  # SubscriptionPayment terminal state
    REJECTED = "rejected"


class Tenant(Base):
    """Independent store sharing the platform"""
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=False)

    # Subscription
    plan = Column(String(20), default=SubscriptionPlan.MONTHLY.value, nullable=False)
    expiry_date = Column(DateTime, nullable=False)  # Checkout allowed only while expiry_date > now
    status = Column(String(20), default="active", nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships - tenant removal cascades to everything it owns
    products = relationship("Product", back_populates="tenant", cascade="all, delete-orphan", passive_deletes=True)
    transactions = relationship("Transaction", back_populates="tenant", cascade="all, delete-orphan", passive_deletes=True)
    notifications = relationship("Notification", back_populates="tenant", cascade="all, delete-orphan", passive_deletes=True)
    subscription_payments = relationship("SubscriptionPayment", back_populates="tenant", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<Tenant {self.name} (expires {self.expiry_date})>"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Float, nullable=False)
    category = Column(String(100), nullable=True)
    stock = Column(Integer, default=0, nullable=False)  # May go negative when oversold
    low_stock_threshold = Column(Integer, default=5, nullable=False)
    image = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    tenant = relationship("Tenant", back_populates="products")

    __table_args__ = (
        Index("idx_products_tenant_stock", "tenant_id", "stock"),
    )

    def __repr__(self):
        return f"<Product {self.name} (stock {self.stock})>"


class Transaction(Base):
    """Completed checkout. Immutable once created."""
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    total = Column(Float, nullable=False)  # As computed by the client
    items = Column(Text, nullable=False)  # JSON array of cart item snapshots
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)

    tenant = relationship("Tenant", back_populates="transactions")

    @property
    def cart_items(self) -> list:
        return json.loads(self.items) if self.items else []

    def __repr__(self):
        return f"<Transaction #{self.id} total={self.total}>"


class Notification(Base):
    """
    System notification for a tenant, or a broadcast to the super-admin
    when tenant_id is NULL.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True, index=True)
    message = Column(Text, nullable=False)
    type = Column(String(20), default=NotificationType.INFO.value, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # sha256(tenant | calendar day | message) - one row per key
    dedup_key = Column(String(64), nullable=False)

    tenant = relationship("Tenant", back_populates="notifications")

    __table_args__ = (
        UniqueConstraint("dedup_key", name="uq_notification_dedup_key"),
        Index("idx_notifications_tenant_created", "tenant_id", "created_at"),
    )


class PendingPayment(Base):
    """Onboarding payment awaiting super-admin review. Approval creates the tenant."""
    __tablename__ = "pending_payments"

    id = Column(Integer, primary_key=True, index=True)
    business_name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=False)
    plan = Column(String(20), nullable=False)
    amount = Column(Float, nullable=False)
    status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True)  # Set on approval
    created_at = Column(DateTime, default=utcnow)
    processed_at = Column(DateTime, nullable=True)


class SubscriptionPayment(Base):
    """Renewal payment awaiting super-admin review. Approval extends the expiry date."""
    __tablename__ = "subscription_payments"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    plan = Column(String(20), nullable=False)
    amount = Column(Float, nullable=False)
    status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)
    processed_at = Column(DateTime, nullable=True)

    tenant = relationship("Tenant", back_populates="subscription_payments")
