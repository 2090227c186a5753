from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime
from models import SubscriptionPlan, NotificationType, PaymentStatus


class CamelModel(BaseModel):
    """Base for API bodies: camelCase on the wire, snake_case in Python"""

    class Config:
        populate_by_name = True
        from_attributes = True


# Cart / Transaction Schemas
class CartItem(CamelModel):
    """Product snapshot plus requested quantity, as stored inside a transaction"""
    id: int
    name: str
    price: float
    image: Optional[str] = None
    category: Optional[str] = None
    quantity: int = Field(..., ge=1)


class CheckoutRequest(CamelModel):
    """Checkout body. tenantId is optional here so a missing value answers 400, not 422"""
    tenant_id: Optional[int] = Field(None, alias="tenantId")
    total: float
    items: List[CartItem] = []


class CheckoutResponse(CamelModel):
    id: int


class TransactionResponse(CamelModel):
    id: int
    tenant_id: int = Field(..., alias="tenantId")
    total: float
    items: List[CartItem]
    timestamp: datetime


class StatsResponse(CamelModel):
    daily_total: float = Field(..., alias="dailyTotal")
    transaction_count: int = Field(..., alias="transactionCount")


# Product Schemas
class ProductResponse(CamelModel):
    id: int
    tenant_id: int = Field(..., alias="tenantId")
    name: str
    price: float
    category: Optional[str] = None
    stock: int
    low_stock_threshold: int = Field(..., alias="lowStockThreshold")
    image: Optional[str] = None


# Notification Schemas
class NotificationResponse(CamelModel):
    id: int
    tenant_id: Optional[int] = Field(None, alias="tenantId")
    message: str
    type: NotificationType
    is_read: bool = Field(..., alias="isRead")
    created_at: datetime = Field(..., alias="createdAt")


class MarkReadRequest(CamelModel):
    tenant_id: Optional[int] = Field(None, alias="tenantId")


class MarkReadResponse(CamelModel):
    updated: int


class UnreadCountResponse(CamelModel):
    unread: int


# Subscription Schemas
class RenewRequest(CamelModel):
    tenant_id: Optional[int] = Field(None, alias="tenantId")
    plan: SubscriptionPlan


class SubscriptionPayRequest(CamelModel):
    tenant_id: Optional[int] = Field(None, alias="tenantId")
    plan: SubscriptionPlan
    amount: float = Field(..., gt=0)


class PaymentDecisionRequest(CamelModel):
    payment_id: Optional[int] = Field(None, alias="paymentId")


class RegistrationRequest(CamelModel):
    """Onboarding request for a new store"""
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    plan: SubscriptionPlan
    amount: float = Field(..., gt=0)


class SubscriptionStatusResponse(CamelModel):
    tenant_id: int = Field(..., alias="tenantId")
    plan: SubscriptionPlan
    expiry_date: datetime = Field(..., alias="expiryDate")
    is_active: bool = Field(..., alias="isActive")
    days_remaining: int = Field(..., alias="daysRemaining")


class SubscriptionPaymentResponse(CamelModel):
    id: int
    tenant_id: int = Field(..., alias="tenantId")
    plan: SubscriptionPlan
    amount: float
    status: PaymentStatus
    created_at: datetime = Field(..., alias="createdAt")
    processed_at: Optional[datetime] = Field(None, alias="processedAt")


class PendingPaymentResponse(CamelModel):
    id: int
    business_name: str = Field(..., alias="businessName")
    email: str
    plan: SubscriptionPlan
    amount: float
    status: PaymentStatus
    tenant_id: Optional[int] = Field(None, alias="tenantId")
    created_at: datetime = Field(..., alias="createdAt")
    processed_at: Optional[datetime] = Field(None, alias="processedAt")
