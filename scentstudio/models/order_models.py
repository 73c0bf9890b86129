from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from ..errors import CorruptRecord

_CENT = Decimal("0.01")


def to_cents(amount: Decimal) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))


def from_cents(cents: Optional[int]) -> Decimal:
    return (Decimal(int(cents or 0)) / 100).quantize(_CENT)


class OrderStatus(str, Enum):
    ORDERED = "ordered"
    PREPARING = "preparing"
    DELIVERED = "delivered"


class PaymentMethod(str, Enum):
    CARD = "card"
    CHECK = "check"
    CASH = "cash"
    TRANSFER = "transfer"


class CatalogPolicy(str, Enum):
    """How a line item is resolved when its reference already exists with other display fields."""
    OVERWRITE = "overwrite"
    VERSION = "version"
    REJECT = "reject"


@dataclass
class ProductLine:
    name: str
    reference: str
    brand: Optional[str] = None


@dataclass
class Order:
    customer_name: str
    address: str
    invoice_number: str
    total_amount: Decimal
    order_date: date
    status: OrderStatus = OrderStatus.ORDERED
    is_paid: bool = False
    payment_method: Optional[PaymentMethod] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    products: List[ProductLine] = field(default_factory=list)
    id: Optional[int] = None
    revision: Optional[int] = None

    @property
    def product_count(self) -> int:
        return len(self.products)


@dataclass
class Product:
    id: Optional[int]
    reference: str
    name: str
    brand: Optional[str] = None
    version: int = 1
    order_count: int = 0


@dataclass
class Customer:
    id: int
    full_name: str
    address: str
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class CustomerSummary:
    customer_id: int
    full_name: str
    address: str
    email: Optional[str]
    phone: Optional[str]
    order_count: int
    total_spent: Decimal
    paid_count: int
    last_order_date: Optional[date]

    @property
    def average_order(self) -> Decimal:
        if self.order_count == 0:
            return from_cents(0)
        return (self.total_spent / self.order_count).quantize(_CENT)

    @property
    def paid_percentage(self) -> float:
        if self.order_count == 0:
            return 0.0
        return self.paid_count * 100.0 / self.order_count


@dataclass
class OrderListing:
    orders: List[Order] = field(default_factory=list)
    errors: List[CorruptRecord] = field(default_factory=list)


@dataclass
class OrderHistoryEvent:
    id: int
    order_id: Optional[int]
    invoice_number: str
    event_type: str
    description: str
    amount_delta: Decimal
    created_at: datetime


@dataclass
class StatusBreakdown:
    ordered: int = 0
    preparing: int = 0
    delivered: int = 0


@dataclass
class ProductPopularity:
    reference: str
    name: str
    brand: Optional[str]
    line_count: int
    share: float


@dataclass
class MonthlyRevenue:
    month: str
    revenue: Decimal
    order_count: int


@dataclass
class DashboardSnapshot:
    total_sales: Decimal
    order_count: int
    paid_orders: int
    unpaid_orders: int
    status_breakdown: StatusBreakdown
    top_customers: List[CustomerSummary]
    product_popularity: List[ProductPopularity]
    monthly_revenue: List[MonthlyRevenue]

    @property
    def average_order_value(self) -> Decimal:
        if self.order_count == 0:
            return from_cents(0)
        return (self.total_sales / self.order_count).quantize(_CENT)


@dataclass
class AppSettings:
    business_name: str
    catalog_policy: CatalogPolicy = CatalogPolicy.OVERWRITE
    invoice_number_padding: int = 3
    order_update_mode: str = "recreate"
