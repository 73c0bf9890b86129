from __future__ import annotations

from datetime import date
from typing import List, Optional

from ..data import customer_repository, order_repository
from ..models.order_models import (
    DashboardSnapshot,
    MonthlyRevenue,
    OrderStatus,
    ProductPopularity,
    StatusBreakdown,
    from_cents,
)


def get_dashboard_snapshot(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    *,
    top_customer_limit: int = 5,
) -> DashboardSnapshot:
    if start_date and end_date and end_date < start_date:
        raise ValueError("End date cannot be before the start date")

    total_cents, order_count, paid_count = order_repository.fetch_sales_totals(start_date, end_date)

    return DashboardSnapshot(
        total_sales=from_cents(total_cents),
        order_count=order_count,
        paid_orders=paid_count,
        unpaid_orders=order_count - paid_count,
        status_breakdown=get_status_breakdown(start_date, end_date),
        top_customers=customer_repository.fetch_customer_summaries(limit=top_customer_limit),
        product_popularity=list_product_popularity(start_date, end_date),
        monthly_revenue=list_monthly_revenue(start_date, end_date),
    )


def get_status_breakdown(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> StatusBreakdown:
    counts = order_repository.fetch_status_counts(start_date, end_date)
    return StatusBreakdown(
        ordered=counts.get(OrderStatus.ORDERED.value, 0),
        preparing=counts.get(OrderStatus.PREPARING.value, 0),
        delivered=counts.get(OrderStatus.DELIVERED.value, 0),
    )


def list_product_popularity(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[ProductPopularity]:
    rows = order_repository.fetch_product_line_counts(start_date, end_date)
    total_lines = sum(int(row["line_count"]) for row in rows)
    return [
        ProductPopularity(
            reference=row["reference"],
            name=row["name"],
            brand=row["brand"],
            line_count=int(row["line_count"]),
            share=(int(row["line_count"]) * 100.0 / total_lines) if total_lines else 0.0,
        )
        for row in rows
    ]


def list_monthly_revenue(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[MonthlyRevenue]:
    return [
        MonthlyRevenue(
            month=row["month"],
            revenue=from_cents(row["total_cents"]),
            order_count=int(row["order_count"]),
        )
        for row in order_repository.fetch_monthly_revenue(start_date, end_date)
    ]
